# trade_executor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import ccxt

from data_models import Offer


@dataclass
class LegExecution:
    """What actually happened to the two legs of one trade."""
    first: Offer
    second: Offer
    simulated: bool = False
    first_confirmed: bool = False
    second_confirmed: bool = False
    # leg 1 raised without a definite rejection (transport error): it may have settled
    first_uncertain: bool = False
    error: Optional[BaseException] = None

    @property
    def completed(self) -> bool:
        return self.simulated or (self.first_confirmed and self.second_confirmed)

    @property
    def failed_leg(self) -> Optional[int]:
        if self.completed:
            return None
        return 2 if self.first_confirmed else 1


class TradeExecutor:
    """
    Confirms the two offers of an arbitrage, strictly one after the other.
    Leg 2 is never sent before leg 1's confirmation response is known; the
    recovery procedure depends on that ordering.
    """

    def __init__(self, exchange_manager, *, initial_buy: bool = True, simulation: bool = False):
        self.log = logging.getLogger(__name__)
        self.exchange_manager = exchange_manager
        self.initial_buy = bool(initial_buy)
        self.simulation = bool(simulation)
        self._progress_cb: Optional[Callable[[str], None]] = None

    def set_progress_callback(self, cb: Optional[Callable[[str], None]]) -> None:
        self._progress_cb = cb

    def order_legs(self, buy_offer: Offer, sell_offer: Offer) -> Tuple[Offer, Offer]:
        if self.initial_buy:
            return buy_offer, sell_offer
        return sell_offer, buy_offer

    def execute(self, buy_offer: Offer, sell_offer: Offer) -> LegExecution:
        first, second = self.order_legs(buy_offer, sell_offer)
        execution = LegExecution(first=first, second=second)

        if self.simulation:
            self._emit("Would execute arbitrage if simulation mode was not enabled")
            execution.simulated = True
            return execution

        # Leg 1
        try:
            self._emit(f"Confirming leg 1: {first.side.value} offer {first.offer_id} @ {first.ef_price}")
            self.exchange_manager.confirm_offer(first)
            execution.first_confirmed = True
        except ccxt.NetworkError as e:
            execution.first_uncertain = True
            execution.error = e
            self.log.error("Leg 1 (%s) confirmation outcome unknown: %s", first.side.value, e)
            return execution
        except ccxt.ExchangeError as e:
            execution.error = e
            self.log.error("Leg 1 (%s) confirmation rejected: %s", first.side.value, e)
            return execution
        except Exception as e:
            execution.first_uncertain = True
            execution.error = e
            self.log.exception("Leg 1 (%s) confirmation failed: %s", first.side.value, e)
            return execution

        # Leg 2
        try:
            self._emit(f"Confirming leg 2: {second.side.value} offer {second.offer_id} @ {second.ef_price}")
            self.exchange_manager.confirm_offer(second)
            execution.second_confirmed = True
        except Exception as e:
            execution.error = e
            self.log.error("Leg 2 (%s) confirmation failed after leg 1 was confirmed: %s", second.side.value, e)

        return execution

    def _emit(self, msg: str) -> None:
        if self._progress_cb:
            try:
                self._progress_cb(msg)
            except Exception:
                self.log.exception("Progress callback failed")
        self.log.info("[Trade] %s", msg)
