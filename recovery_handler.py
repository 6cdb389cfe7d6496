# recovery_handler.py
"""
Damage control for a trade whose two legs did not both confirm.

Order of operations is fixed: check whether the missing leg settled anyway,
then either stop for the operator or buy/sell back at market, and escalate to
a fatal error when holdings can neither be determined nor repaired.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from data_models import Offer, RecoveryResult
from trade_executor import LegExecution
from utils import FatalRecoveryError


class RecoveryHandler:
    def __init__(self, exchange_manager, *, amount: Decimal, is_quote: bool, fix_missed_second_leg: bool = False):
        self.exchange_manager = exchange_manager
        self.amount = amount
        self.is_quote = is_quote
        self.fix_missed_second_leg = bool(fix_missed_second_leg)
        self.logger = logging.getLogger(__name__)

    def recover(self, execution: LegExecution, log: Optional[logging.LoggerAdapter] = None) -> RecoveryResult:
        log = log or self.logger

        if not execution.first_confirmed:
            if not execution.first_uncertain:
                log.warning(f"Leg 1 ({execution.first.side.value}) was rejected by the exchange. No position change.")
                return RecoveryResult.NO_EXPOSURE
            if not self._settled(execution.first, log):
                log.warning(f"Leg 1 ({execution.first.side.value}) offer {execution.first.offer_id} "
                            f"is not in the trade history. No position change.")
                return RecoveryResult.NO_EXPOSURE
            log.critical(f"Leg 1 ({execution.first.side.value}) settled despite the error; "
                         f"leg 2 ({execution.second.side.value}) was never sent.")
            return self._fix_missing_leg(execution.second, log)

        if self._settled(execution.second, log):
            log.info(f"Leg 2 ({execution.second.side.value}) offer {execution.second.offer_id} settled on the "
                     f"exchange despite the error. Treating the trade as complete.")
            return RecoveryResult.SETTLED

        return self._fix_missing_leg(execution.second, log)

    def _settled(self, offer: Offer, log) -> bool:
        try:
            trades = self.exchange_manager.fetch_settled_trades(offer.side)
        except Exception as e:
            log.critical(f"Could not query {offer.side.value} trade history: {e}")
            raise FatalRecoveryError(
                f"Cannot determine whether {offer.side.value} offer {offer.offer_id} settled: {e}"
            ) from e
        return self._find_trade(trades, offer.offer_id) is not None

    @staticmethod
    def _find_trade(trades: Iterable[Dict[str, Any]], offer_id: str) -> Optional[Dict[str, Any]]:
        for trade in trades or []:
            if isinstance(trade, dict) and str(trade.get("offerId")) == offer_id:
                return trade
        return None

    def _fix_missing_leg(self, missing: Offer, log) -> RecoveryResult:
        side = missing.side
        if not self.fix_missed_second_leg:
            log.critical(
                f"STUCK POSITION: the {side.value} leg for {self.amount} "
                f"{'BRL' if self.is_quote else 'BTC'} did not execute and automatic fixing is disabled. "
                f"MANUAL INTERVENTION REQUIRED."
            )
            return RecoveryResult.STUCK

        try:
            log.warning(f"Attempting to fix the missing {side.value} leg at market price.")
            offer = self.exchange_manager.request_offer(self.exchange_manager.primary, side, self.amount, self.is_quote)
            self.exchange_manager.confirm_offer(offer)
        except Exception as e:
            raise FatalRecoveryError(
                f"Could not execute the corrective {side.value} trade for {self.amount}: {e}"
            ) from e

        log.warning(f"Missing {side.value} leg fixed with offer {offer.offer_id} @ {offer.ef_price} "
                    f"(was {missing.ef_price}).")
        return RecoveryResult.REBALANCED
