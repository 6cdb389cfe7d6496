# trade_cycle.py
from __future__ import annotations

import time
from collections import deque
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, Optional

from data_models import (
    CycleOutcome,
    CycleState,
    EngineState,
    RecoveryResult,
    Side,
    TradeCycle,
)
from logging_config import CycleLoggerAdapter, get_logger


def compute_profit(buy_price, sell_price) -> Decimal:
    """Percentage gained buying at ``buy_price`` and selling at ``sell_price``."""
    return (Decimal(str(sell_price)) / Decimal(str(buy_price)) - 1) * 100


class TradeCycleEngine:
    """
    Runs a single fetch -> evaluate -> execute pass.

    Every attempt advances the credential rotation exactly once, whatever
    happened, except a helper cycle that found a spread: that one resets the
    rotation to the primary so the caller's re-check runs on execution
    credentials.
    """

    def __init__(
        self,
        exchange_manager: Any,
        rotator: Any,
        burst_controller: Any,
        executor: Any,
        recovery_handler: Any,
        state: EngineState,
        *,
        amount: Decimal,
        is_quote: bool,
        min_profit_percent: Decimal,
        callbacks: Optional[Dict[str, Callable[..., None]]] = None,
        history_size: int = 500,
    ):
        self.log = get_logger(__name__)
        self.exchange_manager = exchange_manager
        self.rotator = rotator
        self.burst = burst_controller
        self.executor = executor
        self.recovery = recovery_handler
        self.state = state
        self.amount = amount
        self.is_quote = is_quote
        self.min_profit_percent = Decimal(str(min_profit_percent))
        self._callbacks: Dict[str, Callable[..., None]] = callbacks or {}
        self.history: Deque[TradeCycle] = deque(maxlen=max(1, int(history_size)))
        self.executor.set_progress_callback(lambda msg: self._emit("on_trade_update", msg))

    def run_cycle(self, bursting: bool = False) -> TradeCycle:
        if bursting:
            # bursts spend primary quota only
            self.rotator.reset_to_primary()
        poller = self.rotator.next()
        cycle = TradeCycle(seq=self.state.take_seq(), poller_index=poller.index, bursting=bursting)
        log = CycleLoggerAdapter(self.log, {"cycle": cycle.seq})
        reverted = False
        try:
            cycle.state = CycleState.FETCHING_QUOTES
            try:
                cycle.buy_offer = self.exchange_manager.request_offer(poller, Side.BUY, self.amount, self.is_quote)
                cycle.sell_offer = self.exchange_manager.request_offer(poller, Side.SELL, self.amount, self.is_quote)
            except Exception as e:
                cycle.error = str(e)
                log.error(f"Error on get offer ({poller.label}): {e}")
                return cycle.finish(CycleOutcome.FETCH_ERROR, CycleState.FETCH_ERROR)

            cycle.state = CycleState.EVALUATING
            profit = compute_profit(cycle.buy_offer.ef_price, cycle.sell_offer.ef_price)
            cycle.profit_percent = profit
            log.info(f"Calculated profit: {profit:.3f}% ({poller.label}{', bursting' if bursting else ''})")

            if profit < self.min_profit_percent:
                if not bursting:
                    self.burst.on_quiet_cycle()
                log.debug(f"burstsLeft: {self.burst.remaining}")
                return cycle.finish(CycleOutcome.NO_OP, CycleState.NOT_PROFITABLE)

            if not poller.is_primary:
                cycle.state = CycleState.REVERTING
                self.burst.on_revert()
                self.rotator.reset_to_primary()
                reverted = True
                log.info(f"Profit {profit:.3f}% seen by {poller.label}; re-checking with the primary credential.")
                return cycle.finish(CycleOutcome.PROFITABLE_REVERTED, CycleState.REVERTING)

            cycle.state = CycleState.EXECUTING
            execution = self.executor.execute(cycle.buy_offer, cycle.sell_offer)
            if execution.completed:
                self._on_trade_executed(cycle, log, simulated=execution.simulated)
                return cycle.finish(CycleOutcome.EXECUTED_SUCCESS, CycleState.SUCCESS)

            cycle.error = str(execution.error)
            log.error(f"Error on confirm offer (leg {execution.failed_leg}): {execution.error}")
            if not execution.first_confirmed and not execution.first_uncertain:
                log.warning("Leg 1 was rejected by the exchange. No position change.")
                return cycle.finish(CycleOutcome.FETCH_ERROR, CycleState.FETCH_ERROR)

            cycle.state = CycleState.PARTIAL_FAILURE
            cycle.recovery = self.recovery.recover(execution, log)
            if cycle.recovery is RecoveryResult.NO_EXPOSURE:
                return cycle.finish(CycleOutcome.FETCH_ERROR, CycleState.FETCH_ERROR)
            if cycle.recovery is RecoveryResult.SETTLED:
                self._on_trade_executed(cycle, log, simulated=False)
                return cycle.finish(CycleOutcome.EXECUTED_SUCCESS, CycleState.SUCCESS)
            return cycle.finish(CycleOutcome.EXECUTED_PARTIAL_FAILURE, CycleState.PARTIAL_FAILURE)
        finally:
            if cycle.outcome is None:
                # recovery escalated; the exception keeps propagating
                cycle.finish(CycleOutcome.EXECUTED_PARTIAL_FAILURE, CycleState.PARTIAL_FAILURE)
            if not reverted:
                self.rotator.advance()
            self.history.append(cycle)
            self.log.debug("Cycle #%d finished: %s", cycle.seq, cycle.outcome.value, extra={"trade_cycle": cycle.to_dict()})
            self._emit("on_cycle_finished", cycle)

    def _on_trade_executed(self, cycle: TradeCycle, log, *, simulated: bool) -> None:
        self.state.last_trade_at = time.time()
        prefix = "[SIMULATION] " if simulated else ""
        log.success(f"{prefix}Success, profit: + {cycle.profit_percent:.3f}%")
        self._emit("on_trade_executed", cycle)

    def _emit(self, name: str, *args, **kwargs) -> None:
        cb = self._callbacks.get(name)
        if cb is None:
            return
        try:
            cb(*args, **kwargs)
        except Exception as e:
            self.log.exception("Callback %s error: %s", name, e)
