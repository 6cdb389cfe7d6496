# bot_engine.py
"""
Blocking scheduler that paces trade cycles:
- one tick every ``interval / pollers`` seconds (monotonic clock)
- each tick is a small work loop: the cycle itself, the primary re-check a
  helper asks for, then the burst chain that follows a trade
- only FatalRecoveryError escapes run(); everything else is contained in a cycle

stop() may be called from another thread or a signal handler. The loop exits
once the in-flight tick completes.
"""

from __future__ import annotations
import threading
import time
from collections import Counter
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from data_models import CycleOutcome, RecoveryResult, TradeCycle
from logging_config import get_logger


class ArbitrageBot:
    def __init__(
        self,
        engine: Any,
        burst_controller: Any,
        *,
        interval_s,
        poller_count: int = 1,
        config: Optional[Dict[str, Any]] = None,
        callbacks: Optional[Dict[str, Callable[..., None]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.log = get_logger(__name__)
        self.engine = engine
        self.burst = burst_controller
        self.config: Dict[str, Any] = config or {}
        self._callbacks: Dict[str, Callable[..., None]] = callbacks or {}
        self._clock = clock

        if poller_count < 1:
            raise ValueError("poller_count must be >= 1")
        self.interval_s = Decimal(str(interval_s))
        self.tick_interval_s = float(self.interval_s / poller_count)

        self._stop_evt = threading.Event()
        self._state_lock = threading.RLock()
        self._running = False
        self.start_time = 0.0

        # Session stats
        self.outcomes: Counter = Counter()
        self.cycles_run = 0
        self.burst_cycles = 0
        self.trades_executed = 0
        self.recoveries = 0
        self._tick = 0

        stop_cfg = self.config.get("stop_conditions") or {}
        self.max_trades = stop_cfg.get("max_trades")
        self.run_duration_s = stop_cfg.get("run_duration_s")

        self.log.info("ArbitrageBot initialized (tick=%.3fs, pollers=%d)", self.tick_interval_s, poller_count)

    # ---------- Public API ----------

    def run(self) -> None:
        """Blocks until stopped. FatalRecoveryError propagates to the caller."""
        with self._state_lock:
            if self._running:
                self.log.warning("Engine already running; ignoring run()")
                return
            self._stop_evt.clear()
            self._running = True
            self.start_time = self._clock()

        self._emit("on_status", "engine_started")
        try:
            while not self._stop_evt.is_set():
                start_ts = self._clock()
                self._tick += 1
                self.run_tick()
                if self._should_stop():
                    break
                elapsed = self._clock() - start_ts
                self._stop_evt.wait(max(0.0, self.tick_interval_s - elapsed))
        finally:
            with self._state_lock:
                self._running = False
            self._emit("on_status", "engine_stopped")
            self.log.info("Session stats: %s", self.get_stats())

    def stop(self) -> None:
        if self._stop_evt.is_set():
            return
        self._stop_evt.set()
        self._emit("on_status", "engine_stopping")
        self.log.info("Stop requested; finishing the current tick.")

    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    def run_tick(self) -> None:
        """One scheduled tick, including any re-check and burst it triggers."""
        cycle = self._run_until_settled(bursting=False)
        if cycle.executed and cycle.recovery is None and self.burst.should_burst(False):
            self.burst.run_burst(self._run_burst_cycle)

    # ---------- Helpers ----------

    def _run_burst_cycle(self) -> bool:
        if self._stop_evt.is_set():
            return False
        return self._run_until_settled(bursting=True).executed

    def _run_until_settled(self, bursting: bool) -> TradeCycle:
        # a helper-reverted cycle hands the same slot to the primary;
        # the primary can never revert, so this runs at most twice
        cycle = self._run_cycle(bursting)
        while cycle.outcome is CycleOutcome.PROFITABLE_REVERTED and not self._stop_evt.is_set():
            cycle = self._run_cycle(bursting)
        return cycle

    def _run_cycle(self, bursting: bool) -> TradeCycle:
        cycle = self.engine.run_cycle(bursting)
        with self._state_lock:
            self.cycles_run += 1
            self.outcomes[cycle.outcome.value] += 1
            if bursting:
                self.burst_cycles += 1
            if cycle.executed:
                self.trades_executed += 1
            if cycle.recovery not in (None, RecoveryResult.NO_EXPOSURE):
                self.recoveries += 1
        return cycle

    def _should_stop(self) -> bool:
        if self.max_trades is not None and self.trades_executed >= int(self.max_trades):
            self.log.info("Stop condition reached: %d trades executed", self.trades_executed)
            return True
        if self.run_duration_s is not None and self._clock() - self.start_time >= float(self.run_duration_s):
            self.log.info("Stop condition reached: run duration %.0fs elapsed", float(self.run_duration_s))
            return True
        return False

    def _emit(self, name: str, *args, **kwargs) -> None:
        cb = self._callbacks.get(name)
        if cb is None:
            return
        try:
            cb(*args, **kwargs)
        except Exception as e:
            self.log.exception("Callback %s error: %s", name, e)

    # --------- Stats ---------
    def get_stats(self) -> Dict[str, Any]:
        with self._state_lock:
            uptime = (self._clock() - self.start_time) if self.start_time else 0.0
            return {
                "cycles_run": self.cycles_run,
                "ticks": self._tick,
                "trades_executed": self.trades_executed,
                "recoveries": self.recoveries,
                "burst_cycles": self.burst_cycles,
                "outcomes": dict(self.outcomes),
                "burst_remaining": self.burst.remaining,
                "burst_ceiling": self.burst.ceiling,
                "uptime_s": round(uptime, 1),
            }
