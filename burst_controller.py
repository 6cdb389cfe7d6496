# burst_controller.py

import logging
from typing import Callable

from data_models import BurstBudget


class BurstController:
    """
    Spends unused rate-limit headroom on back-to-back cycles after a trade.

    Patience earns budget (one unit per quiet cycle, capped at the ceiling);
    a helper-triggered primary re-check and each burst cycle spend it. The
    ceiling is fixed at startup by the calibrator.
    """

    def __init__(self, budget: BurstBudget, enabled: bool = True):
        self.budget = budget
        self.enabled = enabled
        self.logger = logging.getLogger(__name__)

    @property
    def remaining(self) -> int:
        return self.budget.remaining

    @property
    def ceiling(self) -> int:
        return self.budget.ceiling

    def on_quiet_cycle(self) -> None:
        """Non-bursting cycle that found no opportunity."""
        self.budget.remaining = min(self.budget.ceiling, self.budget.remaining + 1)

    def on_revert(self) -> None:
        self.budget.remaining = max(0, self.budget.remaining - 1)

    def should_burst(self, bursting: bool) -> bool:
        return self.enabled and not bursting and self.budget.remaining > 0

    def run_burst(self, run_cycle: Callable[[], bool]) -> int:
        """
        Runs up to ``remaining`` extra cycles. ``run_cycle`` returns True when
        the cycle executed a trade; the chain stops at the first that did not.
        Returns the number of extra cycles attempted.
        """
        attempted = 0
        self.logger.info(f"bursting {self.budget.remaining} times")
        while self.budget.remaining > 0:
            self.budget.remaining -= 1
            attempted += 1
            if not run_cycle():
                break
            self.logger.debug(f"burstsLeft: {self.budget.remaining}")
        return attempted
