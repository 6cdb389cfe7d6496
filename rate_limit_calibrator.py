# rate_limit_calibrator.py
"""
Derives the polling interval and the burst ceiling from the rate limit the
exchange advertises for its quoting endpoint.

Every cycle spends two quote requests (buy and sell), hence the factor of 2 in
the minimum interval. Surplus interval above the minimum funds the burst
ceiling, quartered to leave quota headroom.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from utils import ConfigError

QUOTES_PER_CYCLE = 2
BURST_HEADROOM_DIVISOR = 4


@dataclass(frozen=True)
class Calibration:
    window_ms: int
    max_requests: int
    min_interval_s: Decimal
    interval_s: Decimal
    burst_max: int


class RateLimitCalibrator:

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def min_interval(window_ms, max_requests) -> Decimal:
        return Decimal(QUOTES_PER_CYCLE) * Decimal(window_ms) / Decimal(max_requests) / Decimal(1000)

    def calibrate(self, window_ms: int, max_requests: int, interval_s=None) -> Calibration:
        if not window_ms or not max_requests or window_ms <= 0 or max_requests <= 0:
            raise ConfigError(f"Invalid offer rate limit advertised: {max_requests} requests per {window_ms}ms.")

        min_interval = self.min_interval(window_ms, max_requests)
        burst_max = 0

        if interval_s is None:
            interval = min_interval
            self.logger.info(f"Setting interval to {interval}s")
        else:
            interval = Decimal(str(interval_s))
            if interval < min_interval:
                raise ConfigError(
                    f"Interval too small ({interval}s). Must be at least {min_interval:.3f}s "
                    f"for {max_requests} offer requests per {window_ms}ms."
                )
            if interval > min_interval:
                burst_max = math.floor(
                    (interval - min_interval) / min_interval / BURST_HEADROOM_DIVISOR * max_requests
                )

        self.logger.info(f"Offer rate limit: {max_requests} requests per {window_ms}ms. "
                         f"Min interval {min_interval}s, using {interval}s, burstMax: {burst_max}")
        return Calibration(
            window_ms=int(window_ms),
            max_requests=int(max_requests),
            min_interval_s=min_interval,
            interval_s=interval,
            burst_max=int(burst_max),
        )

    def calibrate_from_exchange(self, exchange_manager, interval_s: Optional[Decimal] = None) -> Calibration:
        """Runs once at startup; the result is never refreshed mid-session."""
        limit = exchange_manager.get_offer_rate_limit()
        return self.calibrate(limit["windowMs"], limit["maxRequests"], interval_s)
