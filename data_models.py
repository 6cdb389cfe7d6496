#data_models.py

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

BASE_CURRENCY = "BTC"
QUOTE_CURRENCY = "BRL"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class CycleState(Enum):
    """States a trade cycle moves through, in order."""
    IDLE = "IDLE"
    FETCHING_QUOTES = "FETCHING_QUOTES"
    EVALUATING = "EVALUATING"
    REVERTING = "REVERTING"
    NOT_PROFITABLE = "NOT_PROFITABLE"
    EXECUTING = "EXECUTING"
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FETCH_ERROR = "FETCH_ERROR"


class CycleOutcome(Enum):
    NO_OP = "no-op"
    PROFITABLE_REVERTED = "profitable-reverted"
    EXECUTED_SUCCESS = "executed-success"
    EXECUTED_PARTIAL_FAILURE = "executed-partial-failure"
    FETCH_ERROR = "fetch-error"


class RecoveryResult(Enum):
    """How a partially executed trade was resolved."""
    NO_EXPOSURE = "NO_EXPOSURE"      # leg 1 never executed, nothing to fix
    SETTLED = "SETTLED"              # leg 2 actually settled on the exchange
    STUCK = "STUCK"                  # auto-fix disabled, operator must intervene
    REBALANCED = "REBALANCED"        # corrective trade for the missing leg confirmed


@dataclass(frozen=True)
class Credential:
    """An API key pair. Index 0 of the sequence is the primary (execution) key."""
    api_key: str
    api_secret: str = field(repr=False)
    label: str = "primary"


@dataclass(frozen=True)
class Offer:
    """A confirmable quote for one side of the fixed trade amount."""
    offer_id: str
    side: Side
    ef_price: Decimal
    base_amount: Optional[Decimal] = None
    quote_amount: Optional[Decimal] = None
    is_quote: bool = True
    expires_at: Optional[str] = None
    info: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Offer":
        """Create an :class:`Offer` from the exchange's offer payload."""
        if not payload or not payload.get("offerId"):
            raise ValueError(f"Offer payload without offerId: {payload!r}")

        def _dec(value):
            return Decimal(str(value)) if value is not None else None

        ef_price = _dec(payload.get("efPrice"))
        if ef_price is None or ef_price <= 0:
            raise ValueError(f"Offer {payload.get('offerId')} has invalid efPrice {payload.get('efPrice')!r}")

        return cls(
            offer_id=str(payload["offerId"]),
            side=Side(str(payload.get("op", "")).lower()),
            ef_price=ef_price,
            base_amount=_dec(payload.get("baseAmount")),
            quote_amount=_dec(payload.get("quoteAmount")),
            is_quote=bool(payload.get("isQuote", True)),
            expires_at=payload.get("expiresAt"),
            info=dict(payload),
        )


@dataclass
class TradeCycle:
    """One fetch/evaluate/execute pass. Kept in memory only."""
    seq: int
    poller_index: int
    bursting: bool = False
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    buy_offer: Optional[Offer] = None
    sell_offer: Optional[Offer] = None
    profit_percent: Optional[Decimal] = None
    state: CycleState = CycleState.IDLE
    outcome: Optional[CycleOutcome] = None
    error: Optional[str] = None
    recovery: Optional[RecoveryResult] = None

    @property
    def executed(self) -> bool:
        return self.outcome is CycleOutcome.EXECUTED_SUCCESS

    @property
    def duration_s(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def finish(self, outcome: CycleOutcome, state: CycleState) -> "TradeCycle":
        self.outcome = outcome
        self.state = state
        self.finished_at = time.time()
        return self

    def to_dict(self):
        d = asdict(self)
        d["state"] = self.state.value
        d["outcome"] = self.outcome.value if self.outcome else None
        d["recovery"] = self.recovery.value if self.recovery else None
        return d


@dataclass
class BurstBudget:
    """Burst counters. Only BurstController mutates them."""
    ceiling: int = 0
    remaining: int = 0

    def __post_init__(self):
        if self.ceiling < 0:
            raise ValueError("burst ceiling cannot be negative")
        self.remaining = max(0, min(self.remaining, self.ceiling))


@dataclass
class RotationState:
    index: int = 0
    size: int = 1

    def __post_init__(self):
        if self.size < 1:
            raise ValueError("rotation needs at least the primary credential")


@dataclass(frozen=True)
class Balances:
    """Startup snapshot of holdings; never refreshed."""
    assets: Dict[str, Decimal]

    def get(self, asset: str) -> Decimal:
        return self.assets.get(asset.upper(), Decimal("0"))


@dataclass
class EngineState:
    """Mutable state shared by the scheduling components of one run."""
    rotation: RotationState
    burst: BurstBudget
    last_trade_at: Optional[float] = None
    next_seq: int = 1

    def take_seq(self) -> int:
        seq = self.next_seq
        self.next_seq += 1
        return seq
