"""Cart fee engine data models."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from sardis_cart_fees.ledger import FeeEntry, FeeKind, FeeLedger
from sardis_cart_fees.money import ZERO, round_money, to_money


DEFAULT_CURRENCY = "USD"


class RecomputeReason(str, Enum):
    """Why the gate did or did not ask for a pass."""
    FORCED = "force recalc flag is set"
    NO_BASELINE = "no baseline stored"
    FINGERPRINT_CHANGED = "baseline fingerprint changed"
    SURCHARGE_MISSING = "no existing surcharge found"
    DISCOUNT_PREVIEW_FAILED = "discount preview failed"
    UNCHANGED = "cart unchanged, ledger already correct"


class PassStatus(str, Enum):
    """Outcome of one engine trigger."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class LineItem:
    """One cart line, as read from the cart store."""
    product_id: str
    quantity: int
    line_total: Decimal = ZERO
    parent_id: Optional[str] = None  # variation parent
    name: str = ""

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Line quantity cannot be negative: {self.quantity}")
        object.__setattr__(self, "line_total", to_money(self.line_total))

    @property
    def group_id(self) -> str:
        """Product id discounts are grouped under (variations roll up)."""
        return self.parent_id or self.product_id


@dataclass(frozen=True)
class CartState:
    """
    Immutable snapshot of the cart for one pass.

    Everything a rule may read is resolved before the snapshot is built;
    rules never reach back into the cart store.
    """
    subtotal: Decimal
    shipping_total: Decimal
    payment_method: Optional[str] = None
    customer_id: Optional[str] = None
    customer_lifetime_spend: Optional[Decimal] = None  # None: tier data unavailable
    line_items: Tuple[LineItem, ...] = ()
    customer_roles: FrozenSet[str] = frozenset()
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        object.__setattr__(self, "subtotal", to_money(self.subtotal))
        object.__setattr__(self, "shipping_total", to_money(self.shipping_total))
        if self.customer_lifetime_spend is not None:
            object.__setattr__(
                self, "customer_lifetime_spend", to_money(self.customer_lifetime_spend)
            )
        object.__setattr__(self, "line_items", tuple(self.line_items))
        object.__setattr__(self, "customer_roles", frozenset(self.customer_roles))
        object.__setattr__(self, "currency", self.currency.upper())

    @property
    def is_empty(self) -> bool:
        """No line with a quantity and nothing in the subtotal.

        A totals-only snapshot (no line items, positive subtotal) is not
        empty; per-item discounts simply find nothing to match.
        """
        if any(item.quantity > 0 for item in self.line_items):
            return False
        return self.subtotal <= 0

    def quantities_by_group(self) -> Dict[str, int]:
        """Total quantity per product group, in first-seen cart order."""
        totals: Dict[str, int] = {}
        for item in self.line_items:
            totals[item.group_id] = totals.get(item.group_id, 0) + item.quantity
        return totals

    def group_name(self, group_id: str) -> str:
        for item in self.line_items:
            if item.group_id == group_id and item.name:
                return item.name
        return ""


@dataclass(frozen=True)
class Baseline:
    """Fingerprint of the inputs the current ledger was computed from."""
    fingerprint: Optional[str] = None
    force: bool = False


@dataclass(frozen=True)
class StalenessSignal:
    """Version token the presentation layer polls to know it must refresh."""
    ledger_version: int = 0
    computed_at: Optional[datetime] = None

    def next(self) -> "StalenessSignal":
        return StalenessSignal(
            ledger_version=self.ledger_version + 1,
            computed_at=datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ledger_version": self.ledger_version,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass(frozen=True)
class RecomputeDecision:
    """Answer from the recalculation gate."""
    recompute: bool
    reason: RecomputeReason
    fingerprint: Optional[str] = None

    def __bool__(self) -> bool:
        return self.recompute


@dataclass(frozen=True)
class DiscountQuote:
    """Amount a discount strategy offers for a cart (positive magnitude)."""
    label: str
    amount: Decimal


@dataclass(frozen=True)
class ThresholdMessage:
    """What a product quantity would qualify for, shown before add-to-cart."""
    rule_name: str
    message: str
    threshold: int


@dataclass
class SessionContext:
    """
    Per-session handle holding the only state the engine owns.

    The caller keeps this alongside its cart session and passes it into
    every engine call; the engine never stores it. ``lock`` serializes
    commits for the session.
    """
    session_id: str
    ledger: FeeLedger = field(default_factory=FeeLedger)
    baseline: Baseline = field(default_factory=Baseline)
    signal: StalenessSignal = field(default_factory=StalenessSignal)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add_external_fee(self, entry: FeeEntry) -> None:
        """Record a fee written by something other than the engine.

        Appends without de-duplication, the way a foreign cart writer would;
        the next engine commit collapses any name collision.
        """
        self.ledger = self.ledger.with_entries([entry])


@dataclass(frozen=True)
class PassResult:
    """Everything one pipeline run produced, ready to commit."""
    ledger: FeeLedger
    discount_total: Decimal
    surcharge_base: Optional[Decimal]
    fingerprint: str
    healed_names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FeeSummary:
    """Totals for a cart-totals view.

    The totals are exact ledger sums; discount entries are not rounded, so
    they can carry more places than the currency has. ``to_dict`` adds
    ``display_*`` values rounded to the currency for presentation.
    """
    discount_total: Decimal
    surcharge_total: Decimal
    net_adjustment: Decimal
    rows: Tuple[Dict[str, Any], ...]
    signal: StalenessSignal
    currency: str = DEFAULT_CURRENCY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "discount_total": str(self.discount_total),
            "surcharge_total": str(self.surcharge_total),
            "net_adjustment": str(self.net_adjustment),
            "display_discount_total": str(round_money(self.discount_total, self.currency)),
            "display_surcharge_total": str(round_money(self.surcharge_total, self.currency)),
            "display_net_adjustment": str(round_money(self.net_adjustment, self.currency)),
            "currency": self.currency,
            "rows": list(self.rows),
            "signal": self.signal.to_dict(),
        }


@dataclass
class RecalculationOutcome:
    """What a trigger did."""
    status: PassStatus
    reason: str
    ledger: FeeLedger
    signal: StalenessSignal
    error: Optional[Exception] = None
    surcharge_base: Optional[Decimal] = None

    @property
    def recomputed(self) -> bool:
        return self.status == PassStatus.COMPLETED


__all__ = [
    "DEFAULT_CURRENCY",
    "RecomputeReason",
    "PassStatus",
    "LineItem",
    "CartState",
    "FeeKind",
    "FeeEntry",
    "FeeLedger",
    "Baseline",
    "StalenessSignal",
    "RecomputeDecision",
    "DiscountQuote",
    "ThresholdMessage",
    "SessionContext",
    "PassResult",
    "FeeSummary",
    "RecalculationOutcome",
]
