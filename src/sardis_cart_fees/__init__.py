"""
Sardis Cart Fees - derived cart adjustments for checkout sessions.

This package keeps a cart's discounts and payment-method surcharge
consistent with the cart as it changes during checkout.

Features:
- Tiered lifetime-spend and per-item quantity discounts
- Payment-method surcharge computed on the discounted base
- Fingerprint gate that skips passes for unchanged carts
- Remove-then-add commits that never leave duplicate or stale fees
- Per-session locking for overlapping triggers
- Staleness signal for pull-based UI refresh
- Pass events for audit and analytics sinks
"""

from sardis_cart_fees.config import (
    BulkRuleConfig,
    CartFeeSettings,
    TierConfig,
    load_settings,
)
from sardis_cart_fees.discounts import (
    DiscountRule,
    DiscountStrategy,
    PerItemQuantityStrategy,
    TieredSpendStrategy,
    build_discount_rules,
)
from sardis_cart_fees.engine import FeeEngine
from sardis_cart_fees.events import (
    CompositeFeeEventBackend,
    FeeEvent,
    FeeEventBackend,
    FeeEventType,
    InMemoryFeeEventBackend,
    LoggingFeeEventBackend,
)
from sardis_cart_fees.exceptions import (
    CartFeesException,
    FeeConfigurationError,
    FeeRuleEvaluationError,
    FeeSignError,
    SessionContextNotFound,
)
from sardis_cart_fees.gate import RecalculationGate, compute_fingerprint
from sardis_cart_fees.ledger import FeeEntry, FeeKind, FeeLedger, merge_pass
from sardis_cart_fees.logging import configure_logging, get_logger, setup_logging
from sardis_cart_fees.models import (
    # Cart input
    CartState,
    LineItem,
    # Session state
    Baseline,
    SessionContext,
    StalenessSignal,
    # Results
    DiscountQuote,
    FeeSummary,
    PassResult,
    PassStatus,
    RecalculationOutcome,
    RecomputeDecision,
    RecomputeReason,
    ThresholdMessage,
)
from sardis_cart_fees.money import format_money, round_money, to_money
from sardis_cart_fees.pipeline import FeePipeline
from sardis_cart_fees.sessions import (
    InMemorySessionContextStore,
    SessionContextStore,
)
from sardis_cart_fees.surcharges import PaymentMethodSurchargeRule

__all__ = [
    # Engine
    "FeeEngine",
    "FeePipeline",
    "RecalculationGate",
    "compute_fingerprint",
    # Rules
    "DiscountRule",
    "DiscountStrategy",
    "TieredSpendStrategy",
    "PerItemQuantityStrategy",
    "build_discount_rules",
    "PaymentMethodSurchargeRule",
    # Models
    "CartState",
    "LineItem",
    "FeeKind",
    "FeeEntry",
    "FeeLedger",
    "merge_pass",
    "Baseline",
    "SessionContext",
    "StalenessSignal",
    "DiscountQuote",
    "FeeSummary",
    "PassResult",
    "PassStatus",
    "RecalculationOutcome",
    "RecomputeDecision",
    "RecomputeReason",
    "ThresholdMessage",
    # Money
    "to_money",
    "round_money",
    "format_money",
    # Configuration
    "CartFeeSettings",
    "TierConfig",
    "BulkRuleConfig",
    "load_settings",
    # Logging
    "configure_logging",
    "get_logger",
    "setup_logging",
    # Events
    "FeeEvent",
    "FeeEventType",
    "FeeEventBackend",
    "InMemoryFeeEventBackend",
    "LoggingFeeEventBackend",
    "CompositeFeeEventBackend",
    # Sessions
    "SessionContextStore",
    "InMemorySessionContextStore",
    # Exceptions
    "CartFeesException",
    "FeeConfigurationError",
    "FeeSignError",
    "FeeRuleEvaluationError",
    "SessionContextNotFound",
]

__version__ = "0.1.0"
