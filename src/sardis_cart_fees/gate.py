"""
Recalculation gate.

Decides whether a trigger needs a full pass. The baseline stored with the
ledger is a fingerprint of the inputs the ledger was computed from; a pass
is needed when that fingerprint moved, when an admin forced one, or when
the active payment method needs a surcharge the ledger does not have.
"""
from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Sequence

from sardis_cart_fees.exceptions import FeeRuleEvaluationError
from sardis_cart_fees.ledger import FeeEntry
from sardis_cart_fees.models import (
    CartState,
    RecomputeDecision,
    RecomputeReason,
    SessionContext,
)
from sardis_cart_fees.money import ZERO

if TYPE_CHECKING:
    from sardis_cart_fees.pipeline import FeePipeline

logger = logging.getLogger(__name__)


def _canonical(amount: Decimal) -> str:
    # 545 and 545.00 fingerprint the same
    return format(amount.normalize(), "f")


def compute_fingerprint(
    cart: CartState,
    discounts: Sequence[FeeEntry] = (),
) -> str:
    """SHA-256 over the canonical inputs that determine the ledger.

    Discounts are hashed entry by entry, so a rule switch that keeps the
    amount but changes the label still moves the fingerprint.
    """
    total = ZERO - sum((e.amount for e in discounts), ZERO)
    payload = {
        "subtotal": _canonical(cart.subtotal),
        "shipping_total": _canonical(cart.shipping_total),
        "discount_total": _canonical(total),
        "discounts": sorted(
            [e.rule_id, e.name, _canonical(e.amount)] for e in discounts
        ),
        "payment_method": cart.payment_method,
    }
    content = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()


class RecalculationGate:
    """Answers "does this cart need a pass?" for one session context."""

    def __init__(self, pipeline: "FeePipeline"):
        self._pipeline = pipeline

    def should_recompute(self, cart: CartState, ctx: SessionContext) -> RecomputeDecision:
        if ctx.baseline.force:
            return RecomputeDecision(True, RecomputeReason.FORCED)

        try:
            discounts = self._pipeline.discount_phase(cart)
        except FeeRuleEvaluationError as e:
            # Let the pass run and surface the failure
            logger.debug(f"Discount preview failed for {ctx.session_id}: {e}")
            return RecomputeDecision(True, RecomputeReason.DISCOUNT_PREVIEW_FAILED)

        fingerprint = compute_fingerprint(cart, discounts)
        stored: Optional[str] = ctx.baseline.fingerprint

        if stored is None:
            return RecomputeDecision(True, RecomputeReason.NO_BASELINE, fingerprint)
        if fingerprint != stored:
            return RecomputeDecision(
                True, RecomputeReason.FINGERPRINT_CHANGED, fingerprint
            )
        if self._pipeline.missing_surcharge(cart, ctx.ledger):
            return RecomputeDecision(True, RecomputeReason.SURCHARGE_MISSING, fingerprint)

        return RecomputeDecision(False, RecomputeReason.UNCHANGED, fingerprint)
