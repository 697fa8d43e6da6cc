"""
Tests for sardis_cart_fees.gate.

Tests cover:
- Fingerprint determinism and sensitivity
- Every recompute reason
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import CARD, make_cart
from sardis_cart_fees.discounts import DiscountRule
from sardis_cart_fees.gate import RecalculationGate, compute_fingerprint
from sardis_cart_fees.ledger import FeeEntry, FeeKind, FeeLedger
from sardis_cart_fees.models import Baseline, RecomputeReason
from sardis_cart_fees.pipeline import FeePipeline
from sardis_cart_fees.surcharges import PaymentMethodSurchargeRule


def discount(name="Promo Discount", amount="-50", rule_id="discount:fixed"):
    return FeeEntry(name, FeeKind.DISCOUNT, Decimal(amount), rule_id=rule_id)


class TestComputeFingerprint:
    """Tests for compute_fingerprint."""

    def test_deterministic(self):
        """Same inputs give the same fingerprint."""
        assert compute_fingerprint(make_cart(), [discount()]) == compute_fingerprint(
            make_cart(), [discount()]
        )

    def test_trailing_zeros_ignored(self):
        """545 and 545.00 are the same amount."""
        assert compute_fingerprint(make_cart(subtotal="545"), [discount()]) == (
            compute_fingerprint(make_cart(subtotal="545.00"), [discount(amount="-50.00")])
        )

    def test_entry_order_ignored(self):
        """Discount entries are hashed in a stable order."""
        first = discount("Promo Discount", "-5")
        second = discount("Loyalty Discount", "-7", rule_id="discount:loyalty")
        assert compute_fingerprint(make_cart(), [first, second]) == (
            compute_fingerprint(make_cart(), [second, first])
        )

    def test_sensitive_to_each_input(self):
        """Subtotal, shipping, discounts and payment method all count."""
        base = compute_fingerprint(make_cart())
        assert compute_fingerprint(make_cart(subtotal="546.00")) != base
        assert compute_fingerprint(make_cart(shipping="0")) != base
        assert compute_fingerprint(make_cart(), [discount()]) != base
        assert compute_fingerprint(make_cart(payment_method="cheque")) != base

    def test_sensitive_to_discount_label(self):
        """A different label at the same amount is a different ledger."""
        vip = discount("VIP Discount (Router)", "-50", rule_id="discount:per_item_quantity:80")
        bulk = discount("Bulk Discount (Router)", "-50", rule_id="discount:per_item_quantity:80")
        assert compute_fingerprint(make_cart(), [vip]) != compute_fingerprint(
            make_cart(), [bulk]
        )

    def test_is_sha256_hex(self):
        """Fingerprints are 64 hex characters."""
        fingerprint = compute_fingerprint(make_cart())
        assert len(fingerprint) == 64
        int(fingerprint, 16)


class TestRecalculationGate:
    """Tests for RecalculationGate."""

    @pytest.fixture
    def pipeline(self, fixed_strategy):
        return FeePipeline(
            [DiscountRule(fixed_strategy)],
            [PaymentMethodSurchargeRule(CARD, Decimal("0.03"))],
        )

    @pytest.fixture
    def gate(self, pipeline):
        return RecalculationGate(pipeline)

    def commit(self, pipeline, ctx, cart):
        result = pipeline.run(cart, ctx.ledger)
        ctx.ledger = result.ledger
        ctx.baseline = Baseline(fingerprint=result.fingerprint)

    def test_no_baseline(self, gate, ctx):
        """A fresh session always needs a pass."""
        decision = gate.should_recompute(make_cart(), ctx)
        assert decision.recompute
        assert decision.reason == RecomputeReason.NO_BASELINE
        assert decision.fingerprint is not None

    def test_unchanged(self, gate, pipeline, ctx):
        """Same cart after a pass needs nothing."""
        self.commit(pipeline, ctx, make_cart())
        decision = gate.should_recompute(make_cart(), ctx)
        assert not decision
        assert decision.reason == RecomputeReason.UNCHANGED
        assert decision.reason.value == "cart unchanged, ledger already correct"

    def test_force(self, gate, pipeline, ctx):
        """The force flag overrides a matching fingerprint."""
        self.commit(pipeline, ctx, make_cart())
        ctx.baseline = Baseline(fingerprint=ctx.baseline.fingerprint, force=True)
        decision = gate.should_recompute(make_cart(), ctx)
        assert decision.recompute
        assert decision.reason == RecomputeReason.FORCED

    def test_fingerprint_changed(self, gate, pipeline, ctx):
        """A quantity change moves the subtotal and the fingerprint."""
        self.commit(pipeline, ctx, make_cart())
        decision = gate.should_recompute(make_cart(subtotal="436.00"), ctx)
        assert decision.reason == RecomputeReason.FINGERPRINT_CHANGED

    def test_discount_change_detected(self, gate, pipeline, ctx, fixed_strategy):
        """A discount change alone moves the fingerprint."""
        self.commit(pipeline, ctx, make_cart())
        fixed_strategy.amount = Decimal("0")
        decision = gate.should_recompute(make_cart(), ctx)
        assert decision.reason == RecomputeReason.FINGERPRINT_CHANGED

    def test_payment_method_switch(self, gate, pipeline, ctx):
        """Switching method is a fingerprint change."""
        self.commit(pipeline, ctx, make_cart())
        decision = gate.should_recompute(make_cart(payment_method="cheque"), ctx)
        assert decision.reason == RecomputeReason.FINGERPRINT_CHANGED

    def test_surcharge_missing(self, gate, pipeline, ctx):
        """A matching baseline with no surcharge entry still needs a pass."""
        self.commit(pipeline, ctx, make_cart())
        ctx.ledger = FeeLedger(e for e in ctx.ledger if e.kind.value != "surcharge")
        decision = gate.should_recompute(make_cart(), ctx)
        assert decision.reason == RecomputeReason.SURCHARGE_MISSING

    def test_no_surcharge_needed_for_other_method(self, gate, pipeline, ctx):
        """Without a surcharge method, a missing surcharge is correct."""
        cart = make_cart(payment_method="cheque")
        self.commit(pipeline, ctx, cart)
        assert not gate.should_recompute(cart, ctx)

    def test_discount_preview_failure(self, gate, pipeline, ctx, fixed_strategy):
        """A failing discount rule means recompute, so the pass can report it."""
        self.commit(pipeline, ctx, make_cart())
        fixed_strategy.fail = True
        decision = gate.should_recompute(make_cart(), ctx)
        assert decision.recompute
        assert decision.reason == RecomputeReason.DISCOUNT_PREVIEW_FAILED
