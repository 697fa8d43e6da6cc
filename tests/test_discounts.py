"""
Tests for sardis_cart_fees.discounts.

Tests cover:
- Tiered lifetime-spend discount selection
- Per-item quantity rules with role and priority matching
- Threshold messages
- Building the configured rule set
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import ROUTER_ID, ROUTER_NAME, make_cart, router_cart
from sardis_cart_fees.config import BulkRuleConfig, CartFeeSettings
from sardis_cart_fees.discounts import (
    DiscountRule,
    PerItemQuantityStrategy,
    TieredSpendStrategy,
    build_discount_rules,
)
from sardis_cart_fees.exceptions import FeeConfigurationError
from sardis_cart_fees.ledger import FeeKind
from sardis_cart_fees.models import LineItem


class TestTieredSpendStrategy:
    """Tests for TieredSpendStrategy."""

    @pytest.fixture
    def strategy(self, settings):
        return TieredSpendStrategy(settings.vip_tiers)

    def test_platinum(self, strategy):
        """600 lifetime spend on a 545 cart earns 10%."""
        quote = strategy.quote(make_cart(lifetime_spend="600"))
        assert quote.label == "VIP Platinum Discount (10%)"
        assert quote.amount == Decimal("54.5")

    def test_gold(self, strategy):
        """350 lifetime spend earns 8% when the cart reaches 300."""
        quote = strategy.quote(make_cart(subtotal="320.00", lifetime_spend="350"))
        assert quote.label == "VIP Gold Discount (8%)"
        assert quote.amount == Decimal("25.60")

    def test_silver(self, strategy):
        """100 lifetime spend earns 5%."""
        quote = strategy.quote(make_cart(subtotal="100.00", lifetime_spend="100"))
        assert quote.label == "VIP Silver Discount (5%)"
        assert quote.amount == Decimal("5.00")

    def test_no_fall_through_below_tier_minimum(self, strategy):
        """A platinum customer with a 400 cart gets nothing, not gold."""
        assert strategy.quote(make_cart(subtotal="400.00", lifetime_spend="600")) is None

    def test_below_lowest_tier(self, strategy):
        """Spend under 100 never qualifies."""
        assert strategy.quote(make_cart(lifetime_spend="99.99")) is None

    def test_missing_spend_does_not_qualify(self, strategy):
        """Unknown lifetime spend is input-incomplete, not an error."""
        assert strategy.quote(make_cart(lifetime_spend=None)) is None

    def test_guest_does_not_qualify(self, strategy):
        """Carts without a customer id get no VIP discount."""
        assert strategy.quote(make_cart(customer_id=None, lifetime_spend="600")) is None

    def test_amount_not_rounded(self, strategy):
        """Discount amounts keep full precision."""
        quote = strategy.quote(make_cart(subtotal="545.55", lifetime_spend="600"))
        assert quote.amount == Decimal("54.555")

    def test_possible_labels(self, strategy):
        """Every tier label is a managed name."""
        assert strategy.possible_labels() == [
            "VIP Platinum Discount (10%)",
            "VIP Gold Discount (8%)",
            "VIP Silver Discount (5%)",
        ]

    def test_requires_tiers(self):
        """An empty tier list is a configuration error."""
        with pytest.raises(FeeConfigurationError):
            TieredSpendStrategy([])


class TestPerItemQuantityStrategy:
    """Tests for PerItemQuantityStrategy."""

    @pytest.fixture
    def strategy(self, bulk_settings):
        return PerItemQuantityStrategy(ROUTER_ID, bulk_settings.bulk_rules)

    def test_bulk_threshold(self, strategy):
        """Five routers earn $10 each for anyone."""
        quote = strategy.quote(router_cart(5))
        assert quote.label == f"Bulk Discount ({ROUTER_NAME})"
        assert quote.amount == Decimal("50")

    def test_below_bulk_threshold(self, strategy):
        """Four routers without a role earn nothing."""
        assert strategy.quote(router_cart(4)) is None

    def test_role_rule_wins_on_priority(self, strategy):
        """distro10 customers get the VIP rule from the first unit."""
        quote = strategy.quote(router_cart(2, roles={"distro10"}))
        assert quote.label == f"VIP Discount ({ROUTER_NAME})"
        assert quote.amount == Decimal("20")

    def test_role_rule_beats_bulk_rule(self, strategy):
        """When both match, the higher priority rule is used."""
        quote = strategy.quote(router_cart(6, roles={"distro10"}))
        assert quote.label.startswith("VIP Discount")

    def test_variations_roll_up_to_parent(self, strategy):
        """Variation lines count toward the parent product."""
        cart = make_cart(items=[
            LineItem("801", 3, Decimal("327"), parent_id=ROUTER_ID, name=ROUTER_NAME),
            LineItem("802", 2, Decimal("218"), parent_id=ROUTER_ID, name=ROUTER_NAME),
        ])
        quote = strategy.quote(cart)
        assert quote.amount == Decimal("50")

    def test_product_not_in_cart(self, strategy):
        """Other products never trigger the rule."""
        assert strategy.quote(make_cart()) is None

    def test_configured_product_name(self):
        """A configured product name is used in the label and is a managed name."""
        rules = [BulkRuleConfig(product_id=7, amount_per_item=Decimal("2"),
                                min_quantity=1, product_name="Cable")]
        strategy = PerItemQuantityStrategy("7", rules)
        assert "Bulk Discount (Cable)" in strategy.possible_labels()
        cart = make_cart(items=[LineItem("7", 3, Decimal("30"))])
        assert strategy.quote(cart).label == "Bulk Discount (Cable)"

    def test_threshold_message(self, strategy):
        """Threshold preview reports what a quantity would earn."""
        message = strategy.threshold_message(5)
        assert message.rule_name == "Bulk Discount"
        assert message.message == "Quantity discount achieved - will be applied at cart"
        assert message.threshold == 5

        vip = strategy.threshold_message(1, roles=["distro10"])
        assert vip.message == "VIP discount active - savings applied at cart"
        assert vip.threshold == 1

        assert strategy.threshold_message(3) is None

    def test_unknown_product(self, bulk_settings):
        """A strategy needs at least one rule for its product."""
        with pytest.raises(FeeConfigurationError):
            PerItemQuantityStrategy("999", bulk_settings.bulk_rules)


class TestDiscountRule:
    """Tests for DiscountRule."""

    def test_entry_is_negative(self, settings):
        """The quote magnitude becomes a negative discount entry."""
        rule = DiscountRule(TieredSpendStrategy(settings.vip_tiers))
        entry = rule.evaluate(make_cart(lifetime_spend="600"))
        assert entry.kind == FeeKind.DISCOUNT
        assert entry.amount == Decimal("-54.5")
        assert entry.rule_id == "discount:tiered_spend"
        assert entry.taxable is True

    def test_no_quote_no_entry(self, settings):
        """Non-qualifying carts produce no entry."""
        rule = DiscountRule(TieredSpendStrategy(settings.vip_tiers))
        assert rule.evaluate(make_cart()) is None

    def test_zero_quote_no_entry(self, fixed_strategy):
        """A zero discount is absence, not a zero entry."""
        fixed_strategy.amount = Decimal("0")
        assert DiscountRule(fixed_strategy).evaluate(make_cart()) is None

    def test_managed_names(self, fixed_strategy):
        """Managed names come from the strategy."""
        assert DiscountRule(fixed_strategy).managed_names() == frozenset({"Promo Discount"})


class TestBuildDiscountRules:
    """Tests for build_discount_rules."""

    def test_tiered_by_default(self, settings):
        """Default settings build a single tiered rule."""
        rules = build_discount_rules(settings)
        assert len(rules) == 1
        assert isinstance(rules[0].strategy, TieredSpendStrategy)

    def test_per_item_one_rule_per_product(self):
        """Per-item configuration builds one rule per product group."""
        settings = CartFeeSettings(
            _env_file=None,
            discount_strategy="per_item_quantity",
            bulk_rules=[
                BulkRuleConfig(product_id="80", amount_per_item=Decimal("10"), min_quantity=5),
                BulkRuleConfig(product_id="647", amount_per_item=Decimal("5"), min_quantity=5),
                BulkRuleConfig(product_id="80", amount_per_item=Decimal("10"),
                               min_quantity=1, role="distro10", priority=100),
            ],
        )
        rules = build_discount_rules(settings)
        assert [r.strategy.product_id for r in rules] == ["80", "647"]
        assert len({r.rule_id for r in rules}) == 2

    def test_per_item_requires_rules(self):
        """Per-item strategy without rules is a configuration error."""
        settings = CartFeeSettings(
            _env_file=None, discount_strategy="per_item_quantity", bulk_rules=[]
        )
        with pytest.raises(FeeConfigurationError):
            build_discount_rules(settings)

    def test_taxable_flag_from_settings(self):
        """Discount taxability follows configuration."""
        settings = CartFeeSettings(_env_file=None, discount_taxable=False)
        entry = build_discount_rules(settings)[0].evaluate(make_cart(lifetime_spend="600"))
        assert entry.taxable is False
