"""
Discount rules.

A discount rule turns a cart snapshot into at most one negative fee entry.
How much to take off is delegated to a ``DiscountStrategy``; the rule only
owns the entry's identity (rule id, kind, taxability) and the set of names
it may ever write, so a later pass can remove whatever an earlier pass left.

Strategies:
    TieredSpendStrategy: percent of subtotal by customer lifetime-spend tier
    PerItemQuantityStrategy: fixed amount per unit of one product group,
        picked from prioritized, optionally role-restricted quantity rules

Amounts are left unrounded here; the surcharge step is the only place
money is quantized.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from sardis_cart_fees.config import BulkRuleConfig, CartFeeSettings, TierConfig
from sardis_cart_fees.exceptions import FeeConfigurationError
from sardis_cart_fees.ledger import FeeEntry, FeeKind
from sardis_cart_fees.models import CartState, DiscountQuote, ThresholdMessage
from sardis_cart_fees.money import ZERO

logger = logging.getLogger(__name__)


class DiscountStrategy(ABC):
    """Computes the discount a cart qualifies for."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy name."""
        pass

    @abstractmethod
    def quote(self, cart: CartState) -> Optional[DiscountQuote]:
        """Discount for this cart, or None when it does not qualify."""
        pass

    @abstractmethod
    def possible_labels(self) -> List[str]:
        """Every fixed label this strategy can produce."""
        pass


class TieredSpendStrategy(DiscountStrategy):
    """
    Percent-of-subtotal discount chosen by customer lifetime spend.

    The tier is picked by lifetime spend alone; the cart subtotal must then
    reach that tier's minimum or no discount applies (no fall-through to a
    lower tier). Guests and customers without spend data never qualify.
    """

    def __init__(self, tiers: Sequence[TierConfig]):
        if not tiers:
            raise FeeConfigurationError(
                "Tiered discount needs at least one tier", setting="vip_tiers"
            )
        self._tiers = sorted(tiers, key=lambda t: t.min_lifetime_spend, reverse=True)

    @property
    def name(self) -> str:
        return "tiered_spend"

    def tier_for(self, lifetime_spend: Optional[Decimal]) -> Optional[TierConfig]:
        if lifetime_spend is None:
            return None
        for tier in self._tiers:
            if lifetime_spend >= tier.min_lifetime_spend:
                return tier
        return None

    def quote(self, cart: CartState) -> Optional[DiscountQuote]:
        if not cart.customer_id:
            return None
        tier = self.tier_for(cart.customer_lifetime_spend)
        if tier is None:
            return None
        if cart.subtotal < tier.min_subtotal:
            logger.debug(
                f"Subtotal {cart.subtotal} below {tier.name} minimum {tier.min_subtotal}"
            )
            return None
        amount = cart.subtotal * tier.percent / Decimal(100)
        return DiscountQuote(label=tier.label, amount=amount)

    def possible_labels(self) -> List[str]:
        return [tier.label for tier in self._tiers]


class PerItemQuantityStrategy(DiscountStrategy):
    """
    Fixed amount off per unit of one product group.

    Among the rules for the product whose minimum quantity and role
    requirement are met, the highest priority wins. Variations count
    toward their parent product.
    """

    def __init__(self, product_id: str, rules: Sequence[BulkRuleConfig]):
        self.product_id = str(product_id)
        self._rules = [r for r in rules if r.product_id == self.product_id]
        if not self._rules:
            raise FeeConfigurationError(
                f"No bulk rules configured for product {self.product_id}",
                setting="bulk_rules",
            )

    @property
    def name(self) -> str:
        return f"per_item_quantity:{self.product_id}"

    def match(self, quantity: int, roles: Iterable[str]) -> Optional[BulkRuleConfig]:
        """Highest-priority rule the quantity and roles qualify for."""
        role_set = set(roles)
        best: Optional[BulkRuleConfig] = None
        for rule in self._rules:
            if quantity < rule.min_quantity:
                continue
            if rule.role and rule.role not in role_set:
                continue
            if best is None or rule.priority > best.priority:
                best = rule
        return best

    def quote(self, cart: CartState) -> Optional[DiscountQuote]:
        quantity = cart.quantities_by_group().get(self.product_id, 0)
        if quantity <= 0:
            return None
        rule = self.match(quantity, cart.customer_roles)
        if rule is None:
            return None
        product_name = rule.product_name or cart.group_name(self.product_id)
        label = f"{rule.label} ({product_name})" if product_name else rule.label
        return DiscountQuote(label=label, amount=rule.amount_per_item * quantity)

    def possible_labels(self) -> List[str]:
        labels = []
        for rule in self._rules:
            labels.append(rule.label)
            if rule.product_name:
                labels.append(f"{rule.label} ({rule.product_name})")
        return labels

    def threshold_message(
        self,
        quantity: int,
        roles: Iterable[str] = (),
    ) -> Optional[ThresholdMessage]:
        """What this quantity would qualify for, without a cart."""
        rule = self.match(quantity, roles)
        if rule is None:
            return None
        return ThresholdMessage(
            rule_name=rule.label,
            message=rule.threshold_message or rule.label,
            threshold=rule.min_quantity,
        )


class DiscountRule:
    """Discount-phase rule: one strategy, at most one entry per pass."""

    def __init__(
        self,
        strategy: DiscountStrategy,
        rule_id: Optional[str] = None,
        taxable: bool = True,
    ):
        self.strategy = strategy
        self.rule_id = rule_id or f"discount:{strategy.name}"
        self.taxable = taxable

    def managed_names(self) -> FrozenSet[str]:
        return frozenset(self.strategy.possible_labels())

    def evaluate(self, cart: CartState) -> Optional[FeeEntry]:
        quote = self.strategy.quote(cart)
        if quote is None or quote.amount <= ZERO:
            return None
        return FeeEntry(
            name=quote.label,
            kind=FeeKind.DISCOUNT,
            amount=-quote.amount,
            taxable=self.taxable,
            rule_id=self.rule_id,
        )

    def __repr__(self) -> str:
        return f"DiscountRule(rule_id={self.rule_id!r})"


def build_discount_rules(settings: CartFeeSettings) -> List[DiscountRule]:
    """Discount rules for the configured strategy."""
    if settings.discount_strategy == "tiered_spend":
        return [
            DiscountRule(
                TieredSpendStrategy(settings.vip_tiers),
                taxable=settings.discount_taxable,
            )
        ]

    if settings.discount_strategy == "per_item_quantity":
        if not settings.bulk_rules:
            raise FeeConfigurationError(
                "Per-item quantity discount needs at least one bulk rule",
                setting="bulk_rules",
            )
        # One rule per product group, in configuration order
        product_ids: Dict[str, None] = {}
        for rule in settings.bulk_rules:
            product_ids.setdefault(rule.product_id, None)
        return [
            DiscountRule(
                PerItemQuantityStrategy(product_id, settings.bulk_rules),
                taxable=settings.discount_taxable,
            )
            for product_id in product_ids
        ]

    raise FeeConfigurationError(
        f"Unknown discount strategy: {settings.discount_strategy}",
        setting="discount_strategy",
    )
