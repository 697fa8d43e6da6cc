"""Payment-method surcharge rule."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import FrozenSet, Optional

from sardis_cart_fees.config import CartFeeSettings
from sardis_cart_fees.ledger import FeeEntry, FeeKind
from sardis_cart_fees.models import CartState
from sardis_cart_fees.money import ZERO, percent_label, round_money, to_money

logger = logging.getLogger(__name__)


class PaymentMethodSurchargeRule:
    """
    Percentage surcharge for one payment method.

    The base is subtotal plus shipping minus the discount total of the same
    pass, floored at zero. The result is rounded to the currency minor unit
    here and nowhere else. Any other payment method yields no entry at all.
    """

    def __init__(
        self,
        payment_method: str,
        rate: Decimal,
        label: Optional[str] = None,
        taxable: bool = True,
        rule_id: Optional[str] = None,
    ):
        rate = to_money(rate)
        if rate < ZERO or rate >= 1:
            raise ValueError(f"Surcharge rate must be in [0, 1), got {rate}")
        self.payment_method = payment_method
        self.rate = rate
        self.label = label or f"Credit Card Surcharge ({percent_label(rate)})"
        self.taxable = taxable
        self.rule_id = rule_id or f"surcharge:{payment_method}"

    @classmethod
    def from_settings(cls, settings: CartFeeSettings) -> "PaymentMethodSurchargeRule":
        return cls(
            payment_method=settings.surcharge_payment_method,
            rate=settings.surcharge_rate,
            label=settings.resolved_surcharge_label,
            taxable=settings.surcharge_taxable,
        )

    def managed_names(self) -> FrozenSet[str]:
        return frozenset({self.label})

    def applies_to(self, cart: CartState) -> bool:
        return cart.payment_method == self.payment_method

    def base(self, cart: CartState, discount_total: Decimal) -> Decimal:
        """Surcharge base, clamped at zero."""
        raw = cart.subtotal + cart.shipping_total - discount_total
        if raw < ZERO:
            logger.warning(
                f"Surcharge base {raw} is negative "
                f"(subtotal={cart.subtotal}, shipping={cart.shipping_total}, "
                f"discounts={discount_total}); clamping to 0"
            )
            return ZERO
        return raw

    def evaluate(self, cart: CartState, discount_total: Decimal) -> Optional[FeeEntry]:
        if not self.applies_to(cart):
            return None
        return self.entry_for_base(self.base(cart, discount_total), cart.currency)

    def entry_for_base(self, base: Decimal, currency: str = "USD") -> FeeEntry:
        return FeeEntry(
            name=self.label,
            kind=FeeKind.SURCHARGE,
            amount=round_money(base * self.rate, currency),
            taxable=self.taxable,
            rule_id=self.rule_id,
        )

    def __repr__(self) -> str:
        return (
            f"PaymentMethodSurchargeRule(payment_method={self.payment_method!r}, "
            f"rate={self.rate})"
        )
