"""Shared fixtures for the cart fee engine tests."""
from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

import pytest

# Add source to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

os.environ.setdefault("SARDIS_CART_FEES_ENVIRONMENT", "dev")

from sardis_cart_fees.config import CartFeeSettings, load_settings
from sardis_cart_fees.discounts import DiscountStrategy
from sardis_cart_fees.models import CartState, DiscountQuote, LineItem, SessionContext

CARD = "intuit_payments_credit_card"
ROUTER_ID = "80"
ROUTER_NAME = "I-22 Wireless Router"


def make_cart(
    subtotal: str = "545.00",
    shipping: str = "26.26",
    payment_method: Optional[str] = CARD,
    customer_id: Optional[str] = "cust_1",
    lifetime_spend: Optional[str] = None,
    items: Optional[List[LineItem]] = None,
    roles=(),
) -> CartState:
    if items is None:
        items = [LineItem("81", 5, Decimal(subtotal), name="Cudy LT400")]
    return CartState(
        subtotal=Decimal(subtotal),
        shipping_total=Decimal(shipping),
        payment_method=payment_method,
        customer_id=customer_id,
        customer_lifetime_spend=Decimal(lifetime_spend) if lifetime_spend else None,
        line_items=tuple(items),
        customer_roles=frozenset(roles),
    )


def router_cart(quantity: int = 5, **kwargs) -> CartState:
    """Cart holding only the bulk-discounted router."""
    items = [LineItem(ROUTER_ID, quantity, Decimal("109") * quantity, name=ROUTER_NAME)]
    return make_cart(items=items, **kwargs)


class FixedDiscountStrategy(DiscountStrategy):
    """Quotes a settable amount; raises when ``fail`` is set."""

    def __init__(self, amount: str = "50.00", label: str = "Promo Discount"):
        self.amount = Decimal(amount)
        self.label = label
        self.fail = False

    @property
    def name(self) -> str:
        return "fixed"

    def quote(self, cart: CartState) -> Optional[DiscountQuote]:
        if self.fail:
            raise RuntimeError("discount source unavailable")
        if self.amount <= 0:
            return None
        return DiscountQuote(label=self.label, amount=self.amount)

    def possible_labels(self) -> List[str]:
        return [self.label]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; reset between tests."""
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


@pytest.fixture
def settings():
    """Default settings, ignoring any local .env file."""
    return CartFeeSettings(_env_file=None)


@pytest.fixture
def bulk_settings():
    """Settings selecting the per-item quantity discount."""
    return CartFeeSettings(_env_file=None, discount_strategy="per_item_quantity")


@pytest.fixture
def ctx():
    """Fresh session context."""
    return SessionContext(session_id="sess_test")


@pytest.fixture
def fixed_strategy():
    """Controllable discount strategy."""
    return FixedDiscountStrategy()
