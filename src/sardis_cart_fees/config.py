"""Configuration surface for the cart fee engine."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from sardis_cart_fees.money import percent_label


class TierConfig(BaseModel):
    """One lifetime-spend tier of the VIP discount."""
    name: str
    min_lifetime_spend: Decimal
    percent: Decimal  # whole percent, 10 means 10%
    min_subtotal: Decimal = Decimal("0")

    @field_validator("percent")
    @classmethod
    def validate_percent(cls, v: Decimal) -> Decimal:
        if v <= 0 or v > 100:
            raise ValueError(f"Tier percent must be in (0, 100], got {v}")
        return v

    @property
    def label(self) -> str:
        return f"VIP {self.name} Discount ({percent_label(self.percent / 100)})"


class BulkRuleConfig(BaseModel):
    """One per-item quantity discount rule for a product group."""
    product_id: str
    amount_per_item: Decimal
    min_quantity: int = 1
    role: Optional[str] = None  # None: any customer
    priority: int = 0
    label: str = "Bulk Discount"
    product_name: str = ""  # empty: take the name from the cart line
    threshold_message: str = ""

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, v):
        return str(v)

    @field_validator("amount_per_item")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount_per_item must not be negative")
        return v


def _default_tiers() -> List[TierConfig]:
    return [
        TierConfig(name="Platinum", min_lifetime_spend=Decimal("500"),
                   percent=Decimal("10"), min_subtotal=Decimal("500")),
        TierConfig(name="Gold", min_lifetime_spend=Decimal("300"),
                   percent=Decimal("8"), min_subtotal=Decimal("300")),
        TierConfig(name="Silver", min_lifetime_spend=Decimal("100"),
                   percent=Decimal("5"), min_subtotal=Decimal("100")),
    ]


def _default_bulk_rules() -> List[BulkRuleConfig]:
    return [
        BulkRuleConfig(
            product_id="80",
            amount_per_item=Decimal("10"),
            min_quantity=1,
            role="distro10",
            priority=100,
            label="VIP Discount",
            threshold_message="VIP discount active - savings applied at cart",
        ),
        BulkRuleConfig(
            product_id="80",
            amount_per_item=Decimal("10"),
            min_quantity=5,
            priority=50,
            label="Bulk Discount",
            threshold_message="Quantity discount achieved - will be applied at cart",
        ),
    ]


class CartFeeSettings(BaseSettings):
    """Cart fee engine configuration."""

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"
    currency: str = "USD"

    # Payment-method surcharge
    surcharge_enabled: bool = True
    surcharge_payment_method: str = "intuit_payments_credit_card"
    surcharge_rate: Decimal = Decimal("0.03")
    surcharge_label: str = ""
    surcharge_taxable: bool = True

    # Discounts
    discount_strategy: Literal["tiered_spend", "per_item_quantity"] = "tiered_spend"
    discount_taxable: bool = True
    vip_tiers: List[TierConfig] = Field(default_factory=_default_tiers)
    bulk_rules: List[BulkRuleConfig] = Field(default_factory=_default_bulk_rules)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    class Config:
        env_prefix = "SARDIS_CART_FEES_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @field_validator("surcharge_rate", mode="before")
    @classmethod
    def parse_rate(cls, v):
        """Floats go through str so 0.03 stays 0.03."""
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("surcharge_rate")
    @classmethod
    def validate_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError(f"surcharge_rate must be in [0, 1), got {v}")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("vip_tiers")
    @classmethod
    def sort_tiers(cls, v: List[TierConfig]) -> List[TierConfig]:
        """Highest tier first, so the first match wins."""
        return sorted(v, key=lambda t: t.min_lifetime_spend, reverse=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def resolved_surcharge_label(self) -> str:
        if self.surcharge_label:
            return self.surcharge_label
        return f"Credit Card Surcharge ({percent_label(self.surcharge_rate)})"


@lru_cache
def load_settings(env_file: str | None = None) -> CartFeeSettings:
    """Load CartFeeSettings once per process."""
    env_path = Path(env_file) if env_file else None
    return CartFeeSettings(_env_file=env_path)
