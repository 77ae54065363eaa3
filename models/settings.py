"""
Tenant pricing settings.

One settings row per tenant (vat_percent, global_margin_percent, use_margin,
use_vat, decimal_precision). Loaded once per import and passed explicitly
to the pricing calculator.
"""

from pydantic import Field, field_validator
from typing import Any, Optional

from models.base import BaseSchema
from utils.number_utils import clamp_decimal_precision


DEFAULT_VAT_PERCENT = 18.0
DEFAULT_DECIMAL_PRECISION = 2


class TenantPricingConfig(BaseSchema):
    """
    Pricing parameters for one tenant.

    Defaults match a freshly created settings row.
    """

    vat_percent: float = Field(
        default=DEFAULT_VAT_PERCENT,
        ge=0,
        le=100,
        description="VAT rate in percent"
    )
    global_margin_percent: float = Field(
        default=0.0,
        ge=0,
        description="Margin applied to net cost"
    )
    use_margin: bool = Field(default=False, description="Apply margin when pricing")
    use_vat: bool = Field(default=False, description="Treat costs as VAT-inclusive and re-apply VAT")
    decimal_precision: int = Field(
        default=DEFAULT_DECIMAL_PRECISION,
        description="Decimal places for stored prices (0-8)"
    )

    @field_validator("decimal_precision", mode="before")
    @classmethod
    def clamp_precision(cls, v: Any) -> int:
        """Out-of-range or garbage precision falls back into [0, 8]."""
        return clamp_decimal_precision(v, DEFAULT_DECIMAL_PRECISION)

    @classmethod
    def from_row(
        cls,
        row: Optional[dict],
        default_vat_percent: float = DEFAULT_VAT_PERCENT,
        default_precision: int = DEFAULT_DECIMAL_PRECISION
    ) -> "TenantPricingConfig":
        """Build from a settings table row, tolerating NULL columns."""
        row = row or {}

        def pick(key: str, default: Any) -> Any:
            value = row.get(key)
            return default if value is None else value

        return cls(
            vat_percent=float(pick("vat_percent", default_vat_percent)),
            global_margin_percent=float(pick("global_margin_percent", 0)),
            use_margin=bool(pick("use_margin", False)),
            use_vat=bool(pick("use_vat", False)),
            decimal_precision=pick("decimal_precision", default_precision),
        )


class SellPriceRequest(BaseSchema):
    """Live price-entry calculation input."""

    cost_price: float = Field(..., ge=0, description="Gross cost (VAT-inclusive)")
    discount_percent: float = Field(0, ge=0, le=100, description="Supplier discount")
    margin_percent: Optional[float] = Field(
        None,
        ge=0,
        le=500,
        description="Overrides the tenant's global margin"
    )


class SellPriceResponse(BaseSchema):
    """Calculated prices for a single cost."""

    cost_price: float
    discount_percent: float
    cost_price_after_discount: float
    margin_percent: float
    vat_percent: float
    sell_price: float
    decimal_precision: int
