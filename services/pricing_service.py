"""
Pricing calculator.

Pure functions shared by the import engine and live price entry.

Convention: cost prices are stored GROSS (VAT-inclusive). Sell price is
derived at write time:

    net   = cost / (1 + vat)        if use_vat
    net  *= (1 + margin)            if use_margin
    sell  = net * (1 + vat)         if use_vat

Intermediate arithmetic is full precision; only the result is rounded.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
import math
import sys

from utils.number_utils import clamp_decimal_precision

if TYPE_CHECKING:
    from models.settings import TenantPricingConfig

DEFAULT_PRECISION = 2

__all__ = [
    "DEFAULT_PRECISION",
    "PriceCalculation",
    "calc_cost_after_discount",
    "calc_sell_price",
    "calculate_price_entry",
    "clamp_decimal_precision",
    "round2",
    "round_to_precision",
]


def round_to_precision(value: float, precision: int = DEFAULT_PRECISION) -> float:
    """
    Round half-up to `precision` decimal places.

    Adds machine epsilon before scaling so values like 10.125 that sit on a
    binary representation boundary round up (10.13, not 10.12).

    Args:
        value: Number to round
        precision: Decimal places, clamped to [0, 8]

    Returns:
        Rounded value (0 for NaN/inf)
    """
    if value is None or not math.isfinite(value):
        return 0.0
    factor = 10 ** clamp_decimal_precision(precision, DEFAULT_PRECISION)
    return math.floor((value + sys.float_info.epsilon) * factor + 0.5) / factor


def round2(value: float) -> float:
    """Round half-up to 2 decimal places."""
    return round_to_precision(value, 2)


def calc_cost_after_discount(
    cost: float,
    discount_percent: Optional[float],
    precision: int = DEFAULT_PRECISION
) -> float:
    """
    Apply a supplier discount to a cost.

    A discount of zero or below returns the cost untouched (not rounded).
    """
    if not discount_percent or discount_percent <= 0:
        return cost
    return round_to_precision(cost * (1 - discount_percent / 100), precision)


def calc_sell_price(
    cost_price: float,
    margin_percent: float,
    vat_percent: float,
    cost_price_after_discount: Optional[float] = None,
    use_margin: bool = True,
    use_vat: bool = True,
    precision: int = DEFAULT_PRECISION
) -> float:
    """
    Calculate the sell price from a gross cost.

    All four use_margin/use_vat combinations are valid:
        - both on: net + margin + VAT
        - margin only: cost + margin (cost treated as net)
        - VAT only: net then VAT again, i.e. the gross cost
        - neither: the cost as-is

    Args:
        cost_price: Gross cost
        margin_percent: Margin on net cost
        vat_percent: VAT rate in percent
        cost_price_after_discount: Gross discounted cost; used instead of
            cost_price when given
        use_margin: Apply margin
        use_vat: Strip and re-apply VAT
        precision: Decimal places of the result

    Returns:
        Sell price rounded to `precision`
    """
    effective = cost_price if cost_price_after_discount is None else cost_price_after_discount
    vat_factor = 1 + (vat_percent or 0) / 100

    amount = effective / vat_factor if use_vat else effective
    if use_margin:
        amount = amount * (1 + (margin_percent or 0) / 100)
    if use_vat:
        amount = amount * vat_factor

    return round_to_precision(amount, precision)


@dataclass(frozen=True)
class PriceCalculation:
    """Values written to a price entry."""
    cost_price: float
    discount_percent: float
    cost_price_after_discount: float
    margin_percent: float
    vat_percent: float
    sell_price: float


def calculate_price_entry(
    cost_price: float,
    discount_percent: Optional[float],
    config: "TenantPricingConfig",
    vat_override: Optional[float] = None,
    margin_override: Optional[float] = None
) -> PriceCalculation:
    """
    Price a single cost with a tenant's configuration.

    Args:
        cost_price: Gross cost as imported or typed
        discount_percent: Supplier discount, or None
        config: Tenant pricing settings, loaded once by the caller
        vat_override: Row-level VAT rate (import column), if any
        margin_override: Explicit margin, if any

    Returns:
        PriceCalculation with every value rounded to the tenant precision
    """
    precision = config.decimal_precision
    vat = config.vat_percent if vat_override is None else vat_override
    margin = config.global_margin_percent if margin_override is None else margin_override
    discount = discount_percent or 0.0

    cost = round_to_precision(cost_price, precision)
    after_discount = round_to_precision(
        calc_cost_after_discount(cost, discount, precision),
        precision
    )
    sell = calc_sell_price(
        cost_price=cost,
        margin_percent=margin,
        vat_percent=vat,
        cost_price_after_discount=after_discount,
        use_margin=config.use_margin,
        use_vat=config.use_vat,
        precision=precision,
    )

    return PriceCalculation(
        cost_price=cost,
        discount_percent=round_to_precision(discount, precision),
        cost_price_after_discount=after_discount,
        margin_percent=margin,
        vat_percent=vat,
        sell_price=sell,
    )
