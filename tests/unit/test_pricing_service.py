"""
Unit tests for the pricing calculator.

Run: pytest tests/unit/test_pricing_service.py -v
"""

import math

import pytest

from models.settings import TenantPricingConfig
from services.pricing_service import (
    round_to_precision,
    round2,
    calc_cost_after_discount,
    calc_sell_price,
    calculate_price_entry,
)


class TestRounding:
    """Tests for round_to_precision() and round2()"""

    def test_half_up_on_binary_boundary(self):
        assert round2(10.125) == 10.13

    def test_three_places(self):
        assert round_to_precision(1.23456, 3) == 1.235

    def test_precision_is_clamped(self):
        assert round_to_precision(1.5, -3) == 2.0
        assert round_to_precision(1.123456789123, 20) == pytest.approx(1.12345679)

    def test_non_finite_is_zero(self):
        assert round_to_precision(float("nan"), 2) == 0.0
        assert round_to_precision(math.inf, 2) == 0.0


class TestCalcCostAfterDiscount:
    """Tests for calc_cost_after_discount()"""

    def test_applies_discount(self):
        assert calc_cost_after_discount(100, 10) == 90.0

    @pytest.mark.parametrize("cost", [0.01, 1.0, 9.99, 99.99, 118.0, 1234.56])
    @pytest.mark.parametrize("discount", [*range(0, 101, 5), 0.5, 33.3, 99.9])
    def test_never_exceeds_cost(self, cost, discount):
        result = calc_cost_after_discount(cost, discount)

        assert 0 <= result <= cost

    def test_full_discount_is_free(self):
        assert calc_cost_after_discount(59.9, 100) == 0.0

    @pytest.mark.parametrize("discount", [0, None, -5])
    def test_no_discount_passes_cost_through(self, discount):
        assert calc_cost_after_discount(99.999, discount) == 99.999


class TestCalcSellPrice:
    """Tests for calc_sell_price()"""

    def test_gross_cost_with_margin_and_vat(self):
        result = calc_sell_price(118, margin_percent=30, vat_percent=18)

        assert result == 153.4

    def test_margin_without_vat(self):
        result = calc_sell_price(100, margin_percent=50, vat_percent=18, use_vat=False)

        assert result == 150.0

    @pytest.mark.parametrize("cost", [118.0, 5.9, 10.01, 99.99, 1234.56])
    def test_vat_only_returns_gross_cost(self, cost):
        result = calc_sell_price(cost, margin_percent=30, vat_percent=18, use_margin=False, use_vat=True)

        assert result == round2(cost)

    def test_nothing_enabled_returns_rounded_cost(self):
        result = calc_sell_price(
            10.006, margin_percent=50, vat_percent=18, use_margin=False, use_vat=False
        )

        assert result == 10.01

    def test_discounted_cost_wins(self):
        result = calc_sell_price(
            100,
            margin_percent=0,
            vat_percent=18,
            cost_price_after_discount=90,
            use_margin=False,
        )

        assert result == 90.0


class TestCalculatePriceEntry:
    """Tests for calculate_price_entry()"""

    def test_uses_tenant_config(self):
        config = TenantPricingConfig(global_margin_percent=20, use_margin=True)

        result = calculate_price_entry(100, 10, config)

        assert result.cost_price == 100.0
        assert result.discount_percent == 10.0
        assert result.cost_price_after_discount == 90.0
        assert result.margin_percent == 20
        assert result.vat_percent == 18.0
        assert result.sell_price == 108.0

    def test_overrides(self):
        config = TenantPricingConfig(global_margin_percent=20, use_margin=True)

        result = calculate_price_entry(100, None, config, vat_override=0, margin_override=50)

        assert result.vat_percent == 0
        assert result.margin_percent == 50
        assert result.discount_percent == 0.0
        assert result.sell_price == 150.0

    def test_tenant_precision(self):
        config = TenantPricingConfig(decimal_precision=0)

        result = calculate_price_entry(10.4, None, config)

        assert result.cost_price == 10.0
        assert result.sell_price == 10.0
