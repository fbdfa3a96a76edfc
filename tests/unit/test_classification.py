"""
Unit Tests - Customer Classification
"""
from datetime import date
from decimal import Decimal

import pytest

from analytics_dw.etl.classification import (
    DiscountTier,
    SalesTrend,
    classify_trend,
    get_discount_tier,
    trend_windows,
)


class TestDiscountTier:
    """Tests for tier thresholds"""

    @pytest.mark.parametrize(
        "lifetime_value, expected",
        [
            (Decimal("0"), DiscountTier.BRONZE),
            (Decimal("4999.99"), DiscountTier.BRONZE),
            (Decimal("5000"), DiscountTier.SILVER),
            (Decimal("19999.99"), DiscountTier.SILVER),
            (Decimal("20000"), DiscountTier.GOLD),
            (Decimal("49999.99"), DiscountTier.GOLD),
            (Decimal("50000"), DiscountTier.PLATINUM),
            (Decimal("1000000"), DiscountTier.PLATINUM),
        ],
    )
    def test_thresholds(self, lifetime_value, expected):
        assert get_discount_tier(lifetime_value) == expected

    def test_unknown_value_is_bronze(self):
        assert get_discount_tier(None) == DiscountTier.BRONZE

    def test_float_input(self):
        assert get_discount_tier(20000.0) == DiscountTier.GOLD


class TestSalesTrend:
    """Tests for trend labels"""

    def test_no_previous_spend_is_new(self):
        assert classify_trend(Decimal("500"), Decimal("0")) == SalesTrend.NEW
        assert classify_trend(Decimal("0"), Decimal("0")) == SalesTrend.NEW

    def test_growth_above_ten_percent(self):
        assert classify_trend(Decimal("111"), Decimal("100")) == SalesTrend.GROWING

    def test_decline_below_ninety_percent(self):
        assert classify_trend(Decimal("89"), Decimal("100")) == SalesTrend.DECLINING

    @pytest.mark.parametrize("current", [Decimal("90"), Decimal("100"), Decimal("110")])
    def test_boundaries_are_stable(self, current):
        assert classify_trend(current, Decimal("100")) == SalesTrend.STABLE


def test_trend_windows_are_adjacent():
    previous, current = trend_windows(date(2024, 5, 31), 3)

    assert current == (date(2024, 2, 29), date(2024, 5, 31))
    assert previous == (date(2023, 11, 30), date(2024, 2, 29))
