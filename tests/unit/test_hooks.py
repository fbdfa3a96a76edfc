"""
Unit Tests - Write Hooks
"""
from datetime import date
from decimal import Decimal

import pytest

from analytics_dw.database.models import DimCustomer, DimProduct
from analytics_dw.etl.hooks import (
    apply_product_status,
    customer_snapshot,
    derive_cost,
    fill_profit,
    validate_sale,
)
from analytics_dw.exceptions import SaleValidationError


class TestValidateSale:
    """Tests for sales row validation"""

    def test_valid_row(self):
        validate_sale({"transaction_id": "T1", "quantity": 1, "unit_price": Decimal("0.00")})

    @pytest.mark.parametrize("quantity", [0, -1, None])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(SaleValidationError) as exc:
            validate_sale({"transaction_id": "T1", "quantity": quantity, "unit_price": Decimal("5")})

        assert exc.value.transaction_id == "T1"
        assert "Quantity" in exc.value.reason

    def test_negative_price_rejected(self):
        with pytest.raises(SaleValidationError, match="Unit price cannot be negative"):
            validate_sale({"transaction_id": "T2", "quantity": 3, "unit_price": Decimal("-0.01")})


class TestProfit:
    """Tests for cost and profit derivation"""

    def test_profit_filled_from_cost(self):
        values = fill_profit({"total_amount": Decimal("20.00"), "cost_amount": Decimal("12.00")})

        assert values["profit_amount"] == Decimal("8.00")

    def test_existing_profit_kept(self):
        values = fill_profit({
            "total_amount": Decimal("20.00"),
            "cost_amount": Decimal("12.00"),
            "profit_amount": Decimal("5.00"),
        })

        assert values["profit_amount"] == Decimal("5.00")

    def test_unknown_cost_leaves_profit_empty(self):
        values = fill_profit({"total_amount": Decimal("20.00"), "cost_amount": None})

        assert values.get("profit_amount") is None

    def test_derive_cost(self):
        assert derive_cost(Decimal("6.00"), 3) == Decimal("18.00")
        assert derive_cost(None, 3) is None


class TestProductStatus:
    """Tests for product deactivation"""

    def test_discontinued_product_deactivated(self):
        product = DimProduct(product_id="P1", is_active=True, discontinue_date=date(2024, 5, 1))

        apply_product_status(product, today=date(2024, 5, 1))

        assert product.is_active is False

    def test_future_discontinue_date_keeps_product_active(self):
        product = DimProduct(product_id="P1", is_active=True, discontinue_date=date(2024, 6, 1))

        apply_product_status(product, today=date(2024, 5, 1))

        assert product.is_active is True


def test_customer_snapshot_covers_audited_fields():
    customer = DimCustomer(
        customer_id="C1", name="Ann", email="ann@example.com", segment="Consumer", city="Reno"
    )

    assert customer_snapshot(customer) == {
        "name": "Ann",
        "email": "ann@example.com",
        "segment": "Consumer",
    }
