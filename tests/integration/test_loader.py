"""
Integration Tests - Incremental Sales Loader
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from analytics_dw.database.connection import get_db
from analytics_dw.database.models import DimCustomer, EtlLog, FactSale, RunStatus, StagingSale
from analytics_dw.etl.loader import PROCESS_NAME, load_sales_data
from analytics_dw.etl.scd import CustomerAttributes, update_customer_scd

MARCH = (date(2024, 3, 1), date(2024, 3, 31))


async def load(start=MARCH[0], end=MARCH[1]):
    async with get_db() as db:
        return await load_sales_data(db, start, end)


async def facts():
    async with get_db() as db:
        result = await db.execute(select(FactSale).order_by(FactSale.transaction_id))
        return {f.transaction_id: f for f in result.scalars().all()}


class TestLoadSalesData:
    """Tests for the incremental fact load"""

    async def test_new_transactions_inserted(self, seeded_warehouse, stage, staged_sale):
        await stage(
            staged_sale("T1"),
            staged_sale("T2", customer_id="C002", product_id="P002", quantity=1,
                        unit_price=Decimal("25.00"), total_amount=Decimal("25.00")),
        )

        result = await load()

        assert result.rows_staged == 2
        assert result.rows_inserted == 2
        assert result.rows_updated == 0
        assert result.rows_loaded == 2

        loaded = await facts()
        t1 = loaded["T1"]
        assert t1.date_key == 20240315
        assert t1.quantity == 2
        assert t1.total_amount == Decimal("20.00")
        assert t1.cost_amount == Decimal("12.00")
        assert t1.profit_amount == Decimal("8.00")
        # Product without unit cost: cost and profit stay unknown
        assert loaded["T2"].cost_amount is None
        assert loaded["T2"].profit_amount is None

    async def test_rows_outside_window_ignored(self, seeded_warehouse, stage, staged_sale):
        await stage(
            staged_sale("T1"),
            staged_sale("T2", order_date=date(2024, 4, 1)),
            staged_sale("T3", order_date=date(2024, 2, 29)),
        )

        result = await load()

        assert result.rows_staged == 1
        assert list(await facts()) == ["T1"]

    async def test_window_bounds_inclusive(self, seeded_warehouse, stage, staged_sale):
        await stage(
            staged_sale("T1", order_date=date(2024, 3, 1)),
            staged_sale("T2", order_date=date(2024, 3, 31)),
        )

        result = await load()

        assert result.rows_inserted == 2

    async def test_unmatched_rows_skipped(self, seeded_warehouse, stage, staged_sale):
        await stage(
            staged_sale("T1"),
            staged_sale("T2", product_id="P999"),
            staged_sale("T3", customer_id="C999"),
            staged_sale("T4", location_id="L999"),
        )

        result = await load()

        assert result.rows_unmatched == 3
        assert result.rows_inserted == 1
        assert list(await facts()) == ["T1"]

    async def test_order_date_missing_from_date_dimension(self, seeded_warehouse, stage, staged_sale):
        await stage(staged_sale("T1", order_date=date(2025, 1, 10)))

        result = await load(date(2025, 1, 1), date(2025, 1, 31))

        assert result.rows_unmatched == 1
        assert await facts() == {}

    async def test_invalid_rows_rejected(self, seeded_warehouse, stage, staged_sale):
        await stage(
            staged_sale("T1"),
            staged_sale("T2", quantity=0),
            staged_sale("T3", unit_price=Decimal("-1.00")),
        )

        result = await load()

        assert result.rows_rejected == 2
        assert result.rows_inserted == 1
        assert list(await facts()) == ["T1"]

    async def test_reload_refreshes_only_quantity_and_total(self, seeded_warehouse, stage, staged_sale):
        await stage(staged_sale("T1"))
        await load()

        async with get_db() as db:
            await db.execute(
                update(StagingSale)
                .where(StagingSale.transaction_id == "T1")
                .values(
                    quantity=3,
                    unit_price=Decimal("12.00"),
                    total_amount=Decimal("36.00"),
                    payment_method="paypal",
                )
            )

        result = await load()

        assert result.rows_updated == 1
        assert result.rows_inserted == 0

        t1 = (await facts())["T1"]
        assert t1.quantity == 3
        assert t1.total_amount == Decimal("36.00")
        assert t1.unit_price == Decimal("10.00")
        assert t1.payment_method == "credit_card"
        assert t1.cost_amount == Decimal("12.00")

    async def test_reload_without_changes_updates_nothing(self, seeded_warehouse, stage, staged_sale):
        await stage(staged_sale("T1"))
        await load()

        result = await load()

        assert result.rows_inserted == 0
        assert result.rows_updated == 0
        assert len(await facts()) == 1

    async def test_sales_attach_to_current_customer_version(self, seeded_warehouse, stage, staged_sale):
        async with get_db() as db:
            await update_customer_scd(
                db, "C001",
                CustomerAttributes(name="Alice Smith", email="alice@example.com",
                                   segment="Consumer", city="Dallas", state="TX"),
                as_of=date(2024, 3, 10),
            )
        await stage(staged_sale("T1"))

        await load()

        t1 = (await facts())["T1"]
        async with get_db() as db:
            version = await db.get(DimCustomer, t1.customer_key)
        assert version.version == 2
        assert version.city == "Dallas"

    async def test_run_logged(self, seeded_warehouse, stage, staged_sale):
        await stage(staged_sale("T1"), staged_sale("T2"))

        await load()

        async with get_db() as db:
            entries = (await db.execute(select(EtlLog))).scalars().all()
        assert len(entries) == 1
        assert entries[0].process_name == PROCESS_NAME
        assert entries[0].status == RunStatus.SUCCESS
        assert entries[0].rows_processed == 2
        assert entries[0].end_time >= entries[0].start_time

    async def test_reversed_window_rejected(self, seeded_warehouse):
        with pytest.raises(ValueError):
            await load(date(2024, 3, 31), date(2024, 3, 1))
