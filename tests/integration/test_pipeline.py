"""
Integration Tests - Warehouse ETL Facade and Catalog Maintenance
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from structlog.contextvars import get_contextvars

from analytics_dw.database.connection import get_db
from analytics_dw.database.models import AggDailySales, DimProduct, EtlLog, FactSale, RunStatus
from analytics_dw.etl import loader, ltv
from analytics_dw.etl.catalog import update_product
from analytics_dw.etl.pipeline import WarehouseETL
from analytics_dw.etl.run_log import recent_runs
from analytics_dw.etl.scd import CustomerAttributes, ScdStatus, get_customer_history

MARCH = (date(2024, 3, 1), date(2024, 3, 31))


async def log_entries():
    async with get_db() as db:
        return (await db.execute(select(EtlLog).order_by(EtlLog.log_id))).scalars().all()


def break_validation(monkeypatch):
    def explode(values):
        raise RuntimeError("validation service down")

    monkeypatch.setattr(loader, "validate_sale", explode)


class TestWarehouseETL:
    """Tests for the run facade"""

    async def test_load_and_aggregate(self, seeded_warehouse, stage, staged_sale):
        await stage(staged_sale("T1"), staged_sale("T2", customer_id="C002"))
        etl = WarehouseETL()

        loaded = await etl.load_sales(*MARCH)
        aggregated = await etl.generate_daily_aggregates(date(2024, 3, 15))

        assert loaded.rows_inserted == 2
        assert aggregated.aggregates_created == 2
        entries = await log_entries()
        assert [e.process_name for e in entries] == [loader.PROCESS_NAME, "sp_generate_daily_aggregates"]
        assert all(e.status == RunStatus.SUCCESS for e in entries)

    async def test_failed_run_rolled_back_and_logged(self, seeded_warehouse, stage, staged_sale, monkeypatch):
        await stage(staged_sale("T1"))
        break_validation(monkeypatch)

        with pytest.raises(RuntimeError, match="validation service down"):
            await WarehouseETL(record_failed_runs=True).load_sales(*MARCH)

        async with get_db() as db:
            assert (await db.execute(select(FactSale))).scalars().all() == []

        entries = await log_entries()
        assert len(entries) == 1
        assert entries[0].status == RunStatus.FAILURE
        assert entries[0].process_name == loader.PROCESS_NAME
        assert entries[0].rows_processed == 0
        assert "RuntimeError" in entries[0].error_message

    async def test_failure_logging_can_be_disabled(self, seeded_warehouse, stage, staged_sale, monkeypatch):
        await stage(staged_sale("T1"))
        break_validation(monkeypatch)

        with pytest.raises(RuntimeError):
            await WarehouseETL(record_failed_runs=False).load_sales(*MARCH)

        assert await log_entries() == []

    async def test_failed_aggregate_keeps_previous_rollup(self, seeded_warehouse, stage, staged_sale, monkeypatch):
        await stage(staged_sale("T1"))
        etl = WarehouseETL(record_failed_runs=True)
        await etl.load_sales(*MARCH)
        await etl.generate_daily_aggregates(date(2024, 3, 15))

        def explode(total_revenue, order_count):
            raise ZeroDivisionError("bad order count")

        monkeypatch.setattr("analytics_dw.etl.aggregator.average_order_value", explode)

        with pytest.raises(ZeroDivisionError):
            await etl.generate_daily_aggregates(date(2024, 3, 15))

        async with get_db() as db:
            rows = (await db.execute(select(AggDailySales))).scalars().all()
        assert len(rows) == 1
        assert rows[0].total_revenue == Decimal("20.00")

    async def test_upsert_customer(self, seeded_warehouse):
        etl = WarehouseETL()

        created = await etl.upsert_customer("C003", CustomerAttributes(name="Cara Diaz", city="Tulsa"))
        updated = await etl.upsert_customer("C003", CustomerAttributes(name="Cara Diaz", city="Omaha"))
        unchanged = await etl.upsert_customer("C003", CustomerAttributes(name="Cara Diaz", city="Omaha"))

        assert created.status == ScdStatus.CREATED
        assert created.current_version == 1
        assert updated.status == ScdStatus.UPDATED
        assert updated.current_version == 2
        assert unchanged.status == ScdStatus.NO_CHANGE

        async with get_db() as db:
            versions = await get_customer_history(db, "C003")
        assert [v.city for v in versions] == ["Tulsa", "Omaha"]

    async def test_check_integrity(self, seeded_warehouse):
        etl = WarehouseETL()
        await etl.update_customer("C001", CustomerAttributes(name="Alice Smith", city="Dallas"))

        assert await etl.check_integrity() == []

    async def test_recent_runs_newest_first(self, seeded_warehouse):
        etl = WarehouseETL()
        await etl.refresh_lifetime_values()
        await etl.generate_daily_aggregates(date(2024, 3, 15))

        async with get_db() as db:
            runs = await recent_runs(db)
            ltv_runs = await recent_runs(db, process_name="sp_update_customer_ltv")

        assert [r.process_name for r in runs] == ["sp_generate_daily_aggregates", "sp_update_customer_ltv"]
        assert len(ltv_runs) == 1

    async def test_run_context_bound_during_operation(self, seeded_warehouse, monkeypatch):
        seen = {}

        async def refresh(db):
            seen.update(get_contextvars())
            return 0

        monkeypatch.setattr(ltv, "update_customer_ltv", refresh)

        await WarehouseETL().refresh_lifetime_values()

        assert seen["process_name"] == ltv.PROCESS_NAME
        assert seen["run_id"]
        assert "process_name" not in get_contextvars()


class TestUpdateProduct:
    """Tests for product maintenance"""

    async def test_discontinued_product_deactivated(self, seeded_warehouse):
        async with get_db() as db:
            product = await update_product(
                db, "P001", today=date(2024, 6, 1), discontinue_date=date(2024, 5, 31)
            )
            assert product.is_active is False

        async with get_db() as db:
            stored = (await db.execute(select(DimProduct).where(DimProduct.product_id == "P001"))).scalar_one()
        assert stored.is_active is False

    async def test_future_discontinue_date_keeps_product_active(self, seeded_warehouse):
        async with get_db() as db:
            product = await update_product(
                db, "P001", today=date(2024, 6, 1), discontinue_date=date(2024, 12, 31)
            )

        assert product.is_active is True

    async def test_price_change(self, seeded_warehouse):
        async with get_db() as db:
            product = await update_product(db, "P002", unit_price=Decimal("27.50"))

        assert product.unit_price == Decimal("27.50")

    async def test_unknown_product(self, seeded_warehouse):
        async with get_db() as db:
            assert await update_product(db, "P404", unit_price=Decimal("1.00")) is None

    @pytest.mark.parametrize("field", ["product_id", "product_key", "no_such_column"])
    async def test_refused_fields(self, seeded_warehouse, field):
        with pytest.raises(ValueError):
            async with get_db() as db:
                await update_product(db, "P001", **{field: "X"})

    async def test_natural_key_cannot_be_renamed(self, seeded_warehouse):
        with pytest.raises(ValueError, match="product_id"):
            async with get_db() as db:
                await update_product(db, "P001", product_id="P009", name="Renamed")

        async with get_db() as db:
            ids = (await db.execute(select(DimProduct.product_id).order_by(DimProduct.product_id))).scalars().all()
            lamp = (await db.execute(select(DimProduct).where(DimProduct.product_id == "P001"))).scalar_one()
        assert ids == ["P001", "P002"]
        assert lamp.name == "Desk Lamp"
