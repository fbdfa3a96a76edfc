"""
Integration Tests - Dimension Seeding
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from analytics_dw.database.connection import get_db
from analytics_dw.database.models import AuditLog, DimCustomer, DimDate, DimLocation, DimProduct
from analytics_dw.ingestion.seed import build_date_rows, date_key, seed_dim_date, seed_dimensions


def test_build_date_rows():
    friday, saturday = build_date_rows(date(2024, 3, 15), date(2024, 3, 16))

    assert friday["date_key"] == 20240315
    assert friday["quarter"] == 1
    assert friday["week"] == 11
    assert friday["day_name"] == "Friday"
    assert friday["month_name"] == "March"
    assert friday["is_weekend"] is False
    assert saturday["is_weekend"] is True


def test_leap_year_range():
    rows = build_date_rows(date(2024, 2, 1), date(2024, 3, 1))

    assert len(rows) == 30
    assert date_key(date(2024, 2, 29)) in [r["date_key"] for r in rows]


async def date_count():
    async with get_db() as db:
        return (await db.execute(select(func.count()).select_from(DimDate))).scalar()


class TestSeedDimDate:
    """Tests for date dimension seeding"""

    async def test_seed_range(self, warehouse):
        async with get_db() as db:
            inserted = await seed_dim_date(db, date(2024, 1, 1), date(2024, 12, 31))

        assert inserted == 366
        assert await date_count() == 366

    async def test_reseeding_is_idempotent(self, warehouse):
        async with get_db() as db:
            await seed_dim_date(db, date(2024, 1, 1), date(2024, 1, 31))
        async with get_db() as db:
            again = await seed_dim_date(db, date(2024, 1, 1), date(2024, 1, 31))
        async with get_db() as db:
            extended = await seed_dim_date(db, date(2024, 1, 15), date(2024, 2, 14))

        assert again == 0
        assert extended == 14
        assert await date_count() == 45

    async def test_reversed_range(self, warehouse):
        with pytest.raises(ValueError):
            async with get_db() as db:
                await seed_dim_date(db, date(2024, 2, 1), date(2024, 1, 1))


@pytest.fixture
def dimension_dir(tmp_path):
    (tmp_path / "customers.csv").write_text(
        "customer_id,name,email,segment,city,state,country\n"
        "C001,Alice Smith,alice@example.com,Consumer,Austin,TX,US\n"
        "C002, Bob Jones ,bob@example.com,Corporate,Denver,CO,US\n"
    )
    (tmp_path / "products.csv").write_text(
        "product_id,sku,name,category,unit_cost,unit_price,launch_date,discontinue_date\n"
        "P001,SKU-001,Desk Lamp,Furniture,6.00,10.00,2020-01-01,\n"
        "P002,SKU-002,Old Stapler,Office Supplies,,4.00,2018-05-01,2023-12-31\n"
    )
    return tmp_path


class TestSeedDimensions:
    """Tests for dimension CSV seeding"""

    async def test_seed_from_directory(self, warehouse, dimension_dir):
        async with get_db() as db:
            counts = await seed_dimensions(db, dimension_dir, as_of=date(2024, 1, 1))

        assert counts == {"dim_customer": 2, "dim_product": 2, "dim_location": 0}

        async with get_db() as db:
            customers = (await db.execute(
                select(DimCustomer).order_by(DimCustomer.customer_id)
            )).scalars().all()
            products = {
                p.product_id: p for p in (await db.execute(select(DimProduct))).scalars().all()
            }
            audits = (await db.execute(select(AuditLog))).scalars().all()

        assert [(c.version, c.is_current, c.effective_date) for c in customers] == [
            (1, True, date(2024, 1, 1)),
            (1, True, date(2024, 1, 1)),
        ]
        assert customers[1].name == "Bob Jones"
        assert len(audits) == 2

        assert products["P001"].is_active is True
        assert products["P001"].margin_percent == Decimal("40.00")
        assert products["P002"].is_active is False
        assert products["P002"].unit_cost is None

    async def test_known_ids_skipped(self, warehouse, dimension_dir):
        async with get_db() as db:
            await seed_dimensions(db, dimension_dir)
        async with get_db() as db:
            counts = await seed_dimensions(db, dimension_dir)

        assert counts["dim_customer"] == 0
        assert counts["dim_product"] == 0

    async def test_locations(self, warehouse, tmp_path):
        (tmp_path / "locations.csv").write_text(
            "location_id,location_name,location_type,city,state\n"
            "L001,Austin Store,store,Austin,TX\n"
        )

        async with get_db() as db:
            counts = await seed_dimensions(db, tmp_path)
        async with get_db() as db:
            location = (await db.execute(select(DimLocation))).scalar_one()

        assert counts["dim_location"] == 1
        assert location.location_name == "Austin Store"
        assert location.is_active is True
