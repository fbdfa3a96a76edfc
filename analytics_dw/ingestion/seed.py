"""
Dimension Seeding

Populates dim_date for a date range and loads customer, product and location
dimension rows from CSV extracts.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import polars as pl
import structlog
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.connection import get_db, init_database
from analytics_dw.database.models import DimCustomer, DimDate, DimLocation, DimProduct
from analytics_dw.etl.hooks import apply_product_status, audit_customer_insert

logger = structlog.get_logger(__name__)

DATA_DIR = Path("./data/generated")


def date_key(d: date) -> int:
    """Surrogate key of a calendar date (YYYYMMDD)"""
    return int(d.strftime("%Y%m%d"))


def build_date_rows(start_date: date, end_date: date) -> List[Dict[str, Any]]:
    """dim_date rows for every day of an inclusive range"""
    rows = []
    for offset in range((end_date - start_date).days + 1):
        d = start_date + timedelta(days=offset)
        rows.append({
            "date_key": date_key(d),
            "full_date": d,
            "year": d.year,
            "quarter": (d.month - 1) // 3 + 1,
            "month": d.month,
            "month_name": d.strftime("%B"),
            "week": d.isocalendar()[1],
            "day_of_month": d.day,
            "day_of_week": d.weekday(),
            "day_name": d.strftime("%A"),
            "is_weekend": d.weekday() >= 5,
            "is_holiday": False,
            "fiscal_year": d.year,
            "fiscal_quarter": (d.month - 1) // 3 + 1,
        })
    return rows


async def bulk_insert(
    db: AsyncSession,
    model: Any,
    records: List[Dict[str, Any]],
    chunk_size: int = 1000,
) -> int:
    """Helper to insert a batch of records using Core insert"""
    if not records:
        return 0

    for i in range(0, len(records), chunk_size):
        await db.execute(insert(model), records[i:i + chunk_size])
    await db.flush()

    logger.info(f"Inserted {len(records)} records into {model.__tablename__}")
    return len(records)


async def seed_dim_date(db: AsyncSession, start_date: date, end_date: date) -> int:
    """
    Generate and load the date dimension.

    Dates already present are skipped, so the range may overlap earlier runs.

    Returns:
        int: Number of dates inserted
    """
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")

    logger.info("Seeding dim_date", start_date=str(start_date), end_date=str(end_date))
    result = await db.execute(
        select(DimDate.date_key).where(DimDate.full_date.between(start_date, end_date))
    )
    existing = set(result.scalars().all())

    rows = [row for row in build_date_rows(start_date, end_date) if row["date_key"] not in existing]
    return await bulk_insert(db, DimDate, rows)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _read_dimension_csv(path: Path) -> pl.DataFrame:
    df = pl.read_csv(path, infer_schema_length=0, null_values=["", "NULL", "None"])
    return df.with_columns(pl.col(pl.Utf8).str.strip_chars())


async def seed_customers(db: AsyncSession, path: Path, as_of: Optional[date] = None) -> int:
    """Load customers from CSV; each enters as its first current version"""
    logger.info("Seeding dim_customer", file=str(path))
    as_of = as_of or date.today()

    result = await db.execute(select(DimCustomer.customer_id).distinct())
    known = set(result.scalars().all())

    count = 0
    for row in _read_dimension_csv(path).to_dicts():
        if row["customer_id"] in known:
            continue
        customer = DimCustomer(
            customer_id=row["customer_id"],
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
            segment=row.get("segment"),
            acquisition_channel=row.get("acquisition_channel"),
            address_line1=row.get("address_line1"),
            city=row.get("city"),
            state=row.get("state"),
            country=row.get("country"),
            postal_code=row.get("postal_code"),
            lifetime_value=Decimal("0"),
            effective_date=as_of,
            expiry_date=None,
            is_current=True,
            version=1,
        )
        db.add(customer)
        await audit_customer_insert(db, customer)
        known.add(row["customer_id"])
        count += 1

    await db.flush()
    logger.info(f"Inserted {count} records into {DimCustomer.__tablename__}")
    return count


async def seed_products(db: AsyncSession, path: Path, today: Optional[date] = None) -> int:
    """Load products from CSV"""
    logger.info("Seeding dim_product", file=str(path))

    result = await db.execute(select(DimProduct.product_id))
    known = set(result.scalars().all())

    count = 0
    for row in _read_dimension_csv(path).to_dicts():
        if row["product_id"] in known:
            continue
        discontinue_date = row.get("discontinue_date")
        launch_date = row.get("launch_date")
        product = DimProduct(
            product_id=row["product_id"],
            sku=row.get("sku") or row["product_id"],
            name=row["name"],
            description=row.get("description"),
            category=row.get("category"),
            subcategory=row.get("subcategory"),
            brand=row.get("brand"),
            supplier=row.get("supplier"),
            unit_cost=_decimal(row.get("unit_cost")),
            unit_price=_decimal(row.get("unit_price")),
            is_active=True,
            launch_date=date.fromisoformat(launch_date) if launch_date else None,
            discontinue_date=date.fromisoformat(discontinue_date) if discontinue_date else None,
        )
        if product.unit_cost is not None and product.unit_price:
            product.margin_percent = (
                (product.unit_price - product.unit_cost) / product.unit_price * 100
            ).quantize(Decimal("0.01"))
        db.add(apply_product_status(product, today))
        known.add(row["product_id"])
        count += 1

    await db.flush()
    logger.info(f"Inserted {count} records into {DimProduct.__tablename__}")
    return count


async def seed_locations(db: AsyncSession, path: Path) -> int:
    """Load locations from CSV"""
    logger.info("Seeding dim_location", file=str(path))

    result = await db.execute(select(DimLocation.location_id))
    known = set(result.scalars().all())

    records = []
    for row in _read_dimension_csv(path).to_dicts():
        if row["location_id"] in known:
            continue
        records.append({
            "location_id": row["location_id"],
            "location_name": row.get("location_name") or row["location_id"],
            "location_type": row.get("location_type"),
            "address_line1": row.get("address_line1"),
            "city": row.get("city"),
            "state": row.get("state"),
            "country": row.get("country"),
            "postal_code": row.get("postal_code"),
            "region": row.get("region"),
            "timezone": row.get("timezone"),
            "is_active": True,
        })
        known.add(row["location_id"])

    return await bulk_insert(db, DimLocation, records)


async def seed_dimensions(
    db: AsyncSession,
    data_dir: Union[str, Path] = DATA_DIR,
    as_of: Optional[date] = None,
) -> Dict[str, int]:
    """
    Load every dimension CSV found in a directory.

    Expects customers.csv, products.csv and locations.csv; missing files are
    skipped. Natural keys already in the warehouse are left untouched.

    Returns:
        Dict[str, int]: Rows inserted per dimension table
    """
    data_dir = Path(data_dir)
    loaders = {
        DimCustomer.__tablename__: ("customers.csv", lambda p: seed_customers(db, p, as_of)),
        DimProduct.__tablename__: ("products.csv", lambda p: seed_products(db, p, as_of)),
        DimLocation.__tablename__: ("locations.csv", lambda p: seed_locations(db, p)),
    }

    counts = {}
    for table, (file_name, load) in loaders.items():
        path = data_dir / file_name
        if not path.exists():
            logger.warning("Dimension file not found", file=str(path))
            counts[table] = 0
            continue
        counts[table] = await load(path)

    logger.info("Dimension seeding completed", **counts)
    return counts


async def main():
    logger.info("Starting database seeding...")
    await init_database()

    today = date.today()
    try:
        async with get_db() as db:
            await seed_dim_date(db, date(today.year - 2, 1, 1), date(today.year + 1, 12, 31))
            await seed_dimensions(db)
        logger.info("Database seeding completed successfully!")
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        raise


if __name__ == "__main__":
    asyncio.run(main())
