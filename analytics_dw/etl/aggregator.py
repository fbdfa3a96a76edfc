"""
Daily Sales Aggregator

Rebuilds agg_daily_sales for one calendar date from fact_sales. The rollup is
a disposable cache: existing rows for the date are deleted and regenerated,
so a rebuild over unchanged facts yields identical rows.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import AggDailySales, DimDate, FactSale
from analytics_dw.etl.run_log import log_run

logger = structlog.get_logger(__name__)

PROCESS_NAME = "sp_generate_daily_aggregates"

CENTS = Decimal("0.01")


class AggregateResult(BaseModel):
    """Result of a daily aggregate rebuild"""
    target_date: date
    date_key: Optional[int] = None
    rows_deleted: int = 0
    aggregates_created: int = 0


def average_order_value(total_revenue: Decimal, fact_count: int) -> Decimal:
    """Plain mean of total_amount over the grouped fact rows"""
    if not fact_count:
        return Decimal("0.00")
    return (Decimal(total_revenue) / fact_count).quantize(CENTS, rounding=ROUND_HALF_UP)


async def resolve_date_key(db: AsyncSession, target_date: date) -> Optional[int]:
    """date_key of a calendar date, or None when the date is not in dim_date"""
    result = await db.execute(
        select(DimDate.date_key).where(DimDate.full_date == target_date)
    )
    return result.scalar()


async def generate_daily_aggregates(db: AsyncSession, target_date: date) -> AggregateResult:
    """
    Regenerate all daily aggregates for a date.

    Args:
        db: Session of the enclosing unit of work
        target_date: Calendar date to rebuild

    Returns:
        AggregateResult: ``aggregates_created`` is zero when the date is
        unknown to dim_date
    """
    started_at = datetime.utcnow()
    result = AggregateResult(target_date=target_date)

    date_key = await resolve_date_key(db, target_date)
    if date_key is None:
        logger.info("Date not in date dimension, nothing to aggregate", target_date=str(target_date))
        await log_run(db, PROCESS_NAME, started_at, 0)
        return result
    result.date_key = date_key

    deleted = await db.execute(
        delete(AggDailySales).where(AggDailySales.date_key == date_key)
    )
    result.rows_deleted = deleted.rowcount or 0

    groups = await db.execute(
        select(
            FactSale.customer_key,
            FactSale.product_key,
            func.sum(FactSale.quantity).label("total_quantity"),
            func.sum(FactSale.total_amount).label("total_revenue"),
            func.sum(FactSale.cost_amount).label("total_cost"),
            func.sum(FactSale.profit_amount).label("total_profit"),
            func.count(func.distinct(FactSale.order_number)).label("order_count"),
            func.count(FactSale.sales_key).label("fact_count"),
        )
        .where(FactSale.date_key == date_key)
        .group_by(FactSale.customer_key, FactSale.product_key)
        .order_by(FactSale.customer_key, FactSale.product_key)
    )

    aggregates = [
        AggDailySales(
            date_key=date_key,
            customer_key=row.customer_key,
            product_key=row.product_key,
            total_quantity=int(row.total_quantity),
            total_revenue=row.total_revenue,
            total_cost=row.total_cost,
            total_profit=row.total_profit,
            order_count=int(row.order_count),
            avg_order_value=average_order_value(row.total_revenue, row.fact_count),
        )
        for row in groups.all()
    ]
    db.add_all(aggregates)
    await db.flush()

    result.aggregates_created = len(aggregates)
    await log_run(db, PROCESS_NAME, started_at, result.aggregates_created)

    logger.info(
        "Daily aggregates generated",
        target_date=str(target_date),
        deleted=result.rows_deleted,
        created=result.aggregates_created,
    )
    return result
