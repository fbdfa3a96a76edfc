"""
Customer Classification

Derived, read-only customer labels consumed by reporting:
- Discount tier from lifetime value
- Sales trend comparing spend in two consecutive look-back windows
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.config import get_settings
from analytics_dw.database.models import DimCustomer, DimDate, FactSale

logger = structlog.get_logger(__name__)
settings = get_settings()


class DiscountTier(str, Enum):
    """Discount tier by lifetime value"""
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class SalesTrend(str, Enum):
    """Direction of a customer's spend"""
    NEW = "NEW"
    GROWING = "GROWING"
    DECLINING = "DECLINING"
    STABLE = "STABLE"


# Lower bounds, highest first
TIER_THRESHOLDS = (
    (Decimal("50000"), DiscountTier.PLATINUM),
    (Decimal("20000"), DiscountTier.GOLD),
    (Decimal("5000"), DiscountTier.SILVER),
)

GROWTH_FACTOR = Decimal("1.1")
DECLINE_FACTOR = Decimal("0.9")


def get_discount_tier(lifetime_value: Union[Decimal, float, int, None]) -> DiscountTier:
    """Discount tier for a lifetime value; unknown values rank BRONZE"""
    if lifetime_value is None:
        return DiscountTier.BRONZE
    value = Decimal(str(lifetime_value))
    for threshold, tier in TIER_THRESHOLDS:
        if value >= threshold:
            return tier
    return DiscountTier.BRONZE


def classify_trend(current_total: Decimal, previous_total: Decimal) -> SalesTrend:
    """Trend label for the spend of the current and the previous window"""
    if previous_total == 0:
        return SalesTrend.NEW
    if current_total > previous_total * GROWTH_FACTOR:
        return SalesTrend.GROWING
    if current_total < previous_total * DECLINE_FACTOR:
        return SalesTrend.DECLINING
    return SalesTrend.STABLE


def trend_windows(as_of: date, months: int) -> Tuple[Tuple[date, date], Tuple[date, date]]:
    """Half-open (previous, current) windows ending at ``as_of``"""
    current_start = as_of - relativedelta(months=months)
    previous_start = as_of - relativedelta(months=months * 2)
    return (previous_start, current_start), (current_start, as_of)


async def customer_spend(
    db: AsyncSession,
    customer_id: str,
    start: date,
    end: date,
) -> Decimal:
    """Total spend of a customer's current version in [start, end)"""
    result = await db.execute(
        select(func.coalesce(func.sum(FactSale.total_amount), 0))
        .join(DimDate, FactSale.date_key == DimDate.date_key)
        .join(DimCustomer, FactSale.customer_key == DimCustomer.customer_key)
        .where(
            DimCustomer.customer_id == customer_id,
            DimCustomer.is_current.is_(True),
            DimDate.full_date >= start,
            DimDate.full_date < end,
        )
    )
    return Decimal(str(result.scalar() or 0))


async def get_sales_trend(
    db: AsyncSession,
    customer_id: str,
    months: Optional[int] = None,
    as_of: Optional[date] = None,
) -> SalesTrend:
    """
    Sales trend of a customer.

    Compares spend in [as_of - months, as_of) with spend in
    [as_of - 2*months, as_of - months).

    Args:
        db: Database session (read only)
        customer_id: Natural customer key
        months: Window length in months (defaults to the configured look-back)
        as_of: End of the current window (defaults to today)
    """
    if months is None:
        months = settings.etl.trend_lookback_months
    as_of = as_of or date.today()
    if months <= 0:
        raise ValueError("months must be positive")

    (prev_start, prev_end), (cur_start, cur_end) = trend_windows(as_of, months)
    current_total = await customer_spend(db, customer_id, cur_start, cur_end)
    previous_total = await customer_spend(db, customer_id, prev_start, prev_end)

    trend = classify_trend(current_total, previous_total)
    logger.debug(
        "Sales trend computed",
        customer_id=customer_id,
        current=str(current_total),
        previous=str(previous_total),
        trend=trend.value,
    )
    return trend
