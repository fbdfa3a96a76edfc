"""
Customer Lifetime Value Refresh

Full recompute of dim_customer.lifetime_value for current versions: the sum
of total_amount over the sales recorded against the current version.
Customers without sales get zero.
"""

from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import DimCustomer, FactSale
from analytics_dw.etl.run_log import log_run

logger = structlog.get_logger(__name__)

PROCESS_NAME = "sp_update_customer_ltv"


async def update_customer_ltv(db: AsyncSession) -> int:
    """
    Recompute lifetime value of every current customer.

    Returns:
        int: Number of customers updated
    """
    started_at = datetime.utcnow()

    total_spend = (
        select(func.coalesce(func.sum(FactSale.total_amount), 0))
        .where(FactSale.customer_key == DimCustomer.customer_key)
        .scalar_subquery()
    )

    result = await db.execute(
        update(DimCustomer)
        .where(DimCustomer.is_current.is_(True))
        .values(lifetime_value=total_spend)
        .execution_options(synchronize_session=False)
    )
    customers_updated = result.rowcount or 0

    await log_run(db, PROCESS_NAME, started_at, customers_updated)
    logger.info("Customer lifetime values refreshed", customers_updated=customers_updated)
    return customers_updated
