"""
Incremental Sales Loader

Moves staged sales rows for a closed order-date window into fact_sales:
- Resolves natural ids to surrogate keys (current customer version only)
- Drops rows without a matching date, customer, product or location
- Validates each matched row; invalid rows are skipped, not fatal
- Inserts new transactions; for known transactions refreshes only
  quantity and total_amount
- Logs the run in etl_log within the same unit of work
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import (
    DimCustomer,
    DimDate,
    DimLocation,
    DimProduct,
    FactSale,
    StagingSale,
)
from analytics_dw.etl.hooks import derive_cost, fill_profit, validate_sale
from analytics_dw.etl.run_log import log_run
from analytics_dw.exceptions import SaleValidationError

logger = structlog.get_logger(__name__)

PROCESS_NAME = "sp_load_sales_data"

# Fields refreshed when a transaction is loaded again
REFRESHED_FIELDS = ("quantity", "total_amount")


class LoadResult(BaseModel):
    """Result of an incremental sales load"""
    start_date: date
    end_date: date
    rows_staged: int = 0
    rows_unmatched: int = 0
    rows_rejected: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def rows_loaded(self) -> int:
        """Rows affected in fact_sales (inserted + updated)"""
        return self.rows_inserted + self.rows_updated


def _matched_rows_query(start_date: date, end_date: date):
    """Staged rows in the window joined to their dimension keys"""
    return (
        select(
            StagingSale.transaction_id,
            DimDate.date_key,
            DimCustomer.customer_key,
            DimProduct.product_key,
            DimLocation.location_key,
            DimProduct.unit_cost,
            StagingSale.quantity,
            StagingSale.unit_price,
            StagingSale.discount_amount,
            StagingSale.tax_amount,
            StagingSale.total_amount,
            StagingSale.order_number,
            StagingSale.payment_method,
            StagingSale.shipping_method,
        )
        .join(DimDate, StagingSale.order_date == DimDate.full_date)
        .join(
            DimCustomer,
            and_(
                StagingSale.customer_id == DimCustomer.customer_id,
                DimCustomer.is_current.is_(True),
            ),
        )
        .join(DimProduct, StagingSale.product_id == DimProduct.product_id)
        .join(DimLocation, StagingSale.location_id == DimLocation.location_id)
        .where(StagingSale.order_date.between(start_date, end_date))
        .order_by(StagingSale.staging_id)
    )


def build_fact_values(row: Any) -> Dict[str, Any]:
    """Fact column values for a matched staged row"""
    cost_amount = derive_cost(row.unit_cost, row.quantity)
    values = {
        "transaction_id": row.transaction_id,
        "date_key": row.date_key,
        "customer_key": row.customer_key,
        "product_key": row.product_key,
        "location_key": row.location_key,
        "quantity": row.quantity,
        "unit_price": row.unit_price,
        "discount_amount": row.discount_amount,
        "tax_amount": row.tax_amount,
        "total_amount": row.total_amount,
        "cost_amount": cost_amount,
        "profit_amount": None,
        "order_number": row.order_number,
        "payment_method": row.payment_method,
        "shipping_method": row.shipping_method,
    }
    return fill_profit(values)


async def _existing_facts(db: AsyncSession, transaction_ids: List[str]) -> Dict[str, FactSale]:
    """Facts already loaded for the given transaction ids"""
    existing: Dict[str, FactSale] = {}
    # Keep IN lists well below driver parameter limits
    chunk_size = 500
    for i in range(0, len(transaction_ids), chunk_size):
        chunk = transaction_ids[i:i + chunk_size]
        result = await db.execute(
            select(FactSale).where(FactSale.transaction_id.in_(chunk))
        )
        for fact in result.scalars():
            existing[fact.transaction_id] = fact
    return existing


async def load_sales_data(
    db: AsyncSession,
    start_date: date,
    end_date: date,
) -> LoadResult:
    """
    Load staged sales for [start_date, end_date] into fact_sales.

    Args:
        db: Session of the enclosing unit of work
        start_date: First order date to load (inclusive)
        end_date: Last order date to load (inclusive)

    Returns:
        LoadResult: Row counts; ``rows_loaded`` is the number of fact rows
        inserted or updated
    """
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")

    started_at = datetime.utcnow()
    result = LoadResult(start_date=start_date, end_date=end_date, started_at=started_at)

    logger.info("Starting sales load", start_date=str(start_date), end_date=str(end_date))

    staged = await db.execute(
        select(func.count(StagingSale.staging_id))
        .where(StagingSale.order_date.between(start_date, end_date))
    )
    result.rows_staged = staged.scalar() or 0

    rows = (await db.execute(_matched_rows_query(start_date, end_date))).all()
    result.rows_unmatched = result.rows_staged - len(rows)

    existing = await _existing_facts(db, list({row.transaction_id for row in rows}))

    for row in rows:
        values = build_fact_values(row)
        try:
            validate_sale(values)
        except SaleValidationError as e:
            result.rows_rejected += 1
            logger.warning("Sales row rejected", transaction_id=e.transaction_id, reason=e.reason)
            continue

        fact = existing.get(row.transaction_id)
        if fact is None:
            fact = FactSale(**values)
            db.add(fact)
            existing[fact.transaction_id] = fact
            result.rows_inserted += 1
            continue

        if any(getattr(fact, name) != values[name] for name in REFRESHED_FIELDS):
            for name in REFRESHED_FIELDS:
                setattr(fact, name, values[name])
            result.rows_updated += 1

    await db.flush()
    await log_run(db, PROCESS_NAME, started_at, result.rows_loaded)

    result.completed_at = datetime.utcnow()
    logger.info(
        "Sales load completed",
        rows_loaded=result.rows_loaded,
        inserted=result.rows_inserted,
        updated=result.rows_updated,
        unmatched=result.rows_unmatched,
        rejected=result.rows_rejected,
    )
    return result
