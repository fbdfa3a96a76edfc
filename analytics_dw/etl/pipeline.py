"""
Warehouse ETL Facade

Runs each warehouse operation in its own unit of work. A failed run is rolled
back completely; the facade then records a FAILURE entry in etl_log through a
separate transaction and re-raises the original error.
"""

from datetime import date, datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.config import get_settings
from analytics_dw.config.logging import run_context
from analytics_dw.database.connection import get_db
from analytics_dw.database.models import DimCustomer, RunStatus
from analytics_dw.etl import aggregator, loader, ltv, scd
from analytics_dw.etl.classification import (
    DiscountTier,
    SalesTrend,
    get_discount_tier,
    get_sales_trend,
)
from analytics_dw.etl.run_log import log_run

logger = structlog.get_logger(__name__)
settings = get_settings()

T = TypeVar("T")


class WarehouseETL:
    """
    Entry point for scheduled and ad-hoc warehouse runs.

    Example:
        etl = WarehouseETL()
        result = await etl.load_sales(date(2024, 3, 1), date(2024, 3, 31))
        await etl.generate_daily_aggregates(date(2024, 3, 31))
    """

    def __init__(self, record_failed_runs: Optional[bool] = None):
        if record_failed_runs is None:
            record_failed_runs = settings.etl.record_failed_runs
        self.record_failed_runs = record_failed_runs

    async def _record_failure(self, process_name: str, started_at: datetime, error: Exception) -> None:
        """Log a failed run in its own transaction"""
        try:
            async with get_db() as db:
                await log_run(
                    db,
                    process_name,
                    started_at,
                    rows_processed=0,
                    status=RunStatus.FAILURE,
                    error_message=f"{type(error).__name__}: {error}",
                )
        except Exception as log_error:
            logger.error(
                "Could not record failed run",
                process=process_name,
                error=str(log_error),
            )

    async def _run(
        self,
        process_name: str,
        operation: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Execute an operation in one unit of work"""
        started_at = datetime.utcnow()
        with run_context(process_name):
            try:
                async with get_db() as db:
                    return await operation(db)
            except Exception as e:
                logger.error("ETL run failed", error=str(e))
                if self.record_failed_runs:
                    await self._record_failure(process_name, started_at, e)
                raise

    async def load_sales(self, start_date: date, end_date: date) -> loader.LoadResult:
        """Incremental sales load for a closed date window"""
        return await self._run(
            loader.PROCESS_NAME,
            lambda db: loader.load_sales_data(db, start_date, end_date),
        )

    async def generate_daily_aggregates(self, target_date: date) -> aggregator.AggregateResult:
        """Rebuild the daily rollup for one date"""
        return await self._run(
            aggregator.PROCESS_NAME,
            lambda db: aggregator.generate_daily_aggregates(db, target_date),
        )

    async def refresh_lifetime_values(self) -> int:
        """Recompute lifetime value of all current customers"""
        return await self._run(ltv.PROCESS_NAME, ltv.update_customer_ltv)

    async def update_customer(
        self,
        customer_id: str,
        attributes: scd.CustomerAttributes,
        as_of: Optional[date] = None,
    ) -> scd.ScdResult:
        """SCD Type 2 update of one customer"""
        async with get_db() as db:
            return await scd.update_customer_scd(db, customer_id, attributes, as_of)

    async def register_customer(
        self,
        customer_id: str,
        profile: scd.CustomerAttributes,
        as_of: Optional[date] = None,
    ) -> DimCustomer:
        """Insert a new customer at version 1"""
        async with get_db() as db:
            return await scd.register_customer(db, customer_id, profile, as_of)

    async def upsert_customer(
        self,
        customer_id: str,
        attributes: scd.CustomerAttributes,
        as_of: Optional[date] = None,
    ) -> scd.ScdResult:
        """Version an existing customer, or register it when it has no current version"""
        async with get_db() as db:
            outcome = await scd.update_customer_scd(db, customer_id, attributes, as_of)
            if outcome.status != scd.ScdStatus.NO_CURRENT_RECORD:
                return outcome
            customer = await scd.register_customer(db, customer_id, attributes, as_of)
            return scd.ScdResult(
                customer_id=customer_id,
                status=scd.ScdStatus.CREATED,
                current_version=customer.version,
                changed_fields=list(scd.TRACKED_FIELDS),
            )

    async def discount_tier(self, customer_id: str) -> Optional[DiscountTier]:
        """Discount tier of a customer's current version; None for unknown customers"""
        async with get_db() as db:
            customer = await scd.get_current_customer(db, customer_id)
        if customer is None:
            return None
        return get_discount_tier(customer.lifetime_value)

    async def sales_trend(
        self,
        customer_id: str,
        months: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> SalesTrend:
        """Sales trend of a customer"""
        async with get_db() as db:
            return await get_sales_trend(db, customer_id, months, as_of)

    async def check_integrity(self) -> List[scd.ScdViolation]:
        """Customers breaking the SCD invariants"""
        async with get_db() as db:
            return await scd.find_scd_violations(db)
