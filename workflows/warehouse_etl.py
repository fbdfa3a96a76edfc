"""
Prefect Workflow Orchestration - Warehouse ETL

Scheduled warehouse maintenance:
- Stage new sales extracts
- Incremental fact load for the processing day
- Daily rollup rebuild
- Lifetime value refresh
- Alerting on failure
"""

from datetime import date, timedelta
from typing import Optional

from prefect import flow, task, get_run_logger

from analytics_dw.database.connection import close_database, get_db, init_database
from analytics_dw.etl.pipeline import WarehouseETL
from analytics_dw.ingestion.staging_loader import FileFormat, StagingLoader


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="stage_sales_files",
    description="Stage raw sales extracts from the landing directory",
)
async def stage_sales_files(source_dir: str, file_format: str = "csv") -> dict:
    """Stage every extract in a directory"""
    logger = get_run_logger()

    loader = StagingLoader()
    async with get_db() as db:
        results = await loader.stage_directory(db, source_dir, FileFormat(file_format))

    staged = sum(r.rows_staged for r in results)
    dead_lettered = sum(r.rows_dead_lettered for r in results)
    logger.info(f"Staged {staged} rows from {len(results)} files ({dead_lettered} dead-lettered)")

    return {
        "total_files": len(results),
        "rows_staged": staged,
        "rows_dead_lettered": dead_lettered,
    }


@task(
    name="load_sales",
    description="Incremental load of staged sales into fact_sales",
)
async def load_sales(start_date: date, end_date: date) -> dict:
    """Load staged sales for a date window"""
    logger = get_run_logger()

    result = await WarehouseETL().load_sales(start_date, end_date)
    logger.info(
        f"Sales load complete: {result.rows_inserted} inserted, "
        f"{result.rows_updated} updated, {result.rows_rejected} rejected"
    )
    return {**result.model_dump(mode="json"), "rows_loaded": result.rows_loaded}


@task(
    name="update_aggregates",
    description="Rebuild daily aggregate table",
)
async def update_aggregates(process_date: date) -> dict:
    """Rebuild the daily rollup for one date"""
    logger = get_run_logger()

    result = await WarehouseETL().generate_daily_aggregates(process_date)
    logger.info(f"Updated aggregates for date_key: {result.date_key}")
    return result.model_dump(mode="json")


@task(
    name="refresh_lifetime_values",
    description="Recompute lifetime value of current customers",
)
async def refresh_lifetime_values() -> dict:
    """Full lifetime value refresh"""
    logger = get_run_logger()

    updated = await WarehouseETL().refresh_lifetime_values()
    logger.info(f"Lifetime values refreshed for {updated} customers")
    return {"customers_updated": updated}


@task(
    name="check_scd_integrity",
    description="Scan the customer dimension for versioning violations",
)
async def check_scd_integrity() -> dict:
    """Report customers with broken version history"""
    violations = await WarehouseETL().check_integrity()
    return {
        "violations": [
            {"customer_id": v.customer_id, "message": v.message} for v in violations
        ],
    }


@task(
    name="send_alert",
    description="Send alert notification",
)
async def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="daily_warehouse_etl",
    description="Daily warehouse load, rollup and lifetime value refresh",
)
async def daily_warehouse_etl(
    process_date: Optional[date] = None,
    source_dir: Optional[str] = None,
) -> dict:
    """
    Daily warehouse pipeline.

    Steps:
    1. Stage extracts from source_dir (when given)
    2. Load the processing day's staged sales
    3. Rebuild that day's aggregates
    4. Refresh customer lifetime values
    5. Check customer dimension integrity
    """
    logger = get_run_logger()

    process_date = process_date or date.today() - timedelta(days=1)
    logger.info(f"Starting daily warehouse ETL for {process_date}")

    results = {
        "process_date": process_date.isoformat(),
        "steps": {},
    }

    await init_database()
    try:
        if source_dir:
            results["steps"]["stage"] = await stage_sales_files(source_dir)

        results["steps"]["load_sales"] = await load_sales(process_date, process_date)
        results["steps"]["aggregates"] = await update_aggregates(process_date)
        results["steps"]["lifetime_values"] = await refresh_lifetime_values()

        integrity = await check_scd_integrity()
        results["steps"]["integrity"] = integrity
        if integrity["violations"]:
            await send_alert(
                alert_type="SCD Integrity",
                message=f"{len(integrity['violations'])} customers with broken version history",
                severity="warning",
            )

        results["status"] = "success"

    except Exception as e:
        logger.error(f"Warehouse ETL failed: {e}")

        await send_alert(
            alert_type="ETL Failed",
            message=f"Daily warehouse ETL failed for {process_date}: {e}",
            severity="critical",
        )

        results["status"] = "failed"
        results["error"] = str(e)
        raise
    finally:
        await close_database()

    return results


if __name__ == "__main__":
    import asyncio

    asyncio.run(daily_warehouse_etl())
