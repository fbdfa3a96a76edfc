"""
Command Line Entry Point

Usage:
    analytics-dw init-db
    analytics-dw seed-dates --start 2024-01-01 --end 2025-12-31
    analytics-dw seed-dimensions --data-dir data/generated
    analytics-dw stage-file data/staging/sales.csv
    analytics-dw load-sales --start 2024-03-01 --end 2024-03-31
    analytics-dw aggregate --date 2024-03-31
    analytics-dw refresh-ltv
    analytics-dw scd-update C001 --name "Jane Doe" --email jane@example.com
    analytics-dw tier C001
    analytics-dw trend C001 --months 3
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import List, Optional

import structlog

from analytics_dw.config.logging import configure_logging
from analytics_dw.database.connection import (
    close_database,
    create_schema,
    get_db,
    init_database,
)
from analytics_dw.etl.pipeline import WarehouseETL
from analytics_dw.etl.scd import CustomerAttributes
from analytics_dw.exceptions import WarehouseError
from analytics_dw.ingestion.seed import seed_dim_date, seed_dimensions
from analytics_dw.ingestion.staging_loader import FileFormat, StagingLoader

logger = structlog.get_logger(__name__)


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not a date (YYYY-MM-DD): {value}")


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _init_db(args) -> None:
    await create_schema()


async def _seed_dates(args) -> None:
    async with get_db() as db:
        inserted = await seed_dim_date(db, args.start, args.end)
    _print({"dates_inserted": inserted})


async def _seed_dimensions(args) -> None:
    async with get_db() as db:
        counts = await seed_dimensions(db, args.data_dir)
    _print(counts)


async def _stage_file(args) -> None:
    loader = StagingLoader(strict_mode=args.strict or None)
    file_format = FileFormat(args.format) if args.format else None
    async with get_db() as db:
        result = await loader.stage_file(db, args.path, file_format)
    _print(result.model_dump())


async def _load_sales(args) -> None:
    result = await WarehouseETL().load_sales(args.start, args.end)
    _print({**result.model_dump(), "rows_loaded": result.rows_loaded})


async def _aggregate(args) -> None:
    result = await WarehouseETL().generate_daily_aggregates(args.date)
    _print(result.model_dump())


async def _refresh_ltv(args) -> None:
    updated = await WarehouseETL().refresh_lifetime_values()
    _print({"customers_updated": updated})


async def _scd_update(args) -> None:
    attributes = CustomerAttributes(
        name=args.name,
        email=args.email,
        segment=args.segment,
        city=args.city,
        state=args.state,
    )
    etl = WarehouseETL()
    if args.create:
        result = await etl.upsert_customer(args.customer_id, attributes, args.as_of)
    else:
        result = await etl.update_customer(args.customer_id, attributes, args.as_of)
    _print(result.model_dump())


async def _tier(args) -> None:
    tier = await WarehouseETL().discount_tier(args.customer_id)
    _print({"customer_id": args.customer_id, "tier": tier.value if tier else None})


async def _trend(args) -> None:
    trend = await WarehouseETL().sales_trend(args.customer_id, args.months, args.as_of)
    _print({"customer_id": args.customer_id, "trend": trend.value})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="analytics-dw",
        description="Sales analytics data warehouse ETL",
    )
    parser.add_argument("--database-url", help="Async SQLAlchemy URL (overrides settings)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    commands = parser.add_subparsers(dest="command", required=True)

    cmd = commands.add_parser("init-db", help="Create warehouse tables")
    cmd.set_defaults(handler=_init_db)

    cmd = commands.add_parser("seed-dates", help="Populate the date dimension")
    cmd.add_argument("--start", type=_date, required=True)
    cmd.add_argument("--end", type=_date, required=True)
    cmd.set_defaults(handler=_seed_dates)

    cmd = commands.add_parser("seed-dimensions", help="Load dimension CSV files")
    cmd.add_argument("--data-dir", default="data/generated")
    cmd.set_defaults(handler=_seed_dimensions)

    cmd = commands.add_parser("stage-file", help="Load a raw sales extract into staging")
    cmd.add_argument("path")
    cmd.add_argument("--format", choices=[f.value for f in FileFormat])
    cmd.add_argument("--strict", action="store_true", help="Reject the file on validation errors")
    cmd.set_defaults(handler=_stage_file)

    cmd = commands.add_parser("load-sales", help="Incremental load of staged sales")
    cmd.add_argument("--start", type=_date, required=True)
    cmd.add_argument("--end", type=_date, required=True)
    cmd.set_defaults(handler=_load_sales)

    cmd = commands.add_parser("aggregate", help="Rebuild the daily rollup for one date")
    cmd.add_argument("--date", type=_date, required=True)
    cmd.set_defaults(handler=_aggregate)

    cmd = commands.add_parser("refresh-ltv", help="Recompute customer lifetime values")
    cmd.set_defaults(handler=_refresh_ltv)

    cmd = commands.add_parser("scd-update", help="Apply customer attributes as a new version")
    cmd.add_argument("customer_id")
    cmd.add_argument("--name", required=True)
    cmd.add_argument("--email")
    cmd.add_argument("--segment")
    cmd.add_argument("--city")
    cmd.add_argument("--state")
    cmd.add_argument("--as-of", type=_date)
    cmd.add_argument("--create", action="store_true", help="Register the customer if unknown")
    cmd.set_defaults(handler=_scd_update)

    cmd = commands.add_parser("tier", help="Discount tier of a customer")
    cmd.add_argument("customer_id")
    cmd.set_defaults(handler=_tier)

    cmd = commands.add_parser("trend", help="Sales trend of a customer")
    cmd.add_argument("customer_id")
    cmd.add_argument("--months", type=int)
    cmd.add_argument("--as-of", type=_date)
    cmd.set_defaults(handler=_trend)

    return parser


async def _run(args) -> None:
    await init_database(args.database_url)
    try:
        await args.handler(args)
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        asyncio.run(_run(args))
    except (WarehouseError, ValueError, FileNotFoundError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
