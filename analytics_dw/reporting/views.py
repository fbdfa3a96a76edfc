"""
Reporting Views

Analytical read models over the star schema, returned as polars DataFrames
for dashboards and ad-hoc analysis. Customer figures cover the sales
recorded against the current version of each customer.
"""

from datetime import date
from typing import Optional

import polars as pl
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import (
    DimCustomer,
    DimDate,
    DimLocation,
    DimProduct,
    FactInventory,
    FactSale,
)
from analytics_dw.etl.classification import get_discount_tier, get_sales_trend

logger = structlog.get_logger(__name__)


class StockStatus:
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    IN_STOCK = "IN_STOCK"


CUSTOMER_SALES_SUMMARY_SCHEMA = {
    "customer_id": pl.Utf8,
    "customer_name": pl.Utf8,
    "segment": pl.Utf8,
    "city": pl.Utf8,
    "state": pl.Utf8,
    "total_orders": pl.Int64,
    "total_items": pl.Int64,
    "total_revenue": pl.Float64,
    "avg_order_value": pl.Float64,
    "last_order_date": pl.Date,
    "days_since_last_order": pl.Int64,
    "discount_tier": pl.Utf8,
}

PRODUCT_PERFORMANCE_SCHEMA = {
    "product_id": pl.Utf8,
    "product_name": pl.Utf8,
    "category": pl.Utf8,
    "brand": pl.Utf8,
    "units_sold": pl.Int64,
    "total_revenue": pl.Float64,
    "total_profit": pl.Float64,
    "avg_selling_price": pl.Float64,
    "unique_customers": pl.Int64,
    "profit_margin_percent": pl.Float64,
}

MONTHLY_SALES_TREND_SCHEMA = {
    "year": pl.Int64,
    "month": pl.Int64,
    "month_name": pl.Utf8,
    "transaction_count": pl.Int64,
    "total_quantity": pl.Int64,
    "total_revenue": pl.Float64,
    "total_profit": pl.Float64,
    "unique_customers": pl.Int64,
    "avg_transaction_value": pl.Float64,
}

INVENTORY_STATUS_SCHEMA = {
    "product_id": pl.Utf8,
    "product_name": pl.Utf8,
    "category": pl.Utf8,
    "location_name": pl.Utf8,
    "quantity_on_hand": pl.Int64,
    "quantity_reserved": pl.Int64,
    "quantity_available": pl.Int64,
    "reorder_point": pl.Int64,
    "stock_status": pl.Utf8,
    "inventory_value": pl.Float64,
}

CUSTOMER_SEGMENTATION_SCHEMA = {
    "customer_id": pl.Utf8,
    "name": pl.Utf8,
    "segment": pl.Utf8,
    "lifetime_value": pl.Float64,
    "tier": pl.Utf8,
    "trend_3month": pl.Utf8,
    "order_count": pl.Int64,
    "avg_order_value": pl.Float64,
    "recency_days": pl.Int64,
    "total_spent": pl.Float64,
}


def _float(value) -> Optional[float]:
    return float(value) if value is not None else None


async def customer_sales_summary(db: AsyncSession, as_of: Optional[date] = None) -> pl.DataFrame:
    """Lifetime sales figures of every current customer with at least one sale"""
    as_of = as_of or date.today()

    result = await db.execute(
        select(
            DimCustomer.customer_id,
            DimCustomer.name,
            DimCustomer.segment,
            DimCustomer.city,
            DimCustomer.state,
            DimCustomer.lifetime_value,
            func.count(func.distinct(FactSale.order_number)).label("total_orders"),
            func.sum(FactSale.quantity).label("total_items"),
            func.sum(FactSale.total_amount).label("total_revenue"),
            func.avg(FactSale.total_amount).label("avg_order_value"),
            func.max(DimDate.full_date).label("last_order_date"),
        )
        .join(FactSale, FactSale.customer_key == DimCustomer.customer_key)
        .join(DimDate, DimDate.date_key == FactSale.date_key)
        .where(DimCustomer.is_current.is_(True))
        .group_by(
            DimCustomer.customer_key,
            DimCustomer.customer_id,
            DimCustomer.name,
            DimCustomer.segment,
            DimCustomer.city,
            DimCustomer.state,
            DimCustomer.lifetime_value,
        )
        .order_by(DimCustomer.customer_id)
    )

    records = [
        {
            "customer_id": row.customer_id,
            "customer_name": row.name,
            "segment": row.segment,
            "city": row.city,
            "state": row.state,
            "total_orders": row.total_orders,
            "total_items": int(row.total_items or 0),
            "total_revenue": _float(row.total_revenue),
            "avg_order_value": _float(row.avg_order_value),
            "last_order_date": row.last_order_date,
            "days_since_last_order": (as_of - row.last_order_date).days,
            "discount_tier": get_discount_tier(row.lifetime_value).value,
        }
        for row in result.all()
    ]

    logger.debug("customer_sales_summary built", rows=len(records))
    return pl.DataFrame(records, schema=CUSTOMER_SALES_SUMMARY_SCHEMA)


async def product_performance(db: AsyncSession) -> pl.DataFrame:
    """Sales, profit and reach per product that has sold"""
    result = await db.execute(
        select(
            DimProduct.product_id,
            DimProduct.name,
            DimProduct.category,
            DimProduct.brand,
            func.sum(FactSale.quantity).label("units_sold"),
            func.sum(FactSale.total_amount).label("total_revenue"),
            func.sum(FactSale.profit_amount).label("total_profit"),
            func.avg(FactSale.unit_price).label("avg_selling_price"),
            func.count(func.distinct(FactSale.customer_key)).label("unique_customers"),
        )
        .join(FactSale, FactSale.product_key == DimProduct.product_key)
        .group_by(
            DimProduct.product_key,
            DimProduct.product_id,
            DimProduct.name,
            DimProduct.category,
            DimProduct.brand,
        )
        .having(func.sum(FactSale.quantity) > 0)
        .order_by(DimProduct.product_id)
    )

    records = []
    for row in result.all():
        revenue = _float(row.total_revenue)
        profit = _float(row.total_profit)
        margin = profit / revenue * 100 if profit is not None and revenue else None
        records.append({
            "product_id": row.product_id,
            "product_name": row.name,
            "category": row.category,
            "brand": row.brand,
            "units_sold": int(row.units_sold),
            "total_revenue": revenue,
            "total_profit": profit,
            "avg_selling_price": _float(row.avg_selling_price),
            "unique_customers": row.unique_customers,
            "profit_margin_percent": margin,
        })

    return pl.DataFrame(records, schema=PRODUCT_PERFORMANCE_SCHEMA)


async def monthly_sales_trend(db: AsyncSession) -> pl.DataFrame:
    """Sales totals per calendar month, oldest first"""
    result = await db.execute(
        select(
            DimDate.year,
            DimDate.month,
            DimDate.month_name,
            func.count(func.distinct(FactSale.transaction_id)).label("transaction_count"),
            func.sum(FactSale.quantity).label("total_quantity"),
            func.sum(FactSale.total_amount).label("total_revenue"),
            func.sum(FactSale.profit_amount).label("total_profit"),
            func.count(func.distinct(FactSale.customer_key)).label("unique_customers"),
            func.avg(FactSale.total_amount).label("avg_transaction_value"),
        )
        .join(DimDate, DimDate.date_key == FactSale.date_key)
        .group_by(DimDate.year, DimDate.month, DimDate.month_name)
        .order_by(DimDate.year, DimDate.month)
    )

    records = [
        {
            "year": row.year,
            "month": row.month,
            "month_name": row.month_name,
            "transaction_count": row.transaction_count,
            "total_quantity": int(row.total_quantity or 0),
            "total_revenue": _float(row.total_revenue),
            "total_profit": _float(row.total_profit),
            "unique_customers": row.unique_customers,
            "avg_transaction_value": _float(row.avg_transaction_value),
        }
        for row in result.all()
    ]
    return pl.DataFrame(records, schema=MONTHLY_SALES_TREND_SCHEMA)


def stock_status(quantity_available: int, reorder_point: Optional[int]) -> str:
    """Stock classification of an inventory snapshot row"""
    if quantity_available <= 0:
        return StockStatus.OUT_OF_STOCK
    if reorder_point is not None and quantity_available <= reorder_point:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


async def inventory_status(db: AsyncSession, snapshot_date: Optional[date] = None) -> pl.DataFrame:
    """Inventory snapshot of one day (today by default) with stock status"""
    snapshot_date = snapshot_date or date.today()

    result = await db.execute(
        select(FactInventory, DimProduct, DimLocation)
        .join(DimProduct, DimProduct.product_key == FactInventory.product_key)
        .join(DimLocation, DimLocation.location_key == FactInventory.location_key)
        .join(DimDate, DimDate.date_key == FactInventory.snapshot_date_key)
        .where(DimDate.full_date == snapshot_date)
        .order_by(DimProduct.product_id, DimLocation.location_name)
    )

    records = []
    for inventory, product, location in result.all():
        available = inventory.quantity_available
        records.append({
            "product_id": product.product_id,
            "product_name": product.name,
            "category": product.category,
            "location_name": location.location_name,
            "quantity_on_hand": inventory.quantity_on_hand,
            "quantity_reserved": inventory.quantity_reserved,
            "quantity_available": available,
            "reorder_point": inventory.reorder_point,
            "stock_status": stock_status(available, inventory.reorder_point),
            "inventory_value": _float(inventory.inventory_value),
        })

    return pl.DataFrame(records, schema=INVENTORY_STATUS_SCHEMA)


async def customer_segmentation(db: AsyncSession, as_of: Optional[date] = None) -> pl.DataFrame:
    """Tier, 3-month trend and order statistics of every current customer"""
    as_of = as_of or date.today()

    result = await db.execute(
        select(
            DimCustomer.customer_id,
            DimCustomer.name,
            DimCustomer.segment,
            DimCustomer.lifetime_value,
            func.count(func.distinct(FactSale.order_number)).label("order_count"),
            func.avg(FactSale.total_amount).label("avg_order_value"),
            func.max(DimDate.full_date).label("last_order_date"),
            func.sum(FactSale.total_amount).label("total_spent"),
        )
        .outerjoin(FactSale, FactSale.customer_key == DimCustomer.customer_key)
        .outerjoin(DimDate, DimDate.date_key == FactSale.date_key)
        .where(DimCustomer.is_current.is_(True))
        .group_by(
            DimCustomer.customer_key,
            DimCustomer.customer_id,
            DimCustomer.name,
            DimCustomer.segment,
            DimCustomer.lifetime_value,
        )
        .order_by(DimCustomer.customer_id)
    )

    records = []
    for row in result.all():
        trend = await get_sales_trend(db, row.customer_id, months=3, as_of=as_of)
        records.append({
            "customer_id": row.customer_id,
            "name": row.name,
            "segment": row.segment,
            "lifetime_value": _float(row.lifetime_value),
            "tier": get_discount_tier(row.lifetime_value).value,
            "trend_3month": trend.value,
            "order_count": row.order_count,
            "avg_order_value": _float(row.avg_order_value),
            "recency_days": (as_of - row.last_order_date).days if row.last_order_date else None,
            "total_spent": _float(row.total_spent),
        })

    logger.debug("customer_segmentation built", rows=len(records))
    return pl.DataFrame(records, schema=CUSTOMER_SEGMENTATION_SCHEMA)
