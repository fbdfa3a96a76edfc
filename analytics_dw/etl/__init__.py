"""
Warehouse ETL Module
"""
from .aggregator import AggregateResult, generate_daily_aggregates
from .classification import DiscountTier, SalesTrend, get_discount_tier, get_sales_trend
from .loader import LoadResult, load_sales_data
from .ltv import update_customer_ltv
from .scd import (
    CustomerAttributes,
    CustomerProfile,
    ScdResult,
    ScdStatus,
    find_scd_violations,
    register_customer,
    update_customer_scd,
)

__all__ = [
    "AggregateResult",
    "generate_daily_aggregates",
    "DiscountTier",
    "SalesTrend",
    "get_discount_tier",
    "get_sales_trend",
    "LoadResult",
    "load_sales_data",
    "update_customer_ltv",
    "CustomerAttributes",
    "CustomerProfile",
    "ScdResult",
    "ScdStatus",
    "find_scd_violations",
    "register_customer",
    "update_customer_scd",
]
