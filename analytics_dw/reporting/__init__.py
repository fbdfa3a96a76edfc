"""
Reporting Module
"""
from .views import (
    customer_sales_summary,
    customer_segmentation,
    inventory_status,
    monthly_sales_trend,
    product_performance,
)

__all__ = [
    "customer_sales_summary",
    "customer_segmentation",
    "inventory_status",
    "monthly_sales_trend",
    "product_performance",
]
