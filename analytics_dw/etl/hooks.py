"""
Write Hooks

Validation and audit side effects that run explicitly inside the warehouse
operations:
- Sales validation before a row enters fact_sales
- Profit derivation when a row carries no profit
- Customer dimension audit trail on insert and update
- Product deactivation once the discontinue date has passed
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.config import get_settings
from analytics_dw.database.models import AuditLog, AuditOperation, DimCustomer, DimProduct
from analytics_dw.exceptions import SaleValidationError

logger = structlog.get_logger(__name__)
settings = get_settings()

AUDITED_CUSTOMER_FIELDS = ("name", "email", "segment")


# =============================================================================
# SALES
# =============================================================================

def validate_sale(values: Dict[str, Any]) -> None:
    """
    Reject a sales row that must not enter the fact table.

    Raises:
        SaleValidationError: quantity is not positive or unit price is negative
    """
    transaction_id = values.get("transaction_id", "?")
    quantity = values.get("quantity")
    unit_price = values.get("unit_price")

    if quantity is None or quantity <= 0:
        raise SaleValidationError(transaction_id, "Quantity must be greater than 0")
    if unit_price is None or unit_price < 0:
        raise SaleValidationError(transaction_id, "Unit price cannot be negative")


def fill_profit(values: Dict[str, Any]) -> Dict[str, Any]:
    """Derive profit_amount from total and cost when it is missing"""
    if values.get("profit_amount") is None and values.get("cost_amount") is not None:
        values["profit_amount"] = values["total_amount"] - values["cost_amount"]
    return values


def derive_cost(unit_cost: Optional[Decimal], quantity: int) -> Optional[Decimal]:
    """Cost of a sale from the product's unit cost; unknown cost stays unknown"""
    if unit_cost is None:
        return None
    return unit_cost * quantity


# =============================================================================
# CUSTOMER AUDIT
# =============================================================================

def customer_snapshot(customer: DimCustomer) -> Dict[str, Any]:
    """Audited attributes of a customer version"""
    return {field: getattr(customer, field) for field in AUDITED_CUSTOMER_FIELDS}


async def audit_customer_insert(db: AsyncSession, customer: DimCustomer) -> AuditLog:
    """Record a new customer version"""
    entry = AuditLog(
        table_name=DimCustomer.__tablename__,
        operation=AuditOperation.INSERT,
        record_id=customer.customer_id,
        new_values=customer_snapshot(customer),
        user_name=settings.database.user,
    )
    db.add(entry)
    return entry


async def audit_customer_update(
    db: AsyncSession,
    old_values: Dict[str, Any],
    customer: DimCustomer,
) -> AuditLog:
    """Record a change to an existing customer version"""
    entry = AuditLog(
        table_name=DimCustomer.__tablename__,
        operation=AuditOperation.UPDATE,
        record_id=customer.customer_id,
        old_values=old_values,
        new_values=customer_snapshot(customer),
        user_name=settings.database.user,
    )
    db.add(entry)
    return entry


# =============================================================================
# PRODUCTS
# =============================================================================

def apply_product_status(product: DimProduct, today: Optional[date] = None) -> DimProduct:
    """Mark a product inactive once it is discontinued"""
    today = today or date.today()
    if product.discontinue_date is not None and product.discontinue_date <= today:
        if product.is_active:
            logger.info("Product discontinued", product_id=product.product_id)
        product.is_active = False
    return product
