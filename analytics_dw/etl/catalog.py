"""
Product Catalog Maintenance
"""

from datetime import date
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import DimProduct
from analytics_dw.etl.hooks import apply_product_status

logger = structlog.get_logger(__name__)

# Columns callers may not rewrite
PROTECTED_FIELDS = {"product_key", "product_id", "created_at", "updated_at"}


async def update_product(
    db: AsyncSession,
    product_id: str,
    /,
    today: Optional[date] = None,
    **changes: Any,
) -> Optional[DimProduct]:
    """
    Apply attribute changes to a product.

    Returns:
        The updated product, or None when the product does not exist
    """
    invalid = set(changes) & PROTECTED_FIELDS
    unknown = {name for name in changes if not hasattr(DimProduct, name)}
    if invalid or unknown:
        raise ValueError(f"Cannot update product fields: {sorted(invalid | unknown)}")

    result = await db.execute(
        select(DimProduct).where(DimProduct.product_id == product_id).with_for_update()
    )
    product = result.scalars().first()
    if product is None:
        logger.warning("Product not found", product_id=product_id)
        return None

    for name, value in changes.items():
        setattr(product, name, value)
    apply_product_status(product, today)
    await db.flush()

    logger.info("Product updated", product_id=product_id, fields=sorted(changes))
    return product
