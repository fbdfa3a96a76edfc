"""
Customer Dimension Versioning (SCD Type 2)

Change detection and versioning for dim_customer:
- A change to any tracked attribute closes the current version and opens a
  new one with the next version number
- History rows are never updated except to close them
- Integrity scan for customers with zero/multiple current rows or version gaps

Both steps of a version change run in the caller's unit of work; a failure
after the old version is closed rolls back with everything else.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from decimal import Decimal
from typing import List, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import DimCustomer
from analytics_dw.etl.hooks import (
    audit_customer_insert,
    audit_customer_update,
    customer_snapshot,
)
from analytics_dw.exceptions import CustomerExistsError

logger = structlog.get_logger(__name__)

# Attributes whose change creates a new version
TRACKED_FIELDS = ("name", "email", "segment", "city", "state")

# Attributes copied unchanged from the closed version into the new one
CARRIED_FIELDS = (
    "phone",
    "address_line1",
    "country",
    "postal_code",
    "acquisition_channel",
    "lifetime_value",
)


class CustomerAttributes(BaseModel):
    """Candidate values for the tracked customer attributes"""
    name: str
    email: Optional[str] = None
    segment: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class CustomerProfile(CustomerAttributes):
    """Full attribute set for registering a new customer"""
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    acquisition_channel: Optional[str] = None
    lifetime_value: Decimal = Decimal("0")


class ChangeStatus(str, Enum):
    """Outcome of comparing candidate attributes with the current version"""
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    NO_CURRENT_RECORD = "no_current_record"


class ScdStatus(str, Enum):
    """Outcome of an SCD update"""
    UPDATED = "Customer updated with SCD Type 2"
    CREATED = "Customer created"
    NO_CHANGE = "No changes detected"
    NO_CURRENT_RECORD = "No current record for customer"


@dataclass
class ChangeDetection:
    status: ChangeStatus
    current: Optional[DimCustomer] = None
    changed_fields: List[str] = field(default_factory=list)


class ScdResult(BaseModel):
    """Result of an SCD update"""
    customer_id: str
    status: ScdStatus
    previous_version: Optional[int] = None
    current_version: Optional[int] = None
    changed_fields: List[str] = []


@dataclass
class ScdViolation:
    """A customer whose versions break the SCD Type 2 invariants"""
    customer_id: str
    current_rows: int
    version_count: int
    min_version: int
    max_version: int

    @property
    def message(self) -> str:
        if self.current_rows != 1:
            return f"{self.current_rows} current versions"
        return f"versions {self.min_version}..{self.max_version} over {self.version_count} rows"


async def get_current_customer(
    db: AsyncSession,
    customer_id: str,
    for_update: bool = False,
) -> Optional[DimCustomer]:
    """Current version of a customer, or None"""
    query = select(DimCustomer).where(
        DimCustomer.customer_id == customer_id,
        DimCustomer.is_current.is_(True),
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalars().first()


async def get_customer_history(db: AsyncSession, customer_id: str) -> List[DimCustomer]:
    """All versions of a customer, oldest first"""
    result = await db.execute(
        select(DimCustomer)
        .where(DimCustomer.customer_id == customer_id)
        .order_by(DimCustomer.version)
    )
    return list(result.scalars().all())


def changed_fields(current: DimCustomer, attributes: CustomerAttributes) -> List[str]:
    """Tracked fields whose candidate value differs from the current version"""
    return [
        name for name in TRACKED_FIELDS
        if getattr(current, name) != getattr(attributes, name)
    ]


async def detect_customer_change(
    db: AsyncSession,
    customer_id: str,
    attributes: CustomerAttributes,
) -> ChangeDetection:
    """
    Compare candidate attributes with the current version of a customer.

    Comparison is literal per field: values that differ only by case or
    trailing whitespace count as a change, and a missing value differs from
    any present value.
    """
    current = await get_current_customer(db, customer_id, for_update=True)
    if current is None:
        return ChangeDetection(status=ChangeStatus.NO_CURRENT_RECORD)

    diff = changed_fields(current, attributes)
    if not diff:
        return ChangeDetection(status=ChangeStatus.UNCHANGED, current=current)
    return ChangeDetection(status=ChangeStatus.CHANGED, current=current, changed_fields=diff)


async def update_customer_scd(
    db: AsyncSession,
    customer_id: str,
    attributes: CustomerAttributes,
    as_of: Optional[date] = None,
) -> ScdResult:
    """
    Apply candidate attributes to a customer as a new SCD Type 2 version.

    Args:
        db: Session of the enclosing unit of work
        customer_id: Natural customer key
        attributes: Candidate tracked attributes
        as_of: Logical date of the change (defaults to today)

    Returns:
        ScdResult: UPDATED, NO_CHANGE or NO_CURRENT_RECORD
    """
    as_of = as_of or date.today()
    detection = await detect_customer_change(db, customer_id, attributes)

    if detection.status == ChangeStatus.NO_CURRENT_RECORD:
        logger.info("No current customer version", customer_id=customer_id)
        return ScdResult(customer_id=customer_id, status=ScdStatus.NO_CURRENT_RECORD)

    current = detection.current
    if detection.status == ChangeStatus.UNCHANGED:
        logger.debug("Customer unchanged", customer_id=customer_id, version=current.version)
        return ScdResult(
            customer_id=customer_id,
            status=ScdStatus.NO_CHANGE,
            previous_version=current.version,
            current_version=current.version,
        )

    # Close the current version
    old_values = customer_snapshot(current)
    current.is_current = False
    current.expiry_date = as_of
    await audit_customer_update(db, old_values, current)
    await db.flush()

    # Open the next one
    new_version = DimCustomer(
        customer_id=customer_id,
        **attributes.model_dump(include=set(TRACKED_FIELDS)),
        **{name: getattr(current, name) for name in CARRIED_FIELDS},
        effective_date=as_of,
        expiry_date=None,
        is_current=True,
        version=current.version + 1,
    )
    db.add(new_version)
    await audit_customer_insert(db, new_version)
    await db.flush()

    logger.info(
        "Customer updated with SCD Type 2",
        customer_id=customer_id,
        version=new_version.version,
        changed=detection.changed_fields,
    )

    return ScdResult(
        customer_id=customer_id,
        status=ScdStatus.UPDATED,
        previous_version=current.version,
        current_version=new_version.version,
        changed_fields=detection.changed_fields,
    )


async def register_customer(
    db: AsyncSession,
    customer_id: str,
    profile: CustomerAttributes,
    as_of: Optional[date] = None,
) -> DimCustomer:
    """
    Insert a brand-new customer as its first current version.

    Raises:
        CustomerExistsError: The customer already has a current version
    """
    as_of = as_of or date.today()

    if await get_current_customer(db, customer_id, for_update=True) is not None:
        raise CustomerExistsError(customer_id)

    # Continue numbering if history exists without a current row
    result = await db.execute(
        select(func.max(DimCustomer.version)).where(DimCustomer.customer_id == customer_id)
    )
    last_version = result.scalar()

    customer = DimCustomer(
        customer_id=customer_id,
        **profile.model_dump(),
        effective_date=as_of,
        expiry_date=None,
        is_current=True,
        version=(last_version or 0) + 1,
    )
    db.add(customer)
    await audit_customer_insert(db, customer)
    await db.flush()

    logger.info("Customer registered", customer_id=customer_id, version=customer.version)
    return customer


async def find_scd_violations(db: AsyncSession) -> List[ScdViolation]:
    """
    Customers breaking the versioning invariants.

    A customer is reported when it has other than exactly one current
    version, or when its versions are not the contiguous sequence 1..n.
    """
    current_rows = func.sum(case((DimCustomer.is_current.is_(True), 1), else_=0))
    version_count = func.count(DimCustomer.customer_key)
    distinct_versions = func.count(func.distinct(DimCustomer.version))
    min_version = func.min(DimCustomer.version)
    max_version = func.max(DimCustomer.version)

    result = await db.execute(
        select(
            DimCustomer.customer_id,
            current_rows,
            version_count,
            min_version,
            max_version,
        )
        .group_by(DimCustomer.customer_id)
        .having(
            (current_rows != 1)
            | (min_version != 1)
            | (max_version != version_count)
            | (distinct_versions != version_count)
        )
        .order_by(DimCustomer.customer_id)
    )

    violations = [
        ScdViolation(
            customer_id=row[0],
            current_rows=int(row[1]),
            version_count=int(row[2]),
            min_version=int(row[3]),
            max_version=int(row[4]),
        )
        for row in result.all()
    ]
    if violations:
        logger.warning("SCD integrity violations found", count=len(violations))
    return violations
