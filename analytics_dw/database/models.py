"""
Database Models - Star Schema Design

This module defines the warehouse data models following a star schema design
with a Slowly Changing (Type 2) customer dimension. The schema consists of:

Staging:
- StagingSale: Raw transactional rows awaiting the incremental load

Fact Tables:
- FactSale: Sales transactions keyed by natural transaction id
- FactInventory: Inventory snapshots per product, location and day

Dimension Tables:
- DimDate: Date dimension with calendar attributes
- DimCustomer: Customer attributes, versioned (SCD Type 2)
- DimProduct: Product catalog with unit cost
- DimLocation: Store / warehouse locations

Aggregates and bookkeeping:
- AggDailySales: Disposable daily rollup per customer and product
- EtlLog: One entry per pipeline invocation
- AuditLog: Customer dimension change history
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class RunStatus(str, Enum):
    """ETL run outcome"""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class AuditOperation(str, Enum):
    """Audited write operation"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    Pre-populated calendar dimension. Staged rows whose order date has no
    entry here are never loaded.
    """
    __tablename__ = "dim_date"

    date_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)  # YYYYMMDD
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Monday
    day_name: Mapped[str] = mapped_column(String(20), nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, default=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_quarter: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_dim_date_year_month", "year", "month"),
        Index("ix_dim_date_fiscal", "fiscal_year", "fiscal_quarter"),
    )


class DimCustomer(Base):
    """
    Customer Dimension Table (SCD Type 2)

    ``customer_id`` is the natural key shared by every version of a customer,
    ``customer_key`` identifies a single version. Exactly one version per
    customer carries ``is_current``; versions count up from 1.
    """
    __tablename__ = "dim_customer"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    segment: Mapped[Optional[str]] = mapped_column(String(50))
    lifetime_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"))
    acquisition_channel: Mapped[Optional[str]] = mapped_column(String(50))

    # Address
    address_line1: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    # SCD Type 2 fields
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    sales: Mapped[List["FactSale"]] = relationship(back_populates="customer")

    __table_args__ = (
        UniqueConstraint("customer_id", "version", name="uq_dim_customer_version"),
        Index("ix_dim_customer_customer_id", "customer_id"),
        Index("ix_dim_customer_segment", "segment"),
        Index("ix_dim_customer_location", "country", "state", "city"),
    )


# At most one current version per natural key
Index(
    "uq_dim_customer_current",
    DimCustomer.customer_id,
    unique=True,
    postgresql_where=DimCustomer.is_current,
    sqlite_where=DimCustomer.is_current,
)


class DimProduct(Base):
    """
    Product Dimension Table

    Product catalog; ``unit_cost`` drives the cost and profit of every sale.
    """
    __tablename__ = "dim_product"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    subcategory: Mapped[Optional[str]] = mapped_column(String(100))
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    supplier: Mapped[Optional[str]] = mapped_column(String(200))

    # Pricing
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    margin_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))

    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    dimensions: Mapped[Optional[str]] = mapped_column(String(100))

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    launch_date: Mapped[Optional[date]] = mapped_column(Date)
    discontinue_date: Mapped[Optional[date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    sales: Mapped[List["FactSale"]] = relationship(back_populates="product")

    __table_args__ = (
        Index("ix_dim_product_category", "category", "subcategory"),
        Index("ix_dim_product_brand", "brand"),
        Index("ix_dim_product_active", "is_active"),
    )


class DimLocation(Base):
    """
    Location Dimension Table

    Stores, warehouses and offices where sales and inventory are recorded.
    """
    __tablename__ = "dim_location"

    location_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    location_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location_type: Mapped[Optional[str]] = mapped_column(String(50))  # warehouse, store, office

    address_line1: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(50))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8))
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8))
    region: Mapped[Optional[str]] = mapped_column(String(100))
    timezone: Mapped[Optional[str]] = mapped_column(String(50))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    opened_date: Mapped[Optional[date]] = mapped_column(Date)
    closed_date: Mapped[Optional[date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_dim_location_type", "location_type"),
        Index("ix_dim_location_region", "region"),
    )


# =============================================================================
# STAGING
# =============================================================================

class StagingSale(Base):
    """
    Staged Sales Rows

    Raw transactional rows as delivered by source systems. Rows are keyed by
    natural ids only; the incremental load resolves them to surrogate keys.
    """
    __tablename__ = "stg_sales_raw"

    staging_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[str] = mapped_column(String(50), nullable=False)
    location_id: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order_number: Mapped[Optional[str]] = mapped_column(String(100))
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    shipping_method: Mapped[Optional[str]] = mapped_column(String(50))

    # Lineage
    source_file: Mapped[Optional[str]] = mapped_column(String(500))
    loaded_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_stg_sales_raw_order_date", "order_date"),
        Index("ix_stg_sales_raw_transaction", "transaction_id"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSale(Base):
    """
    Sales Fact Table

    Grain: one row per source transaction. Dimension keys always point at the
    dimension version that was current when the row was first loaded.
    """
    __tablename__ = "fact_sales"

    sales_key: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Dimension foreign keys
    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customer.customer_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), nullable=False
    )
    location_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_location.location_key"), nullable=False
    )

    # Measures
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    cost_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    profit_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    # Degenerate dimensions
    order_number: Mapped[Optional[str]] = mapped_column(String(100))
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    shipping_method: Mapped[Optional[str]] = mapped_column(String(50))

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    customer: Mapped["DimCustomer"] = relationship(back_populates="sales")
    product: Mapped["DimProduct"] = relationship(back_populates="sales")

    __table_args__ = (
        Index("ix_fact_sales_date", "date_key"),
        Index("ix_fact_sales_customer", "customer_key"),
        Index("ix_fact_sales_product", "product_key"),
        Index("ix_fact_sales_location", "location_key"),
        Index("ix_fact_sales_order", "order_number"),
        Index("ix_fact_sales_composite", "date_key", "customer_key", "product_key"),
    )


class FactInventory(Base):
    """
    Inventory Snapshot Fact Table

    Grain: one row per product per location per day. Availability and value
    are derived on read from on-hand, reserved and unit cost.
    """
    __tablename__ = "fact_inventory"

    inventory_key: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    snapshot_date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), nullable=False
    )
    location_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_location.location_key"), nullable=False
    )

    quantity_on_hand: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_point: Mapped[Optional[int]] = mapped_column(Integer)
    reorder_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    last_count_date: Mapped[Optional[date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    @hybrid_property
    def quantity_available(self) -> int:
        return self.quantity_on_hand - (self.quantity_reserved or 0)

    @quantity_available.inplace.expression
    @classmethod
    def _quantity_available_expression(cls):
        return cls.quantity_on_hand - func.coalesce(cls.quantity_reserved, 0)

    @hybrid_property
    def inventory_value(self) -> Optional[Decimal]:
        if self.unit_cost is None:
            return None
        return self.quantity_on_hand * self.unit_cost

    @inventory_value.inplace.expression
    @classmethod
    def _inventory_value_expression(cls):
        return cls.quantity_on_hand * cls.unit_cost

    __table_args__ = (
        UniqueConstraint(
            "snapshot_date_key", "product_key", "location_key", name="uq_fact_inventory_snapshot"
        ),
        Index("ix_fact_inventory_snapshot", "snapshot_date_key"),
        Index("ix_fact_inventory_product", "product_key"),
        Index("ix_fact_inventory_location", "location_key"),
    )


# =============================================================================
# ANALYTICS AGGREGATES
# =============================================================================

class AggDailySales(Base):
    """
    Daily Sales Aggregate Table

    Rollup of fact_sales per date, customer and product. Fully derived and
    rebuilt per date by the aggregator; carries no load timestamps so that a
    rebuild over unchanged facts reproduces identical rows.
    """
    __tablename__ = "agg_daily_sales"

    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), primary_key=True
    )
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customer.customer_key"), primary_key=True
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), primary_key=True
    )

    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    total_profit: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    order_count: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_order_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)


# =============================================================================
# BOOKKEEPING
# =============================================================================

class EtlLog(Base):
    """
    ETL Run Log

    Append-only record of every pipeline invocation.
    """
    __tablename__ = "etl_log"

    log_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    process_name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rows_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[RunStatus] = mapped_column(SQLEnum(RunStatus), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_etl_log_process", "process_name", "start_time"),
    )


class AuditLog(Base):
    """
    Audit Log Table

    Snapshot of customer dimension attributes before and after each write.
    """
    __tablename__ = "audit_log"

    audit_id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[AuditOperation] = mapped_column(SQLEnum(AuditOperation), nullable=False)
    record_id: Mapped[Optional[str]] = mapped_column(String(100))
    old_values: Mapped[Optional[dict]] = mapped_column(JSON)
    new_values: Mapped[Optional[dict]] = mapped_column(JSON)
    user_name: Mapped[Optional[str]] = mapped_column(String(100))
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_audit_log_table", "table_name"),
        Index("ix_audit_log_timestamp", "timestamp"),
    )
