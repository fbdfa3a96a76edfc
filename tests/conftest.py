"""
Test Suite Configuration
"""
from datetime import date
from decimal import Decimal

import polars as pl
import pytest

from analytics_dw.config import Settings
from analytics_dw.database.connection import (
    close_database,
    create_schema,
    get_db,
    init_database,
)
from analytics_dw.database.models import (
    DimCustomer,
    DimLocation,
    DimProduct,
    StagingSale,
)
from analytics_dw.ingestion.seed import seed_dim_date

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
async def warehouse():
    """Empty warehouse schema on a fresh in-memory database"""
    engine = await init_database(TEST_DATABASE_URL)
    await create_schema()
    yield engine
    await close_database()


@pytest.fixture
async def seeded_warehouse(warehouse):
    """Warehouse with 2024 dates, two customers, two products and one location"""
    async with get_db() as db:
        await seed_dim_date(db, date(2024, 1, 1), date(2024, 12, 31))
        db.add_all([
            DimCustomer(
                customer_id="C001",
                name="Alice Smith",
                email="alice@example.com",
                phone="555-0100",
                segment="Consumer",
                city="Austin",
                state="TX",
                country="US",
                effective_date=date(2024, 1, 1),
                is_current=True,
                version=1,
            ),
            DimCustomer(
                customer_id="C002",
                name="Bob Jones",
                email="bob@example.com",
                segment="Corporate",
                city="Denver",
                state="CO",
                country="US",
                effective_date=date(2024, 1, 1),
                is_current=True,
                version=1,
            ),
            DimProduct(
                product_id="P001",
                sku="SKU-001",
                name="Desk Lamp",
                category="Furniture",
                brand="Lumen",
                unit_cost=Decimal("6.00"),
                unit_price=Decimal("10.00"),
            ),
            DimProduct(
                product_id="P002",
                sku="SKU-002",
                name="Notebook",
                category="Office Supplies",
                brand="Paperco",
                unit_cost=None,
                unit_price=Decimal("25.00"),
            ),
            DimLocation(
                location_id="L001",
                location_name="Austin Store",
                location_type="store",
                city="Austin",
                state="TX",
            ),
        ])
    yield warehouse


@pytest.fixture
def staged_sale():
    """Factory for staging rows with sensible defaults"""
    def _make(transaction_id: str, **overrides) -> StagingSale:
        values = {
            "transaction_id": transaction_id,
            "order_date": date(2024, 3, 15),
            "customer_id": "C001",
            "product_id": "P001",
            "location_id": "L001",
            "quantity": 2,
            "unit_price": Decimal("10.00"),
            "discount_amount": Decimal("0.00"),
            "tax_amount": Decimal("0.00"),
            "total_amount": Decimal("20.00"),
            "order_number": f"O-{transaction_id}",
            "payment_method": "credit_card",
            "shipping_method": "standard",
        }
        values.update(overrides)
        return StagingSale(**values)

    return _make


@pytest.fixture
def stage():
    """Write staging rows in their own unit of work"""
    async def _stage(*sales: StagingSale) -> None:
        async with get_db() as db:
            db.add_all(list(sales))

    return _stage


@pytest.fixture
def sample_sales_df() -> pl.DataFrame:
    """Staged sales DataFrame for validator tests"""
    return pl.DataFrame({
        "transaction_id": ["T1", "T2", "T3"],
        "order_date": [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)],
        "customer_id": ["C001", "C001", "C002"],
        "product_id": ["P001", "P002", "P001"],
        "location_id": ["L001", "L001", "L001"],
        "quantity": [2, 1, 4],
        "unit_price": [10.0, 25.0, 10.0],
        "discount_amount": [0.0, 0.0, 2.0],
        "tax_amount": [1.6, 2.0, 3.04],
        "total_amount": [21.6, 27.0, 41.04],
        "order_number": ["O1", "O2", "O3"],
        "payment_method": ["credit_card", "paypal", "credit_card"],
    })
