"""
Integration Tests - Customer Versioning (SCD Type 2)
"""
from datetime import date

import pytest
from sqlalchemy import select, update

from analytics_dw.database.connection import get_db
from analytics_dw.database.models import AuditLog, AuditOperation, DimCustomer
from analytics_dw.etl import scd
from analytics_dw.etl.scd import (
    CustomerAttributes,
    CustomerProfile,
    ScdStatus,
    find_scd_violations,
    get_customer_history,
    register_customer,
    update_customer_scd,
)
from analytics_dw.exceptions import CustomerExistsError

ALICE = dict(name="Alice Smith", email="alice@example.com", segment="Consumer", city="Austin", state="TX")


async def history(customer_id):
    async with get_db() as db:
        return await get_customer_history(db, customer_id)


class TestUpdateCustomerScd:
    """Tests for versioned customer updates"""

    async def test_city_change_creates_new_version(self, seeded_warehouse):
        attributes = CustomerAttributes(**{**ALICE, "city": "Dallas"})

        async with get_db() as db:
            result = await update_customer_scd(db, "C001", attributes, as_of=date(2024, 6, 1))

        assert result.status == ScdStatus.UPDATED
        assert result.previous_version == 1
        assert result.current_version == 2
        assert result.changed_fields == ["city"]

        old, new = await history("C001")
        assert (old.version, old.city, old.is_current, old.expiry_date) == (1, "Austin", False, date(2024, 6, 1))
        assert (new.version, new.city, new.is_current, new.expiry_date) == (2, "Dallas", True, None)
        assert new.effective_date == date(2024, 6, 1)

    async def test_new_version_carries_untracked_attributes(self, seeded_warehouse):
        attributes = CustomerAttributes(**{**ALICE, "segment": "Corporate"})

        async with get_db() as db:
            await update_customer_scd(db, "C001", attributes, as_of=date(2024, 6, 1))

        _, new = await history("C001")
        assert new.phone == "555-0100"
        assert new.country == "US"

    async def test_identical_attributes_change_nothing(self, seeded_warehouse):
        async with get_db() as db:
            result = await update_customer_scd(db, "C001", CustomerAttributes(**ALICE))

        assert result.status == ScdStatus.NO_CHANGE
        assert result.current_version == 1
        assert len(await history("C001")) == 1

    async def test_case_difference_is_a_change(self, seeded_warehouse):
        attributes = CustomerAttributes(**{**ALICE, "email": "Alice@example.com"})

        async with get_db() as db:
            result = await update_customer_scd(db, "C001", attributes)

        assert result.status == ScdStatus.UPDATED
        assert result.changed_fields == ["email"]

    async def test_missing_value_is_a_change(self, seeded_warehouse):
        attributes = CustomerAttributes(**{**ALICE, "segment": None})

        async with get_db() as db:
            result = await update_customer_scd(db, "C001", attributes)

        assert result.status == ScdStatus.UPDATED

    async def test_unknown_customer(self, seeded_warehouse):
        async with get_db() as db:
            result = await update_customer_scd(db, "C404", CustomerAttributes(name="Nobody"))

        assert result.status == ScdStatus.NO_CURRENT_RECORD
        assert await history("C404") == []

    async def test_versions_stay_contiguous(self, seeded_warehouse):
        for i, city in enumerate(["Dallas", "Houston", "El Paso"], start=1):
            async with get_db() as db:
                await update_customer_scd(
                    db, "C001", CustomerAttributes(**{**ALICE, "city": city}), as_of=date(2024, 6, i)
                )

        versions = await history("C001")
        assert [v.version for v in versions] == [1, 2, 3, 4]
        assert [v.is_current for v in versions] == [False, False, False, True]
        # Each closed version expires the day its successor takes effect
        for older, newer in zip(versions, versions[1:]):
            assert older.expiry_date == newer.effective_date

        async with get_db() as db:
            assert await find_scd_violations(db) == []

    async def test_failure_after_expiry_rolls_back(self, seeded_warehouse, monkeypatch):
        async def broken_audit(db, customer):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(scd, "audit_customer_insert", broken_audit)

        with pytest.raises(RuntimeError):
            async with get_db() as db:
                await update_customer_scd(db, "C001", CustomerAttributes(**{**ALICE, "city": "Dallas"}))

        versions = await history("C001")
        assert len(versions) == 1
        assert versions[0].is_current is True
        assert versions[0].expiry_date is None
        async with get_db() as db:
            assert await find_scd_violations(db) == []

    async def test_update_writes_audit_trail(self, seeded_warehouse):
        async with get_db() as db:
            await update_customer_scd(db, "C001", CustomerAttributes(**{**ALICE, "segment": "Corporate"}))

        async with get_db() as db:
            entries = (await db.execute(select(AuditLog).order_by(AuditLog.audit_id))).scalars().all()

        assert [e.operation for e in entries] == [AuditOperation.UPDATE, AuditOperation.INSERT]
        assert entries[0].old_values["segment"] == "Consumer"
        assert entries[1].new_values["segment"] == "Corporate"
        assert all(e.record_id == "C001" for e in entries)
        assert all(e.table_name == "dim_customer" for e in entries)


class TestRegisterCustomer:
    """Tests for first-version inserts"""

    async def test_register_new_customer(self, seeded_warehouse):
        profile = CustomerProfile(name="Cara Diaz", email="cara@example.com", city="Tulsa", phone="555-0199")

        async with get_db() as db:
            customer = await register_customer(db, "C003", profile, as_of=date(2024, 2, 1))

        assert customer.version == 1
        assert customer.is_current is True
        assert customer.effective_date == date(2024, 2, 1)
        assert customer.phone == "555-0199"

    async def test_existing_customer_refused(self, seeded_warehouse):
        with pytest.raises(CustomerExistsError):
            async with get_db() as db:
                await register_customer(db, "C001", CustomerAttributes(**ALICE))

        assert len(await history("C001")) == 1


class TestScdViolations:
    """Tests for the integrity scan"""

    async def test_version_gap_reported(self, seeded_warehouse):
        async with get_db() as db:
            # Close v1 without opening a successor, then add a gap version
            await db.execute(
                update(DimCustomer).where(DimCustomer.customer_id == "C002").values(is_current=False)
            )
            db.add(DimCustomer(
                customer_id="C002", name="Bob Jones", effective_date=date(2024, 5, 1),
                is_current=True, version=3,
            ))

        async with get_db() as db:
            violations = await find_scd_violations(db)

        assert [v.customer_id for v in violations] == ["C002"]
        assert violations[0].max_version == 3
        assert violations[0].version_count == 2
        assert "versions 1..3" in violations[0].message

    async def test_no_current_row_reported(self, seeded_warehouse):
        async with get_db() as db:
            await db.execute(
                update(DimCustomer).where(DimCustomer.customer_id == "C001").values(is_current=False)
            )

        async with get_db() as db:
            violations = await find_scd_violations(db)

        assert violations[0].customer_id == "C001"
        assert violations[0].current_rows == 0
