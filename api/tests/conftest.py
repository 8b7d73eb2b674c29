"""
Shared fixtures. Services run against a fresh in-memory SQLite database per test.

Run with:
    pytest -v
"""
import os

# Must be set before app modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("API_SECRET_KEY", "test-secret-key-0123456789-abcdefghijklmnop")

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models import billing, household, user  # noqa: F401  (register tables)
from app.models.household import Resident
from app.models.user import Role, UserAccount
from app.schemas.billing import FeeCreate, InvoiceCreate, InvoiceLineItem
from app.schemas.household import HouseholdCreate, MemberCreate
from app.services import fees, households, ledger


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
    async with sessionmaker() as session:
        yield session


# ── Factories ────────────────────────────────────────────────────────────────

@pytest.fixture
def make_household(db):
    async def make(apartment_number="P1204", phone_number="0900000001", host_name="Tran Van Hai", **extra):
        return await households.create_household(
            db,
            HouseholdCreate(
                apartment_number=apartment_number,
                area=extra.pop("area", 75.5),
                host_name=host_name,
                phone_number=phone_number,
                **extra,
            ),
        )
    return make


@pytest.fixture
def make_member(db):
    async def make(apartment_id, name="Le Thi Mai", phone_number="0911111111", **extra):
        return await households.add_member(
            db, apartment_id, MemberCreate(name=name, phone_number=phone_number, **extra)
        )
    return make


@pytest.fixture
def make_fee(db):
    async def make(name="Management fee", unit_price="50000", unit="m2"):
        return await fees.create_fee(
            db, FeeCreate(name=name, unit_price=Decimal(unit_price), unit=unit)
        )
    return make


@pytest.fixture
def make_invoice(db):
    async def make(apartment_id, lines=(), month=12, year=2025):
        return await ledger.create_invoice(
            db,
            InvoiceCreate(
                apartment_id=apartment_id,
                month=month,
                year=year,
                items=[InvoiceLineItem(fee_id=fee_id, quantity=Decimal(str(qty))) for fee_id, qty in lines],
            ),
        )
    return make


@pytest.fixture
def make_account(db):
    """Account row without going through bcrypt."""
    async def make(email, resident_id=None, role=Role.RESIDENT):
        account = UserAccount(email=email, hashed_password="not-a-real-hash", role=role, resident_id=resident_id)
        db.add(account)
        await db.flush()
        return account
    return make


@pytest.fixture
def host_count(db):
    async def count(apartment_id):
        return await db.scalar(
            select(func.count(Resident.id)).where(
                Resident.apartment_id == apartment_id,
                Resident.is_host == True,  # noqa: E712
            )
        )
    return count
