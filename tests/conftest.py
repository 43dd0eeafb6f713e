"""Pytest configuration and shared fixtures.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
concurrent sessions behave like separate connections to a real store.
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from clubledger.models import Member, MemberStatus, MembershipCategory
from clubledger.services.db import create_engine_from_url, create_session_factory, create_tables
from clubledger.services.fee_service import FeeService
from clubledger.services.payment_service import PaymentLedger
from clubledger.services.store import LedgerStore

FIXED_TODAY = date(2025, 6, 15)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test_clubledger.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    """Async engine with all tables created."""
    engine = create_engine_from_url(database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> LedgerStore:
    """Ledger store with fast retries suitable for tests."""
    return LedgerStore(session_factory, max_attempts=10, wait_initial=0.01, wait_max=0.1)


@pytest_asyncio.fixture
async def session(session_factory):
    """Plain session for seeding and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(store) -> PaymentLedger:
    return PaymentLedger(store, today=lambda: FIXED_TODAY)


@pytest.fixture
def fee_service(store) -> FeeService:
    return FeeService(store, today=lambda: FIXED_TODAY)


async def _add_category(
    session: AsyncSession,
    name: str = "Full",
    annual_fee: str = "480",
    joining_fee: str = "0",
    joining_fee_months: list[int] | None = None,
    pro_rata_rates: dict | None = None,
) -> MembershipCategory:
    category = MembershipCategory(
        name=name,
        annual_fee=Decimal(annual_fee),
        joining_fee=Decimal(joining_fee),
        joining_fee_months=joining_fee_months or [],
        pro_rata_rates=pro_rata_rates or {},
    )
    session.add(category)
    await session.commit()
    return category


async def _add_member(
    session: AsyncSession,
    full_name: str,
    category: MembershipCategory | None = None,
    balance: str = "0",
    status: MemberStatus = MemberStatus.ACTIVE,
) -> Member:
    member = Member(
        full_name=full_name,
        email=f"{full_name.split()[0].lower()}@example.com",
        category_id=category.id if category else None,
        status=status.value,
        account_balance=Decimal(balance),
    )
    session.add(member)
    await session.commit()
    return member


async def _fetch_member(store: LedgerStore, member_id: int) -> Member:
    async with store.session() as session:
        return await session.get(Member, member_id)


@pytest.fixture
def make_category(session):
    """Create and commit a membership category."""

    async def _make(**kwargs) -> MembershipCategory:
        return await _add_category(session, **kwargs)

    return _make


@pytest.fixture
def make_member(session):
    """Create and commit a member."""

    async def _make(full_name: str, category=None, **kwargs) -> Member:
        return await _add_member(session, full_name, category, **kwargs)

    return _make


@pytest.fixture
def fetch_member(store):
    """Fresh read of a member in a new session, bypassing any identity map."""

    async def _fetch(member_id: int) -> Member:
        return await _fetch_member(store, member_id)

    return _fetch
