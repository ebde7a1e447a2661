"""Pytest configuration: file-backed async SQLite ledger, change feed and store."""

import asyncio
import os
from datetime import date
from decimal import Decimal

# Locale is read at import time by the formatting helpers
os.environ.setdefault("LOCALE", "en_IN")

import pytest  # noqa: E402

from pgportal.models import PaymentRecord, PaymentStatus, RentProfile  # noqa: E402
from pgportal.services.change_feed import ChangeFeed  # noqa: E402
from pgportal.services.db import create_engine, create_session_factory, create_tables  # noqa: E402
from pgportal.services.ledger_binding import PAYMENTS_RESOURCE  # noqa: E402
from pgportal.services.ledger_store import LedgerStore  # noqa: E402
from pgportal.services.period_service import current_period_key  # noqa: E402

TENANT = "tenant-001"
OTHER_TENANT = "tenant-002"


@pytest.fixture
async def engine(tmp_path):
    """Async engine on a throwaway SQLite file with all tables created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def feed():
    """Change feed publishing "payments" on every committed payment write."""
    feed = ChangeFeed()
    feed.watch(PaymentRecord, PAYMENTS_RESOURCE)
    yield feed
    feed.close()


@pytest.fixture
def store(session_factory, feed):
    return LedgerStore(session_factory)


@pytest.fixture
def add_profile(session_factory):
    """Create a rent profile as the operator's admin process would."""

    async def _add_profile(
        tenant_id: str = TENANT,
        monthly_rent: Decimal | None = Decimal("5000"),
        room_number: str | None = "101",
        bed_number: str | None = "B",
        joining_date: date | None = None,
        telegram_id: str | None = None,
    ) -> RentProfile:
        profile = RentProfile(
            tenant_id=tenant_id,
            full_name="Asha Rao",
            monthly_rent=monthly_rent,
            room_number=room_number,
            bed_number=bed_number,
            joining_date=joining_date,
            telegram_id=telegram_id,
        )
        async with session_factory() as session:
            session.add(profile)
            await session.commit()
        return profile

    return _add_profile


@pytest.fixture
def add_payment(session_factory):
    """Write a payment row directly, bypassing the workflow."""
    counter = {"n": 0}

    async def _add_payment(
        tenant_id: str = TENANT,
        amount: Decimal = Decimal("5000"),
        period_key: str | None = None,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        payment_method: str = "UPI",
    ) -> PaymentRecord:
        counter["n"] += 1
        record = PaymentRecord(
            tenant_id=tenant_id,
            amount=amount,
            period_key=period_key or current_period_key(),
            status=status.value,
            payment_method=payment_method,
            transaction_reference=f"TXN-FIXTURE-{counter['n']}",
        )
        async with session_factory() as session:
            session.add(record)
            await session.commit()
        return record

    return _add_payment


@pytest.fixture
def settle():
    """Let queued feed deliveries run, then wait for bindings to finish refreshing."""

    async def _settle(*bindings) -> None:
        for _ in range(5):
            await asyncio.sleep(0)
        for binding in bindings:
            await binding.wait_idle()

    return _settle
