"""
Shared test fixtures.

============================================================
PURPOSE
============================================================
- Fake wallet node (see tests/fakes.py)
- In-memory SQLite ledger store (aiosqlite, StaticPool)
- Fixed clock and a healthy snapshot

============================================================
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from core.clock import MockClock
from database import Database, DatabaseConfig, LedgerRepository
from health_gate import HealthSnapshot
from tests.fakes import NOW, FakeNode


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return MockClock(NOW)


@pytest.fixture
def node():
    """Fake wallet node."""
    return FakeNode()


@pytest.fixture
def snapshot():
    """Healthy snapshot with lib 990."""
    return HealthSnapshot(
        locked=False,
        head_block_num=1000,
        head_block_time=NOW - timedelta(seconds=3),
        head_age_seconds=3.0,
        last_irreversible_block_num=990,
        participation_rate=Decimal("100"),
    )


@pytest_asyncio.fixture
async def database():
    """In-memory ledger store with tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database(DatabaseConfig(url="sqlite+aiosqlite://"), engine=engine)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def store(database):
    """Repository bound to one session."""
    async with database.session_scope() as session:
        yield LedgerRepository(session)
