# ruff: noqa: INP001
"""Pytest configuration shared across access-core tests."""

import os
import sys
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Deterministic defaults during import-time settings initialization,
# regardless of shell env.
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["LOG_FORMAT"] = "text"

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from boardaccess.db.memory_store import InMemoryMembershipStore  # noqa: E402
from boardaccess.db.session import create_session_maker  # noqa: E402
from boardaccess.db.sql_store import SqlMembershipStore  # noqa: E402
from boardaccess.db.store import MembershipStore  # noqa: E402
from boardaccess.services.container import AccessServices, build_services  # noqa: E402


class FakeClock:
    """Controllable replacement for `utcnow` in services under test."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncIterator[MembershipStore]:
    """Every contract test runs against both backends."""
    if request.param == "memory":
        yield InMemoryMembershipStore()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.db'}")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    sql_store = SqlMembershipStore(create_session_maker(engine), engine=engine)
    try:
        yield sql_store
    finally:
        await sql_store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def services(store: MembershipStore, clock: FakeClock) -> AccessServices:
    return build_services(store, clock=clock)
