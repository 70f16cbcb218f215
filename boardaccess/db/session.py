"""Database engine, session factory, and startup backend selection."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from boardaccess import models as _models
from boardaccess.core.config import Settings, StorageBackend, settings
from boardaccess.core.logging import get_logger
from boardaccess.db.memory_store import InMemoryMembershipStore
from boardaccess.db.sql_store import SqlMembershipStore

if TYPE_CHECKING:
    from boardaccess.db.store import MembershipStore

# Import model modules so SQLModel metadata is fully registered at startup.
_MODEL_REGISTRY = _models

logger = get_logger(__name__)


class StorageUnavailableError(RuntimeError):
    """The durable backend was required but could not be reached."""


def normalize_database_url(database_url: str) -> str:
    if "://" not in database_url:
        return database_url
    scheme, rest = database_url.split("://", 1)
    if scheme == "postgresql":
        return f"postgresql+psycopg://{rest}"
    return database_url


def create_engine(config: Settings) -> AsyncEngine:
    """Build the async engine for the configured database URL."""
    return create_async_engine(
        normalize_database_url(config.database_url),
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create any missing tables, indexes and constraints."""
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)


async def _probe(engine: AsyncEngine, timeout: float) -> None:
    async with asyncio.timeout(timeout):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))


async def open_store(config: Settings | None = None) -> MembershipStore:
    """Select the membership store backend once, at process start.

    `memory` never touches the database. `database` fails hard when the
    database is unreachable. `auto` falls back to the in-memory store.
    """
    config = config or settings
    if config.storage_backend == StorageBackend.MEMORY:
        logger.info("storage.backend.selected backend=memory reason=configured")
        return InMemoryMembershipStore()

    engine = create_engine(config)
    try:
        await _probe(engine, config.db_connect_timeout_seconds)
        if config.db_auto_create_schema:
            await init_db(engine)
    except (SQLAlchemyError, OSError, TimeoutError) as exc:
        await engine.dispose()
        if config.storage_backend == StorageBackend.DATABASE:
            logger.exception("storage.backend.unavailable backend=database")
            raise StorageUnavailableError("Database is unreachable") from exc
        logger.warning(
            "storage.backend.fallback backend=memory error=%s",
            exc.__class__.__name__,
        )
        return InMemoryMembershipStore()

    logger.info("storage.backend.selected backend=database")
    return SqlMembershipStore(create_session_maker(engine), engine=engine)
