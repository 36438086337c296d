"""
Database Persistence Layer - Core Engine.

============================================================
RESPONSIBILITY
============================================================
Async SQLAlchemy engine and session management for the
ledger store.

- One engine per process, owned by the reconciliation worker
- Explicit transaction boundaries in the repository
- Lazy reconnect: ping at cycle start, dispose pool on failure
- Hard failures surface as StoreError

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from core.exceptions import StoreError
from .config import DatabaseConfig


logger = logging.getLogger(__name__)


# =============================================================
# DECLARATIVE BASE
# =============================================================

class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


# =============================================================
# DATABASE
# =============================================================

class Database:
    """
    Engine and session factory for the ledger store.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        engine: Optional[AsyncEngine] = None,
    ):
        """
        Initialize database handle.

        Args:
            config: Database configuration
            engine: Pre-built engine (tests use an in-memory SQLite engine)
        """
        self._config = config
        self._engine = engine
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        logger.info(f"Creating database engine for: {self._config.safe_url}")

        kwargs = {
            "echo": self._config.echo,
            "pool_pre_ping": True,
        }
        if not self._config.url.startswith("sqlite"):
            kwargs.update(
                pool_size=self._config.pool_size,
                max_overflow=self._config.max_overflow,
                pool_recycle=self._config.pool_recycle_seconds,
            )

        return create_async_engine(self._config.url, **kwargs)

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    # --------------------------------------------------------
    # SESSION MANAGEMENT
    # --------------------------------------------------------

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session for one reconciliation cycle.

        Rolls back anything uncommitted on exit or error.
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # --------------------------------------------------------
    # CONNECTIVITY
    # --------------------------------------------------------

    async def ensure_connected(self) -> None:
        """
        Verify the store is reachable, rebuilding the pool once if not.

        Raises:
            StoreError: If the store stays unreachable
        """
        try:
            await self._ping()
            return
        except SQLAlchemyError as e:
            logger.warning(f"Database connection unusable, reconnecting: {e}")

        await self.engine.dispose()
        try:
            await self._ping()
        except SQLAlchemyError as e:
            raise StoreError("Cannot connect to database", operation="ping", cause=e)
        logger.info("Database connection re-established")

    async def _ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create bridge tables if they do not exist."""
        from . import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StoreError("Table creation failed", operation="create_all", cause=e)
        logger.info("Database tables created")

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
