"""
Async engine and session handling for the legisync store.

The ``Database`` handle is built once per run and passed explicitly to the
synchronizers, the watermark store and the analytics service; nothing in
the package reaches for a global connection.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker
)
from sqlalchemy.pool import NullPool, StaticPool

from ..config import DatabaseConfig

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the async engine for either SQLite (local runs, tests) or PostgreSQL.

    Each ``async with db.session()`` block is one transaction. SQLite has a
    single writer, so on SQLite those blocks are serialized by a lock and
    must never be nested.

    Example:
        db = Database(DatabaseConfig(database_url="sqlite+aiosqlite:///:memory:"))
        await db.initialize()
        await db.create_tables()

        async with db.session() as session:
            await MemberRepository(session).list_all()

        await db.close()
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None
        self._sqlite_lock: Optional[asyncio.Lock] = None

    def _engine_options(self, url: str) -> Dict[str, Any]:
        if not self.config.is_sqlite:
            logger.info(
                f"PostgreSQL pool size={self.config.pool_size} "
                f"max_overflow={self.config.max_overflow}"
            )
            return {
                "pool_size": self.config.pool_size,
                "max_overflow": self.config.max_overflow,
                "pool_timeout": self.config.pool_timeout,
                "pool_recycle": self.config.pool_recycle,
                "pool_pre_ping": True,
            }

        in_memory = ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")
        if in_memory:
            # A fresh connection would open a fresh, empty in-memory database
            return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        return {"poolclass": NullPool}

    async def initialize(self) -> None:
        """Create the engine and session factory (no-op when already done)."""
        if self.engine is not None:
            logger.warning("Database.initialize called twice; keeping existing engine")
            return

        url = self.config.connection_string
        backend = url.split("://")[0]
        self.engine = create_async_engine(url, echo=self.config.echo, **self._engine_options(url))
        self._sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if self.config.is_sqlite:
            self._sqlite_lock = asyncio.Lock()

        logger.info(f"Store ready ({backend})")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; commit when the block exits cleanly, roll back otherwise."""
        if self._sessionmaker is None:
            raise RuntimeError("Database.initialize() must run before opening sessions")

        if self._sqlite_lock is None:
            async with self._transaction() as session:
                yield session
            return

        async with self._sqlite_lock:
            async with self._transaction() as session:
                yield session

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._sessionmaker()
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception as e:
            logger.error(f"Rolling back store transaction: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self) -> None:
        """Create any missing tables from the ORM metadata."""
        if self.engine is None:
            raise RuntimeError("Database.initialize() must run before create_tables()")

        from .models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Ensured {len(Base.metadata.tables)} tables")

    async def drop_tables(self) -> None:
        """Drop every legisync table. Development and test use only."""
        if self.engine is None:
            raise RuntimeError("Database.initialize() must run before drop_tables()")

        from .models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        logger.warning("Dropped all legisync tables")

    async def close(self) -> None:
        """Dispose of the engine; safe to call more than once."""
        if self.engine is None:
            return

        await self.engine.dispose()
        self.engine = None
        self._sessionmaker = None
        self._sqlite_lock = None
        logger.info("Store connections closed")
