"""Database configuration, async session management and the transaction runner."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import TransactionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    pool_pre_ping=True,
    # Use StaticPool for SQLite in-memory databases (if needed for testing)
    poolclass=StaticPool if "sqlite" in settings.database_url else None,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


class TransactionRunner:
    """
    Runs units of work inside one store transaction each.

    Every unit gets a fresh session. A stale versioned write or a
    duplicate deterministic key aborts the whole unit, which is then
    retried from scratch up to ``max_attempts`` times.

    On PostgreSQL the unit also takes a transaction-scoped advisory lock
    on ``lock_key`` (the route+date key). SQLite has a single writer, so
    all units of one runner are serialized in-process instead.
    """

    SQLITE_LOCK_KEY = "__sqlite__"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_attempts: int | None = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        lock_key: str | None = None,
        description: str = "transaction",
    ) -> T:
        """
        Execute ``work`` atomically and return its result.

        Args:
            work: Coroutine function receiving the transaction's session
            lock_key: Serialization key for writers of the same documents
            description: Operation name used in logs

        Returns:
            Whatever ``work`` returned

        Raises:
            TransactionConflictError: If every attempt hit a write conflict
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            async with self.session_factory() as session:
                dialect = session.bind.dialect.name if session.bind else ""
                local_key = self.SQLITE_LOCK_KEY if dialect == "sqlite" else lock_key

                try:
                    if local_key is None:
                        return await self._attempt(session, work, dialect, lock_key)
                    async with self._lock_for(local_key):
                        return await self._attempt(session, work, dialect, lock_key)
                except (StaleDataError, IntegrityError) as e:
                    last_error = e
                    logger.info(
                        "Transaction conflict - retrying",
                        extra={
                            "operation": description,
                            "lock_key": lock_key,
                            "attempt": attempt,
                            "max_attempts": self.max_attempts,
                            "error": str(e),
                        }
                    )

        logger.warning(
            "Transaction abandoned after repeated conflicts",
            extra={"operation": description, "lock_key": lock_key, "attempts": self.max_attempts}
        )
        raise TransactionConflictError(description, self.max_attempts) from last_error

    async def _attempt(
        self,
        session: AsyncSession,
        work: Callable[[AsyncSession], Awaitable[T]],
        dialect: str,
        lock_key: str | None,
    ) -> T:
        async with session.begin():
            if lock_key and dialect == "postgresql":
                # Released automatically at transaction end
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
                    {"lock_key": lock_key}
                )
            return await work(session)


# Default runner bound to the application engine
transaction_runner = TransactionRunner()


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    from .. import models  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
