"""Async SQLAlchemy engine, session management and the retrying transaction runner."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hxp.config import get_settings
from hxp.errors import StoreUnavailable, TransientStoreError
from hxp.gamification.signals import publish_pending_signals

logger = logging.getLogger(__name__)

T = TypeVar("T")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    if url.startswith("sqlite"):
        _engine = create_async_engine(url, echo=False)
    else:
        _engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
            connect_args={"statement_cache_size": 0},
        )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def _get_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with _get_factory()() as session:
        yield session


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """One session, one transaction: commit on success, roll back on any error."""
    async with _get_factory()() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


def is_transient(exc: BaseException) -> bool:
    """True for failures a fresh transaction may get past."""
    if isinstance(exc, TransientStoreError) and not isinstance(exc, StoreUnavailable):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential backoff with +/-10% jitter, capped."""
    delay = min(cap, base * (2 ** attempt))
    return delay * random.uniform(0.9, 1.1)  # noqa: S311


async def run_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    redis: object | None = None,
    attempts: int | None = None,
) -> T:
    """Run ``operation`` in its own transaction, retrying transient store failures.

    Each attempt gets a fresh session, so a retry replays the whole unit of
    work against committed state. Signals queued by the operation are published
    only after the commit succeeds. When retries are exhausted the last
    failure surfaces as ``StoreUnavailable``; an award that cannot be recorded
    is never reported as applied.
    """
    settings = get_settings()
    max_attempts = attempts or settings.store_retry_attempts
    last_exc: BaseException | None = None

    for attempt in range(max_attempts):
        try:
            async with session_scope() as db:
                result = await operation(db)
            await publish_pending_signals(db, redis)
            return result
        except Exception as exc:
            if not is_transient(exc):
                raise
            last_exc = exc
            if attempt + 1 < max_attempts:
                delay = backoff_delay(
                    attempt,
                    settings.store_retry_base_delay_seconds,
                    settings.store_retry_max_delay_seconds,
                )
                logger.warning(
                    "Transient store failure (attempt %d/%d), retrying in %.3fs: %s",
                    attempt + 1, max_attempts, delay, exc,
                )
                await asyncio.sleep(delay)

    logger.error("Store unavailable after %d attempts: %s", max_attempts, last_exc)
    raise StoreUnavailable(f"store unavailable after {max_attempts} attempts") from last_exc
