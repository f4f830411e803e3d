"""Shared test fixtures.

Every test gets its own SQLite database file (via aiosqlite) with the schema
created from the ORM metadata. Redis is left uninitialized, so signals are
queued and dropped unless a test supplies its own publisher.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

import hxp.db.models  # noqa: F401
from hxp.config import get_settings
from hxp.database import close_db, get_engine, get_session, init_db
from hxp.db.base import Base
from hxp.main import create_app

ADMIN_WALLET = "AdminWa11et1111111111111111111111111111111"
WALLET = "HoodieWa11et111111111111111111111111111111"
OTHER_WALLET = "HoodieWa11et222222222222222222222222222222"


class FakeRedis:
    """Records pub/sub publishes in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(message)))
        return 1

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.published]


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """Point settings at a throwaway SQLite file and make retries fast."""
    monkeypatch.setenv("HXP_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'xp.db'}")
    monkeypatch.setenv("HXP_ADMIN_WALLETS", json.dumps([ADMIN_WALLET]))
    monkeypatch.setenv("HXP_STORE_RETRY_ATTEMPTS", "8")
    monkeypatch.setenv("HXP_STORE_RETRY_BASE_DELAY_SECONDS", "0.001")
    monkeypatch.setenv("HXP_STORE_RETRY_MAX_DELAY_SECONDS", "0.05")
    monkeypatch.setenv("HXP_STREAK_TIMEZONE", "UTC")
    monkeypatch.setenv("HXP_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(test_settings) -> AsyncGenerator[None, None]:
    """Initialize the engine and create the schema."""
    await init_db(test_settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the app over ASGI."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


def wallet_headers(wallet: str = WALLET) -> dict[str, str]:
    return {"X-Wallet-Address": wallet}
