"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hxp.config import get_settings
from hxp.database import close_db, init_db
from hxp.gamification.router import admin_router
from hxp.gamification.router import router as xp_router
from hxp.health.router import router as health_router
from hxp.middleware import setup_middleware
from hxp.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("Hoodie XP API started (%s)", settings.environment)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Hoodie XP API",
        description="XP ledger, levels, daily streaks and bounty rewards for the Hoodie Academy",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(xp_router)
    app.include_router(admin_router)

    return app


app = create_app()
