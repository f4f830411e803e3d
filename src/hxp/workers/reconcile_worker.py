"""Ledger reconciliation arq worker: hourly rebuild of cached XP totals.

Each wallet is reconciled in its own transaction, so the sweep never holds
more than one user row lock at a time.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron

from hxp.config import get_settings
from hxp.database import close_db, init_db, run_transaction
from hxp.gamification import xp_service

logger = logging.getLogger(__name__)


async def reconcile_ledger(ctx: dict) -> int:
    """Reconcile every wallet against the ledger. Returns the number corrected."""
    batch_size = get_settings().reconcile_batch_size
    redis_client = ctx.get("redis")
    checked = 0
    corrected = 0
    after = ""

    while True:
        wallets = await run_transaction(
            lambda db: xp_service.list_wallets(db, after, batch_size),
            redis=redis_client,
        )
        if not wallets:
            break
        for wallet in wallets:
            report = await run_transaction(
                lambda db, w=wallet: xp_service.reconcile_wallet(db, w),
                redis=redis_client,
            )
            checked += 1
            corrected += report["corrected"]
        after = wallets[-1]

    logger.info("Ledger reconciliation: %d checked, %d corrected", checked, corrected)
    return corrected


async def reconcile_one(ctx: dict, wallet: str) -> dict:
    """Reconcile a single wallet on demand."""
    return await run_transaction(
        lambda db: xp_service.reconcile_wallet(db, wallet),
        redis=ctx.get("redis"),
    )


async def reconcile_startup(ctx: dict) -> None:
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=5,
    )
    logger.info("Reconcile worker started")


async def reconcile_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    redis_client = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Reconcile worker shut down")


class ReconcileWorkerSettings:
    """arq worker settings for ledger reconciliation."""

    functions = [reconcile_ledger, reconcile_one]
    cron_jobs = [
        cron(reconcile_ledger, minute=7, run_at_startup=False),
    ]
    on_startup = reconcile_startup
    on_shutdown = reconcile_shutdown
    max_jobs = 2
    job_timeout = 1800
