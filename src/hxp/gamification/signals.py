"""Post-commit XP signals over Redis pub/sub.

Services queue signals on the session while they work; ``run_transaction``
publishes them once the transaction has committed. A rolled-back
transaction publishes nothing. Delivery is best-effort: a failed publish is
logged and never affects the ledger.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

CHANNEL_XP_AWARDED = "pubsub:xp_awarded"
CHANNEL_LEVEL_UP = "pubsub:level_up"

_PENDING_KEY = "pending_signals"


def queue_signal(db: AsyncSession, channel: str, payload: dict) -> None:
    """Queue a signal for publication after the session's transaction commits."""
    db.info.setdefault(_PENDING_KEY, []).append((channel, payload))


def pending_signals(db: AsyncSession) -> list[tuple[str, dict]]:
    """Signals queued on ``db`` and not yet published."""
    return list(db.info.get(_PENDING_KEY, []))


async def publish_pending_signals(db: AsyncSession, redis: object | None) -> int:
    """Publish and clear the queued signals. Returns the number delivered."""
    queued = db.info.pop(_PENDING_KEY, [])
    if redis is None or not queued:
        return 0

    delivered = 0
    for channel, payload in queued:
        try:
            await redis.publish(channel, json.dumps(payload))  # type: ignore[union-attr]
            delivered += 1
        except Exception:
            logger.warning("Failed to publish %s signal", channel, exc_info=True)
    return delivered
