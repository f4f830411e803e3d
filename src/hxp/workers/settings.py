"""arq worker settings module.

Import path for arq CLI: arq hxp.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq.connections import RedisSettings

from hxp.config import get_settings
from hxp.workers.reconcile_worker import ReconcileWorkerSettings


class WorkerSettings(ReconcileWorkerSettings):
    """Reconcile worker bound to the configured Redis."""

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)


__all__ = ["WorkerSettings"]
