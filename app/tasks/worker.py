"""
ARQ worker configuration and job definitions.

Run worker with: arq app.tasks.worker.WorkerSettings
"""

from typing import Any

from arq.connections import RedisSettings
from arq.cron import cron
from arq.worker import func

from app.config import settings
from app.core.logging import configure_logging, get_logger
from app.tasks.email_jobs import send_identity_email_job
from app.tasks.session_jobs import purge_stale_sessions_job

logger = get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup."""
    configure_logging()
    logger.info("arq_worker_starting")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown."""
    logger.info("arq_worker_shutdown")


class WorkerSettings:
    """ARQ worker configuration."""

    redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)

    max_jobs = 10
    job_timeout = 120
    keep_result = settings.ARQ_KEEP_RESULT

    on_startup = startup
    on_shutdown = shutdown

    functions = [
        func(send_identity_email_job, max_tries=settings.ARQ_MAX_TRIES),
    ]

    cron_jobs = [
        # Hourly, on the 17th minute
        cron(purge_stale_sessions_job, minute={17}, run_at_startup=False),
    ]
