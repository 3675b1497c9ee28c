"""
Queue client for enqueuing arq jobs from request handlers.
"""

from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from app.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Created on first use
_pool: ArqRedis | None = None


async def get_queue() -> ArqRedis:
    """Get or create the arq Redis pool."""
    global _pool
    if _pool is None:
        _pool = await create_pool(RedisSettings.from_dsn(settings.ARQ_REDIS_URL))
        logger.info("arq_pool_created")
    return _pool


async def enqueue_job(
    function_name: str,
    *args: Any,
    _job_id: str | None = None,
    _defer_by: float | None = None,
    **kwargs: Any,
) -> str | None:
    """
    Enqueue a job for the arq worker.

    Job kwargs are not logged: identity jobs carry raw tokens.

    Returns:
        Job ID if enqueued, None if the job was a duplicate or Redis failed
    """
    try:
        pool = await get_queue()
        job = await pool.enqueue_job(
            function_name,
            *args,
            _job_id=_job_id,
            _defer_by=_defer_by,
            **kwargs,
        )
    except Exception as e:
        logger.error(
            "job_enqueue_error",
            function=function_name,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if job is None:
        logger.warning("job_enqueue_skipped", function=function_name)
        return None
    logger.debug("job_enqueued", function=function_name, job_id=job.job_id)
    return job.job_id


async def close_queue() -> None:
    """Close the arq Redis pool (call on shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("arq_pool_closed")
