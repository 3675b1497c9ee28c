"""Periodic cleanup of refresh sessions."""

from datetime import timedelta
from typing import Any

from app.config import settings
from app.core.database import get_async_session
from app.core.logging import bind_context, get_logger
from app.models.base import utc_now
from app.services.session_store import SessionStore

logger = get_logger(__name__)


async def purge_stale_sessions_job(ctx: dict[str, Any]) -> int:
    """
    Delete expired sessions and sessions revoked longer ago than the retention window.

    Revoked rows are kept for a while so that replay of a rotated refresh
    token is still recognised as replay rather than as an unknown token.

    Returns:
        Number of deleted sessions
    """
    bind_context(task="purge_stale_sessions")

    now = utc_now()
    revoked_before = now - timedelta(days=settings.SESSION_REVOKED_RETENTION_DAYS)
    async with get_async_session() as db:
        deleted = await SessionStore(db).delete_stale(now=now, revoked_before=revoked_before)

    logger.info("stale_sessions_purged", deleted=deleted)
    return deleted
