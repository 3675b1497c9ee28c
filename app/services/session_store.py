"""
Refresh session persistence.

State transitions are expressed as conditional UPDATEs (``WHERE revoked = false``)
and the unique index on token_hash. The affected row count, not an earlier
read, decides whether a transition happened: when two requests race to rotate
the same refresh token only one UPDATE matches.
"""

from datetime import datetime, timedelta

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import new_id
from app.models.auth_session import AuthSessions

USER_AGENT_MAX_LENGTH = 255
IP_ADDRESS_MAX_LENGTH = 45


class SessionStore:
    """Data access for the auth_sessions table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        account_id: str,
        token_hash: str,
        now: datetime,
        ttl: timedelta,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> AuthSessions:
        """
        Persist a new usable session.

        created_at and expires_at derive from the same instant, so the session
        lifetime is exactly ttl.
        """
        session = AuthSessions(
            id=new_id(),
            account_id=account_id,
            token_hash=token_hash,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
            ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH] if ip_address else None,
            created_at=now,
            expires_at=now + ttl,
            revoked=False,
        )
        self.db.add(session)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return session

    async def get_by_token_hash(self, token_hash: str) -> AuthSessions | None:
        """Find a session by token digest regardless of its state."""
        result = await self.db.execute(
            select(AuthSessions).where(AuthSessions.token_hash == token_hash)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list_usable(self, account_id: str, now: datetime) -> list[AuthSessions]:
        """Sessions of an account that can still authenticate a refresh."""
        result = await self.db.execute(
            select(AuthSessions)
            .where(
                AuthSessions.account_id == account_id,  # type: ignore[arg-type]
                AuthSessions.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                AuthSessions.expires_at > now,  # type: ignore[arg-type]
            )
            .order_by(AuthSessions.created_at)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def revoke(self, session_id: str, now: datetime) -> bool:
        """
        Revoke one session if it is still usable at now.

        Returns:
            True if this call performed the revocation. False means the session
            was already revoked (possibly by a concurrent request), has
            expired, or is gone.
        """
        result = await self.db.execute(
            update(AuthSessions)
            .where(
                AuthSessions.id == session_id,  # type: ignore[arg-type]
                AuthSessions.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                AuthSessions.expires_at > now,  # type: ignore[arg-type]
            )
            .values(revoked=True, revoked_at=now)
        )
        await self.db.commit()
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def revoke_all(self, account_id: str, now: datetime) -> int:
        """Revoke every non-revoked session of an account. Returns the count."""
        result = await self.db.execute(
            update(AuthSessions)
            .where(
                AuthSessions.account_id == account_id,  # type: ignore[arg-type]
                AuthSessions.revoked == False,  # type: ignore[arg-type]  # noqa: E712
            )
            .values(revoked=True, revoked_at=now)
        )
        await self.db.commit()
        return int(result.rowcount)  # type: ignore[attr-defined]

    async def revoke_others(self, account_id: str, keep_session_id: str, now: datetime) -> int:
        """Revoke every non-revoked session of an account except one. Returns the count."""
        result = await self.db.execute(
            update(AuthSessions)
            .where(
                AuthSessions.account_id == account_id,  # type: ignore[arg-type]
                AuthSessions.id != keep_session_id,  # type: ignore[arg-type]
                AuthSessions.revoked == False,  # type: ignore[arg-type]  # noqa: E712
            )
            .values(revoked=True, revoked_at=now)
        )
        await self.db.commit()
        return int(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    def _stale_condition(now: datetime, revoked_before: datetime) -> ColumnElement[bool]:
        return or_(
            AuthSessions.expires_at <= now,  # type: ignore[arg-type]
            and_(
                AuthSessions.revoked == True,  # type: ignore[arg-type]  # noqa: E712
                AuthSessions.revoked_at <= revoked_before,  # type: ignore[arg-type, operator]
            ),
        )

    async def count_stale(self, now: datetime, revoked_before: datetime) -> int:
        """Number of rows delete_stale would remove."""
        result = await self.db.execute(
            select(func.count())
            .select_from(AuthSessions)
            .where(self._stale_condition(now, revoked_before))
        )
        return int(result.scalar_one())

    async def delete_stale(self, now: datetime, revoked_before: datetime) -> int:
        """
        Physically remove expired sessions and sessions revoked before a cutoff.

        Only the periodic sweep calls this; request handlers never delete rows.

        Args:
            now: Sessions with expires_at <= now are removed
            revoked_before: Revoked sessions with revoked_at <= this are removed

        Returns:
            Number of deleted rows
        """
        result = await self.db.execute(
            delete(AuthSessions).where(self._stale_condition(now, revoked_before))
        )
        await self.db.commit()
        return int(result.rowcount)  # type: ignore[attr-defined]
