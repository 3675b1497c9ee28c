"""
SQLModel-based AuthSession model for refresh-token sessions.

One row per logged-in device. The row backs the validity of exactly one
refresh token, which is stored only as a SHA-256 digest.

Lifecycle:
- Created on login and on every successful refresh
- Revoked on logout, on rotation, or in bulk (password change/reset, replay detection)
- Expires passively at expires_at
- Physically deleted only by the periodic sweep (app.tasks.session_jobs)
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from app.models.base import utc_now


class AuthSessions(SQLModel, table=True):
    """
    Database table for refresh sessions.

    A session can authenticate a refresh request iff
    ``revoked is False and expires_at > now``.

    Internal/sensitive fields (should NOT be exposed via public API):
    - token_hash: lookup key for the refresh token
    - ip_address, user_agent: privacy-sensitive security auditing
    """

    __tablename__ = "auth_sessions"

    __table_args__ = (
        ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_auth_sessions_account_id",
        ),
        Index("idx_auth_sessions_account_id", "account_id"),
        Index("idx_auth_sessions_token_hash", "token_hash", unique=True),
        Index("idx_auth_sessions_expires_at", "expires_at"),
    )

    # Primary key (UUIDv7)
    id: str = Field(primary_key=True, max_length=36)

    # Account reference
    account_id: str = Field(max_length=36)

    # Token (hashed for security - never store plaintext!)
    token_hash: str = Field(max_length=64)

    # Security tracking
    user_agent: str | None = Field(default=None, max_length=255)
    ip_address: str | None = Field(default=None, max_length=45)  # Supports IPv6

    # Expiration
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    # Revocation
    revoked: bool = Field(default=False)
    revoked_at: datetime | None = Field(default=None)

    def is_usable(self, now: datetime) -> bool:
        """Whether this session may still authenticate a refresh."""
        return not self.revoked and self.expires_at > now
