"""
SQLModel-based Account models with inheritance for security

This module defines the Accounts database model using SQLModel, which combines
SQLAlchemy and Pydantic functionality. The inheritance structure is:

AccountBase (shared public fields)
    ├─> Accounts (database table, adds internal/sensitive fields)
    └─> AccountResponse (API schema, defined in app/schemas)

This approach eliminates field duplication while maintaining security boundaries.
"""

from datetime import datetime
from enum import StrEnum

import sqlalchemy as sa
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from app.models.base import utc_now


class AccountRole(StrEnum):
    """
    Privilege level of an account.

    Roles are totally ordered by rank (see _ROLE_RANK below), so privilege
    checks are plain comparisons: ``role.at_least(AccountRole.MODERATOR)``.
    """

    ADMIN = "admin"
    MODERATOR = "moderator"
    AUTHOR = "author"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, required: "AccountRole") -> bool:
        """Check whether this role meets or exceeds the required role."""
        return self.rank >= required.rank


# Gaps of 10 leave room for intermediate roles
_ROLE_RANK: dict[AccountRole, int] = {
    AccountRole.ADMIN: 40,
    AccountRole.MODERATOR: 30,
    AccountRole.AUTHOR: 20,
    AccountRole.MEMBER: 10,
}

DEFAULT_ROLE = AccountRole.MEMBER

_role_column_type = sa.Enum(
    AccountRole,
    name="account_role",
    native_enum=False,
    length=20,
    values_callable=lambda roles: [role.value for role in roles],
)


class AccountBase(SQLModel):
    """
    Base model with shared public fields for Accounts.

    These fields are safe to expose via the API and are shared between:
    - The database table (Accounts)
    - API response schemas (AccountResponse)
    """

    username: str = Field(max_length=64)
    email: str = Field(max_length=254)
    display_name: str | None = Field(default=None, max_length=100)
    role: AccountRole = Field(default=DEFAULT_ROLE, sa_type=_role_column_type)
    is_verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)


class Accounts(AccountBase, table=True):
    """
    Database table for registered principals.

    Extends AccountBase with:
    - Primary key (UUIDv7, time-ordered)
    - Password hash (highly sensitive - never expose)
    - Update and soft-delete timestamps

    Username and email are unique among non-deleted rows only. The partial
    unique indexes below are the source of truth for that rule; application
    pre-checks exist just to produce friendly messages.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index(
            "uq_accounts_username_live",
            "username",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_accounts_email_live",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_accounts_role", "role"),
    )

    # Primary key
    id: str = Field(primary_key=True, max_length=36)

    # Authentication (highly sensitive - never expose)
    password_hash: str = Field(max_length=255)

    # Timestamps
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = Field(default=None)
