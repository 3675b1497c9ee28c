"""
Account persistence.

Every lookup ignores soft-deleted rows. Every mutation is a single guarded
UPDATE committed on its own, so concurrent requests never interleave a
read-modify-write on the same account.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Accounts
from app.models.base import utc_now


def normalize_email(email: str) -> str:
    """Emails are stored and compared lower-cased without surrounding whitespace."""
    return email.strip().lower()


class AccountStore:
    """Data access for the accounts table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_id(self, account_id: str) -> Accounts | None:
        result = await self.db.execute(
            select(Accounts).where(
                Accounts.id == account_id,  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
            )
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Accounts | None:
        result = await self.db.execute(
            select(Accounts).where(
                Accounts.email == normalize_email(email),  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
            )
        )
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Accounts | None:
        result = await self.db.execute(
            select(Accounts).where(
                Accounts.username == username,  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
            )
        )
        return result.scalar_one_or_none()

    async def create(self, account: Accounts) -> Accounts:
        """
        Insert a new account.

        Raises:
            sqlalchemy.exc.IntegrityError: If the username or email is already
                held by a live account (partial unique index)
        """
        self.db.add(account)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return account

    async def update_password(self, account_id: str, password_hash: str) -> bool:
        """
        Replace the password hash of a live account.

        Returns:
            True if a row was updated, False if the account is missing or deleted
        """
        now = utc_now()
        result = await self.db.execute(
            update(Accounts)
            .where(
                Accounts.id == account_id,  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
            )
            .values(password_hash=password_hash, updated_at=now)
        )
        await self.db.commit()
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def mark_verified(self, account_id: str) -> bool:
        """
        Flip is_verified from False to True.

        Returns:
            True if this call flipped the flag, False if it was already set
            (or the account is gone)
        """
        now = utc_now()
        result = await self.db.execute(
            update(Accounts)
            .where(
                Accounts.id == account_id,  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
                Accounts.is_verified == False,  # type: ignore[arg-type]  # noqa: E712
            )
            .values(is_verified=True, updated_at=now)
        )
        await self.db.commit()
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def soft_delete(self, account_id: str) -> bool:
        """
        Mark an account as deleted without removing the row.

        Returns:
            True if the account was live and is now deleted
        """
        now = utc_now()
        result = await self.db.execute(
            update(Accounts)
            .where(
                Accounts.id == account_id,  # type: ignore[arg-type]
                Accounts.deleted_at.is_(None),  # type: ignore[union-attr]
            )
            .values(deleted_at=now, updated_at=now)
        )
        await self.db.commit()
        return result.rowcount == 1  # type: ignore[attr-defined]
