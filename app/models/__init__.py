"""
SQLModel table models.

Importing this package registers every table with SQLModel.metadata, which is
the schema source of truth (``SQLModel.metadata.create_all``).
"""

from app.models.account import DEFAULT_ROLE, AccountBase, AccountRole, Accounts
from app.models.auth_session import AuthSessions

__all__ = [
    "DEFAULT_ROLE",
    "AccountBase",
    "AccountRole",
    "Accounts",
    "AuthSessions",
]
