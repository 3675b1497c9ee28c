"""Single-use, time-limited tokens for password reset and email verification."""

from datetime import timedelta
from enum import StrEnum

import redis.asyncio as redis

from app.core.security import hash_token

KEY_PREFIX = "identity"


class TokenPurpose(StrEnum):
    """Flows that hand out ephemeral tokens."""

    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class EphemeralTokenStore:
    """
    Redis-backed store mapping a token to the account it was issued for.

    Keys are derived from the token digest, never from the account, so the
    store cannot be probed per account and a dump of Redis reveals no usable
    tokens. Expiry is delegated to the key TTL.
    """

    def __init__(self, client: redis.Redis) -> None:  # type: ignore[type-arg]
        self.client = client

    @staticmethod
    def key_for(purpose: TokenPurpose, raw_token: str) -> str:
        return f"{KEY_PREFIX}:{purpose.value}:{hash_token(raw_token)}"

    async def put(
        self, purpose: TokenPurpose, raw_token: str, account_id: str, ttl: timedelta
    ) -> None:
        """Store a token bound to an account for ttl."""
        await self.client.set(self.key_for(purpose, raw_token), account_id, ex=ttl)

    async def consume(self, purpose: TokenPurpose, raw_token: str) -> str | None:
        """
        Redeem a token.

        Read and delete happen in one GETDEL, so concurrent redemptions of the
        same token cannot both succeed.

        Returns:
            The bound account id, or None if the token is unknown, expired,
            or already used
        """
        value = await self.client.getdel(self.key_for(purpose, raw_token))
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)
