"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Verifying bearer access tokens (stateless, no database lookup)
- Requiring a minimum account role
- Reading the refresh token cookie and client metadata
- Building the IdentityService for a request
"""

from collections.abc import Callable, Coroutine
from typing import Annotated, Any

import redis.asyncio as redis
from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.core.logging import account_id_ctx
from app.core.redis import get_redis
from app.core.tokens import AccessTokenClaims, AccessTokenIssuer
from app.models.account import AccountRole
from app.services.account_store import AccountStore
from app.services.email_dispatch import EmailDispatcher, QueuedEmailDispatcher
from app.services.ephemeral_tokens import EphemeralTokenStore
from app.services.identity import IdentityService
from app.services.session_store import SessionStore

# Security scheme for OpenAPI documentation
bearer_scheme = HTTPBearer(auto_error=False)


def get_token_issuer(request: Request) -> AccessTokenIssuer:
    """Token issuer created once in the application lifespan."""
    issuer: AccessTokenIssuer | None = getattr(request.app.state, "token_issuer", None)
    if issuer is None:
        raise RuntimeError("Access token keys are not loaded")
    return issuer


def get_email_dispatcher() -> EmailDispatcher:
    return QueuedEmailDispatcher()


async def get_identity_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    redis_client: Annotated[redis.Redis, Depends(get_redis)],  # type: ignore[type-arg]
    issuer: Annotated[AccessTokenIssuer, Depends(get_token_issuer)],
    mailer: Annotated[EmailDispatcher, Depends(get_email_dispatcher)],
) -> IdentityService:
    """Assemble an IdentityService bound to this request's database session."""
    return IdentityService(
        accounts=AccountStore(db),
        sessions=SessionStore(db),
        ephemeral=EphemeralTokenStore(redis_client),
        token_issuer=issuer,
        mailer=mailer,
    )


async def get_current_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    issuer: Annotated[AccessTokenIssuer, Depends(get_token_issuer)],
) -> AccessTokenClaims:
    """
    Verify the access token from the Authorization header.

    Returns:
        Verified token claims

    Raises:
        HTTPException: 401 if the header is missing
        UnauthorizedError: If the token is invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = issuer.verify(credentials.credentials)
    account_id_ctx.set(claims.account_id)
    return claims


def require_role(
    role: AccountRole,
) -> Callable[[AccessTokenClaims], Coroutine[Any, Any, AccessTokenClaims]]:
    """
    Create a FastAPI dependency that requires at least the given role.

    The role is read from the verified access token.

    Example:
        @router.post("/accounts/{account_id}/revoke-sessions")
        async def revoke(admin: Annotated[AccessTokenClaims, Depends(require_role(AccountRole.ADMIN))]):
            ...

    Raises:
        HTTPException: 403 Forbidden if the role is insufficient
    """

    async def role_checker(
        claims: Annotated[AccessTokenClaims, Depends(get_current_claims)],
    ) -> AccessTokenClaims:
        if not claims.role.at_least(role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Requires role: {role.value}",
            )
        return claims

    return role_checker


def get_client_ip(request: Request) -> str | None:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get("User-Agent")


async def get_refresh_token_from_cookie(
    refresh_token: Annotated[str | None, Cookie(alias=settings.REFRESH_COOKIE_NAME)] = None,
) -> str | None:
    """Refresh token from the HTTPOnly cookie, if present."""
    return refresh_token or None


# Type aliases for dependency injection
CurrentClaims = Annotated[AccessTokenClaims, Depends(get_current_claims)]
AdminClaims = Annotated[AccessTokenClaims, Depends(require_role(AccountRole.ADMIN))]
Identity = Annotated[IdentityService, Depends(get_identity_service)]
RefreshCookie = Annotated[str | None, Depends(get_refresh_token_from_cookie)]
ClientIP = Annotated[str | None, Depends(get_client_ip)]
UserAgent = Annotated[str | None, Depends(get_user_agent)]
