"""
Authentication API endpoints.

Every handler delegates to IdentityService and bounds the call with
IDENTITY_OPERATION_TIMEOUT_SECONDS. IdentityError and TimeoutError are
rendered by the exception handlers registered in app.main.
"""

import asyncio

from fastapi import APIRouter, Response, status

from app.config import settings
from app.core.auth import ClientIP, CurrentClaims, Identity, RefreshCookie, UserAgent
from app.core.errors import INVALID_REFRESH_TOKEN, UnauthorizedError
from app.schemas.account import AccountResponse
from app.schemas.auth import (
    CloseAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RevokedSessionsResponse,
    SessionResponse,
    TokenResponse,
    VerifyEmailRequest,
)
from app.services.identity import IssuedTokens

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"


def deadline() -> asyncio.Timeout:
    """Upper bound for a single identity operation."""
    return asyncio.timeout(settings.IDENTITY_OPERATION_TIMEOUT_SECONDS)


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    """
    Set the refresh token as an HTTPOnly cookie scoped to the auth routes.

    Args:
        response: FastAPI response object
        refresh_token: Raw refresh token
    """
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,  # seconds
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,  # Prevent JavaScript access (XSS protection)
        secure=settings.refresh_cookie_secure,
        samesite="strict",  # CSRF protection
    )


def _clear_refresh_cookie(response: Response) -> None:
    # Must match set_cookie attributes or browsers keep the old cookie
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
    )


def _token_response(response: Response, issued: IssuedTokens) -> TokenResponse:
    _set_refresh_cookie(response, issued.refresh_token)
    return TokenResponse(
        access_token=issued.access_token,
        expires_in=issued.access_expires_in,
        refresh_expires_at=issued.refresh_expires_at,
        account=AccountResponse.model_validate(issued.account),
    )


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, identity: Identity) -> AccountResponse:
    """
    Register a new account.

    The account starts unverified with the member role. A verification email
    is queued; registration succeeds even if queuing fails.
    """
    async with deadline():
        account = await identity.register(
            username=body.username,
            email=body.email,
            password=body.password,
            display_name=body.display_name,
        )
    return AccountResponse.model_validate(account)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    identity: Identity,
    ip_address: ClientIP,
    user_agent: UserAgent,
) -> TokenResponse:
    """
    Authenticate with username or email and password.

    The access token is returned in the body; the refresh token is set as an
    HTTPOnly cookie.
    """
    async with deadline():
        issued = await identity.login(
            identifier=credentials.login,
            password=credentials.password,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    return _token_response(response, issued)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    identity: Identity,
    refresh_token: RefreshCookie,
    ip_address: ClientIP,
    user_agent: UserAgent,
) -> TokenResponse:
    """
    Exchange the refresh cookie for a new access token and a new refresh cookie.

    The presented refresh token is invalidated. Reusing it later revokes all
    sessions of the account.
    """
    if refresh_token is None:
        raise UnauthorizedError(INVALID_REFRESH_TOKEN)

    async with deadline():
        issued = await identity.refresh(
            refresh_token, user_agent=user_agent, ip_address=ip_address
        )
    return _token_response(response, issued)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    identity: Identity,
    refresh_token: RefreshCookie,
) -> MessageResponse:
    """
    Revoke the session behind the refresh cookie.

    The access token is not affected and expires on its own.
    """
    if refresh_token is not None:
        async with deadline():
            await identity.logout(refresh_token)
    _clear_refresh_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=RevokedSessionsResponse)
async def logout_all(
    claims: CurrentClaims,
    response: Response,
    identity: Identity,
) -> RevokedSessionsResponse:
    """Revoke every session of the current account, on all devices."""
    async with deadline():
        revoked = await identity.revoke_all(claims.account_id)
    _clear_refresh_cookie(response)
    return RevokedSessionsResponse(message="Logged out from all devices", revoked=revoked)


@router.post("/logout-others", response_model=RevokedSessionsResponse)
async def logout_others(
    claims: CurrentClaims,
    identity: Identity,
    refresh_token: RefreshCookie,
) -> RevokedSessionsResponse:
    """
    Revoke every session of the current account except the one behind the refresh cookie.
    """
    async with deadline():
        current_session_id = await identity.find_session_id(claims.account_id, refresh_token)
        if current_session_id is None:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        revoked = await identity.revoke_others(claims.account_id, current_session_id)
    return RevokedSessionsResponse(message="Logged out from other devices", revoked=revoked)


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    claims: CurrentClaims,
    identity: Identity,
    refresh_token: RefreshCookie,
) -> list[SessionResponse]:
    """
    List the signed-in devices of the current account.

    The session behind the request's refresh cookie, if any, is flagged as current.
    """
    async with deadline():
        sessions = await identity.list_sessions(claims.account_id)
        current_session_id = await identity.find_session_id(claims.account_id, refresh_token)
    return [
        SessionResponse.model_validate(session).model_copy(
            update={"current": session.id == current_session_id}
        )
        for session in sessions
    ]


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(body: ForgotPasswordRequest, identity: Identity) -> MessageResponse:
    """
    Request a password reset email.

    Always returns the same message so the endpoint cannot be used to find
    registered addresses.
    """
    async with deadline():
        await identity.request_password_reset(body.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    identity: Identity,
) -> MessageResponse:
    """Set a new password using a reset token. All sessions are logged out."""
    async with deadline():
        await identity.reset_password(body.token, body.new_password)
    _clear_refresh_cookie(response)
    return MessageResponse(message="Password has been reset. Please log in again.")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: PasswordChangeRequest,
    claims: CurrentClaims,
    identity: Identity,
    refresh_token: RefreshCookie,
) -> MessageResponse:
    """
    Change the password of the current account.

    The session behind the refresh cookie stays logged in; every other
    session is revoked.
    """
    async with deadline():
        await identity.change_password(
            account_id=claims.account_id,
            current_password=body.current_password,
            new_password=body.new_password,
            refresh_token=refresh_token,
        )
    return MessageResponse(message="Password changed successfully")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(body: VerifyEmailRequest, identity: Identity) -> MessageResponse:
    """Confirm an email address with the token from the verification email."""
    async with deadline():
        await identity.verify_email(body.token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(claims: CurrentClaims, identity: Identity) -> MessageResponse:
    async with deadline():
        await identity.resend_verification(claims.account_id)
    return MessageResponse(message="Verification email sent")


@router.post("/close-account", response_model=MessageResponse)
async def close_account(
    body: CloseAccountRequest,
    claims: CurrentClaims,
    response: Response,
    identity: Identity,
) -> MessageResponse:
    """Delete the current account after confirming its password."""
    async with deadline():
        await identity.close_account(claims.account_id, body.password)
    _clear_refresh_cookie(response)
    return MessageResponse(message="Account closed")


@router.get("/me", response_model=AccountResponse)
async def me(claims: CurrentClaims, identity: Identity) -> AccountResponse:
    """Get the current authenticated account."""
    async with deadline():
        account = await identity.get_account(claims.account_id)
    return AccountResponse.model_validate(account)
