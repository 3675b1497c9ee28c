"""
Identity Service: the single entry point for every credential and session change.

Route handlers, background jobs and scripts call IdentityService; nothing else
writes to accounts.password_hash or auth_sessions. Every public method either
returns normally or raises an IdentityError subclass (app.core.errors). Storage,
hashing and signing faults are logged here with their cause and surface to
callers only as InternalError.

Refresh token rotation:
    A refresh token is single-use. Presenting it revokes its session and
    creates a new one. Presenting an already-revoked token is treated as
    theft: every session of the account is revoked and a critical event is
    written to the security logger.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import jwt
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import settings
from app.core.errors import (
    INCORRECT_CURRENT_PASSWORD,
    INVALID_ACCESS_TOKEN,
    INVALID_CREDENTIALS,
    INVALID_EPHEMERAL_TOKEN,
    INVALID_REFRESH_TOKEN,
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from app.core.ids import new_id
from app.core.logging import get_logger, get_security_logger
from app.core.security import (
    burn_password_check,
    generate_token,
    get_password_hash,
    hash_token,
    verify_password,
)
from app.core.tokens import AccessTokenIssuer
from app.models.account import DEFAULT_ROLE, Accounts
from app.models.auth_session import AuthSessions
from app.models.base import utc_now
from app.services.account_store import AccountStore, normalize_email
from app.services.email import EmailTemplate
from app.services.email_dispatch import EmailDispatcher
from app.services.ephemeral_tokens import EphemeralTokenStore, TokenPurpose
from app.services.session_store import SessionStore

logger = get_logger(__name__)
security_logger = get_security_logger()

EMAIL_ALREADY_REGISTERED = "Email is already registered"
USERNAME_ALREADY_TAKEN = "Username is already taken"
EMAIL_ALREADY_VERIFIED = "Email is already verified"
ACCOUNT_NOT_FOUND = "Account not found"

_TEMPLATE_FOR_PURPOSE = {
    TokenPurpose.EMAIL_VERIFICATION: EmailTemplate.VERIFICATION,
    TokenPurpose.PASSWORD_RESET: EmailTemplate.PASSWORD_RESET,
}


@dataclass(frozen=True)
class IssuedTokens:
    """Credentials handed to a client after login or refresh."""

    access_token: str
    access_expires_in: int  # seconds
    refresh_token: str
    refresh_expires_at: datetime
    session_id: str
    account: Accounts


class IdentityService:
    """Orchestrates accounts, sessions, access tokens and ephemeral tokens."""

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionStore,
        ephemeral: EphemeralTokenStore,
        token_issuer: AccessTokenIssuer,
        mailer: EmailDispatcher,
        *,
        access_token_ttl: timedelta | None = None,
        refresh_token_ttl: timedelta | None = None,
        password_reset_ttl: timedelta | None = None,
        email_verification_ttl: timedelta | None = None,
    ) -> None:
        self._accounts = accounts
        self._sessions = sessions
        self._ephemeral = ephemeral
        self._token_issuer = token_issuer
        self._mailer = mailer
        self.access_token_ttl = access_token_ttl or timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self.refresh_token_ttl = refresh_token_ttl or timedelta(
            days=settings.REFRESH_TOKEN_EXPIRE_DAYS
        )
        self.password_reset_ttl = password_reset_ttl or timedelta(
            hours=settings.PASSWORD_RESET_EXPIRE_HOURS
        )
        self.email_verification_ttl = email_verification_ttl or timedelta(
            hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
        )

    @asynccontextmanager
    async def _internal_faults(self, operation: str, **context: Any) -> AsyncIterator[None]:
        """Convert infrastructure exceptions into InternalError, logging the cause."""
        try:
            yield
        except (SQLAlchemyError, RedisError, jwt.PyJWTError, ValueError) as e:
            logger.exception(
                "identity_operation_failed",
                operation=operation,
                error_type=type(e).__name__,
                **context,
            )
            raise InternalError() from e

    # ===== Registration and login =====

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> Accounts:
        """
        Create an unverified account with the default role.

        A verification email is queued afterwards on a best-effort basis; the
        account exists even if queuing fails.

        Raises:
            ConflictError: Email or username already held by a live account
        """
        email = normalize_email(email)

        async with self._internal_faults("register"):
            if await self._accounts.get_by_email(email) is not None:
                raise ConflictError(EMAIL_ALREADY_REGISTERED)
            if await self._accounts.get_by_username(username) is not None:
                raise ConflictError(USERNAME_ALREADY_TAKEN)

            account = Accounts(
                id=new_id(),
                username=username,
                email=email,
                display_name=display_name,
                password_hash=get_password_hash(password),
                role=DEFAULT_ROLE,
                is_verified=False,
            )
            try:
                await self._accounts.create(account)
            except IntegrityError as e:
                # Lost a race against a concurrent registration
                logger.info("register_conflict_on_insert", username=username)
                raise ConflictError(f"{EMAIL_ALREADY_REGISTERED} or username is taken") from e

        logger.info("account_registered", account_id=account.id)

        try:
            await self._issue_and_send(account, TokenPurpose.EMAIL_VERIFICATION)
        except Exception as e:
            logger.warning(
                "verification_email_skipped",
                account_id=account.id,
                error=str(e),
                error_type=type(e).__name__,
            )
        return account

    async def login(
        self,
        identifier: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedTokens:
        """
        Authenticate by email or username and start a new session.

        Unknown identifier and wrong password fail identically and take
        comparable time.

        Raises:
            UnauthorizedError: Credentials do not match a live account
        """
        async with self._internal_faults("login"):
            account = await self._find_login_account(identifier)
            if account is None:
                burn_password_check(password)
                logger.info("login_failed", reason="unknown_identifier", ip_address=ip_address)
                raise UnauthorizedError(INVALID_CREDENTIALS)

            if not verify_password(password, account.password_hash):
                logger.info(
                    "login_failed",
                    reason="wrong_password",
                    account_id=account.id,
                    ip_address=ip_address,
                )
                raise UnauthorizedError(INVALID_CREDENTIALS)

            issued = await self._start_session(account, user_agent, ip_address)

        logger.info(
            "login_succeeded",
            account_id=account.id,
            session_id=issued.session_id,
            ip_address=ip_address,
        )
        return issued

    async def _find_login_account(self, identifier: str) -> Accounts | None:
        identifier = identifier.strip()
        if "@" in identifier:
            account = await self._accounts.get_by_email(identifier)
            if account is not None:
                return account
        return await self._accounts.get_by_username(identifier)

    async def _start_session(
        self,
        account: Accounts,
        user_agent: str | None,
        ip_address: str | None,
    ) -> IssuedTokens:
        now = utc_now()
        access_token = self._token_issuer.issue(
            account_id=account.id,
            username=account.username,
            role=account.role,
            ttl=self.access_token_ttl,
        )
        raw_refresh = generate_token(settings.REFRESH_TOKEN_BYTES)
        session = await self._sessions.create(
            account_id=account.id,
            token_hash=hash_token(raw_refresh),
            now=now,
            ttl=self.refresh_token_ttl,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        return IssuedTokens(
            access_token=access_token,
            access_expires_in=int(self.access_token_ttl.total_seconds()),
            refresh_token=raw_refresh,
            refresh_expires_at=session.expires_at,
            session_id=session.id,
            account=account,
        )

    # ===== Sessions =====

    async def refresh(
        self,
        refresh_token: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedTokens:
        """
        Rotate a refresh token.

        The presented session is revoked and committed before the replacement
        is created. If anything fails in between, the client holds no usable
        refresh token and must log in again; it never ends up with two.

        Raises:
            UnauthorizedError: Unknown, expired or revoked token. A revoked
                token additionally revokes every session of its account.
        """
        token_hash = hash_token(refresh_token)

        async with self._internal_faults("refresh"):
            now = utc_now()
            session = await self._sessions.get_by_token_hash(token_hash)

            if session is None:
                logger.info("refresh_rejected", reason="unknown_token", ip_address=ip_address)
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            if session.revoked:
                await self._handle_replay(session, user_agent, ip_address)
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            if session.expires_at <= now:
                logger.info("refresh_rejected", reason="expired", session_id=session.id)
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            if not await self._sessions.revoke(session.id, now):
                # A concurrent request rotated the same token first
                await self._handle_replay(session, user_agent, ip_address)
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            account = await self._accounts.get_by_id(session.account_id)
            if account is None:
                logger.info(
                    "refresh_rejected", reason="account_gone", account_id=session.account_id
                )
                raise UnauthorizedError(INVALID_REFRESH_TOKEN)

            issued = await self._start_session(account, user_agent, ip_address)

        logger.info(
            "session_rotated",
            account_id=account.id,
            old_session_id=session.id,
            session_id=issued.session_id,
        )
        return issued

    async def _handle_replay(
        self,
        session: AuthSessions,
        user_agent: str | None,
        ip_address: str | None,
    ) -> None:
        revoked = await self._sessions.revoke_all(session.account_id, utc_now())
        security_logger.critical(
            "refresh_token_reuse_detected",
            account_id=session.account_id,
            session_id=session.id,
            sessions_revoked=revoked,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def logout(self, refresh_token: str) -> None:
        """
        End the session behind a refresh token.

        Idempotent: unknown, expired and already-revoked tokens succeed
        without changing anything.
        """
        token_hash = hash_token(refresh_token)

        async with self._internal_faults("logout"):
            now = utc_now()
            session = await self._sessions.get_by_token_hash(token_hash)
            if session is None or not session.is_usable(now):
                logger.debug("logout_noop")
                return
            await self._sessions.revoke(session.id, now)

        logger.info("logged_out", account_id=session.account_id, session_id=session.id)

    async def revoke_all(self, account_id: str) -> int:
        """Revoke every session of an account. Returns how many were revoked."""
        async with self._internal_faults("revoke_all", account_id=account_id):
            revoked = await self._sessions.revoke_all(account_id, utc_now())
        logger.info("sessions_revoked", account_id=account_id, scope="all", revoked=revoked)
        return revoked

    async def revoke_others(self, account_id: str, current_session_id: str) -> int:
        """Revoke every session of an account except the current one."""
        async with self._internal_faults("revoke_others", account_id=account_id):
            revoked = await self._sessions.revoke_others(
                account_id, current_session_id, utc_now()
            )
        logger.info("sessions_revoked", account_id=account_id, scope="others", revoked=revoked)
        return revoked

    async def find_session_id(self, account_id: str, refresh_token: str | None) -> str | None:
        """
        Resolve a refresh token to a usable session of the given account.

        Returns:
            The session id, or None if the token is absent, unknown, unusable,
            or belongs to another account
        """
        if not refresh_token:
            return None
        async with self._internal_faults("find_session", account_id=account_id):
            session = await self._sessions.get_by_token_hash(hash_token(refresh_token))
        if session is None or session.account_id != account_id:
            return None
        if not session.is_usable(utc_now()):
            return None
        return session.id

    async def list_sessions(self, account_id: str) -> list[AuthSessions]:
        """Usable sessions of an account, oldest first."""
        async with self._internal_faults("list_sessions", account_id=account_id):
            return await self._sessions.list_usable(account_id, utc_now())

    # ===== Passwords =====

    async def request_password_reset(self, email: str) -> None:
        """
        Queue a password reset email if the address belongs to a live account.

        Returns normally whether or not the account exists, including when the
        token store is unavailable.
        """
        async with self._internal_faults("request_password_reset"):
            account = await self._accounts.get_by_email(email)
            if account is None:
                logger.info("password_reset_requested_unknown_email")
                return
            try:
                await self._issue_and_send(account, TokenPurpose.PASSWORD_RESET)
            except RedisError as e:
                logger.warning(
                    "password_reset_token_store_failed",
                    account_id=account.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return

        logger.info("password_reset_requested", account_id=account.id)

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Set a new password using a reset token, ending every session first.

        Raises:
            NotFoundError: Token unknown, expired or already used
        """
        async with self._internal_faults("reset_password"):
            new_hash = get_password_hash(new_password)

            account_id = await self._ephemeral.consume(TokenPurpose.PASSWORD_RESET, token)
            if account_id is None:
                raise NotFoundError(INVALID_EPHEMERAL_TOKEN)

            # Sessions are revoked before the new password is stored
            revoked = await self._sessions.revoke_all(account_id, utc_now())

            if not await self._accounts.update_password(account_id, new_hash):
                raise NotFoundError(INVALID_EPHEMERAL_TOKEN)

        logger.info("password_reset_completed", account_id=account_id, sessions_revoked=revoked)

    async def change_password(
        self,
        account_id: str,
        current_password: str,
        new_password: str,
        refresh_token: str | None = None,
    ) -> int:
        """
        Change the password of an authenticated account.

        When refresh_token identifies a usable session of this account that
        session survives and all others are revoked. Otherwise every session
        is revoked.

        Returns:
            Number of sessions revoked

        Raises:
            UnauthorizedError: Account gone or current password wrong
        """
        async with self._internal_faults("change_password", account_id=account_id):
            account = await self._accounts.get_by_id(account_id)
            if account is None:
                raise UnauthorizedError(INVALID_ACCESS_TOKEN)

            if not verify_password(current_password, account.password_hash):
                logger.info("password_change_rejected", account_id=account_id)
                raise UnauthorizedError(INCORRECT_CURRENT_PASSWORD)

            if not await self._accounts.update_password(
                account_id, get_password_hash(new_password)
            ):
                raise UnauthorizedError(INVALID_ACCESS_TOKEN)

            keep_session_id = await self.find_session_id(account_id, refresh_token)
            now = utc_now()
            if keep_session_id is not None:
                revoked = await self._sessions.revoke_others(account_id, keep_session_id, now)
            else:
                revoked = await self._sessions.revoke_all(account_id, now)

        logger.info(
            "password_changed",
            account_id=account_id,
            kept_session=keep_session_id is not None,
            sessions_revoked=revoked,
        )
        return revoked

    # ===== Email verification =====

    async def verify_email(self, token: str) -> Accounts:
        """
        Mark the account behind a verification token as verified.

        Raises:
            NotFoundError: Token unknown, expired or already used, or the
                account no longer exists
        """
        async with self._internal_faults("verify_email"):
            account_id = await self._ephemeral.consume(TokenPurpose.EMAIL_VERIFICATION, token)
            if account_id is None:
                raise NotFoundError(INVALID_EPHEMERAL_TOKEN)

            account = await self._accounts.get_by_id(account_id)
            if account is None:
                raise NotFoundError(INVALID_EPHEMERAL_TOKEN)

            flipped = await self._accounts.mark_verified(account_id)

        logger.info("email_verified", account_id=account_id, changed=flipped)
        return account

    async def resend_verification(self, account_id: str) -> None:
        """
        Issue a fresh verification token and queue the email.

        Raises:
            NotFoundError: Account does not exist
            ConflictError: Account is already verified
        """
        async with self._internal_faults("resend_verification", account_id=account_id):
            account = await self._accounts.get_by_id(account_id)
            if account is None:
                raise NotFoundError(ACCOUNT_NOT_FOUND)
            if account.is_verified:
                raise ConflictError(EMAIL_ALREADY_VERIFIED)
            await self._issue_and_send(account, TokenPurpose.EMAIL_VERIFICATION)

        logger.info("verification_email_requested", account_id=account_id)

    async def _issue_and_send(self, account: Accounts, purpose: TokenPurpose) -> None:
        """Store a fresh ephemeral token, then hand the email to the queue."""
        ttl = (
            self.password_reset_ttl
            if purpose is TokenPurpose.PASSWORD_RESET
            else self.email_verification_ttl
        )
        raw_token = generate_token(settings.EPHEMERAL_TOKEN_BYTES)
        await self._ephemeral.put(purpose, raw_token, account.id, ttl)

        try:
            await self._mailer.send(account.email, _TEMPLATE_FOR_PURPOSE[purpose], raw_token)
        except Exception as e:
            logger.warning(
                "identity_email_dispatch_failed",
                account_id=account.id,
                purpose=purpose.value,
                error=str(e),
                error_type=type(e).__name__,
            )

    # ===== Account lifecycle =====

    async def get_account(self, account_id: str) -> Accounts:
        """
        Raises:
            NotFoundError: Account missing or deleted
        """
        async with self._internal_faults("get_account", account_id=account_id):
            account = await self._accounts.get_by_id(account_id)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        return account

    async def close_account(self, account_id: str, password: str) -> None:
        """
        Soft-delete an account after re-checking its password, and end every session.

        Raises:
            UnauthorizedError: Account gone or password wrong
        """
        async with self._internal_faults("close_account", account_id=account_id):
            account = await self._accounts.get_by_id(account_id)
            if account is None:
                raise UnauthorizedError(INVALID_ACCESS_TOKEN)
            if not verify_password(password, account.password_hash):
                raise UnauthorizedError(INCORRECT_CURRENT_PASSWORD)

            await self._accounts.soft_delete(account_id)
            revoked = await self._sessions.revoke_all(account_id, utc_now())

        logger.info("account_closed", account_id=account_id, sessions_revoked=revoked)
