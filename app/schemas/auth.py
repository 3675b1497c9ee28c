"""
Authentication schemas for request/response validation.

This module defines Pydantic models for identity API operations:
- Registration and login credentials
- Token responses
- Password reset, change and email verification
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.security import validate_password_strength
from app.schemas.account import AccountResponse


def _check_strength(value: str) -> str:
    is_valid, error_message = validate_password_strength(value)
    if not is_valid:
        raise ValueError(error_message)
    return value


class RegisterRequest(BaseModel):
    """Request schema for account registration."""

    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=255)
    display_name: str | None = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_strength(v)


class LoginRequest(BaseModel):
    """Request schema for login by username or email."""

    login: str = Field(..., min_length=1, max_length=254, description="Username or email")
    password: str = Field(..., min_length=1, max_length=255)  # Any length for existing accounts


class TokenResponse(BaseModel):
    """
    Response schema for successful authentication.

    The refresh token is not part of the body; it is set as an HTTPOnly cookie.
    """

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds from now")
    refresh_expires_at: datetime
    account: AccountResponse


class PasswordChangeRequest(BaseModel):
    """Request schema for password change."""

    current_password: str = Field(..., min_length=1, max_length=255)
    new_password: str = Field(..., min_length=8, max_length=255)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_strength(v)


class ForgotPasswordRequest(BaseModel):
    """Request schema for forgot password."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request schema for password reset with token."""

    token: str = Field(..., min_length=1, max_length=255)
    new_password: str = Field(..., min_length=8, max_length=255)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_strength(v)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)


class CloseAccountRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=255)


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class RevokedSessionsResponse(MessageResponse):
    revoked: int


class SessionResponse(BaseModel):
    """A signed-in device, as shown on the account's session list."""

    id: str
    user_agent: str | None
    ip_address: str | None
    created_at: datetime
    expires_at: datetime
    current: bool = False

    model_config = {"from_attributes": True}
