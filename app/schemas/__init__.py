"""
Pydantic schemas for API responses and requests
"""

from app.models.account import AccountBase  # Re-export from models
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

__all__ = [
    "AccountBase",
    "AccountResponse",
    "CloseAccountRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "MessageResponse",
    "PasswordChangeRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "RevokedSessionsResponse",
    "SessionResponse",
    "TokenResponse",
    "VerifyEmailRequest",
]
