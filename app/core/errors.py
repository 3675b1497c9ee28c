"""
Typed failures raised by the identity layer.

Every failure that crosses the Identity Service boundary is one of the
IdentityError subclasses below. The HTTP layer maps them to status codes in
one place (see app.main), so route handlers never build error responses by hand.

- ConflictError: username/email already taken (safe to disclose)
- UnauthorizedError: bad credentials, unusable refresh token, wrong current password
- NotFoundError: unknown or already-consumed ephemeral token, missing account
- InternalError: hashing/signing/storage faults; the message is fixed and the
  cause is only logged server-side
"""

from enum import StrEnum

from fastapi import status


class ErrorKind(StrEnum):
    """Closed set of failure categories."""

    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class IdentityError(Exception):
    """Base class for all identity failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConflictError(IdentityError):
    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(IdentityError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(IdentityError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(IdentityError):
    kind = ErrorKind.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(message)


# Client-facing messages. Each is shared by every root cause in its category
# so responses cannot be used to enumerate accounts.
INVALID_CREDENTIALS = "Invalid login credentials"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
INVALID_ACCESS_TOKEN = "Could not validate credentials"
INCORRECT_CURRENT_PASSWORD = "Current password is incorrect"
INVALID_EPHEMERAL_TOKEN = "Token is invalid or expired"
