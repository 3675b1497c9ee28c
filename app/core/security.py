"""
Security primitives for the identity layer.

This module provides:
- Password hashing and verification using bcrypt
- Password strength validation for request schemas
- Opaque token generation and at-rest digests (refresh, reset, verification tokens)
"""

import base64
import hashlib
import re
import secrets
from functools import lru_cache

import bcrypt

from app.config import settings


def validate_password_strength(password: str) -> tuple[bool, str | None]:
    """
    Validate password meets security requirements.

    Requirements:
    - At least 8 characters
    - Contains at least one uppercase letter
    - Contains at least one lowercase letter
    - Contains at least one digit

    Args:
        password: The password to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if len(password) < 8:
        return False, "Password must be at least 8 characters long"

    if not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if not re.search(r"[a-z]", password):
        return False, "Password must contain at least one lowercase letter"

    if not re.search(r"\d", password):
        return False, "Password must contain at least one digit"

    return True, None


def _prepare_password_for_bcrypt(password: str) -> str:
    """
    Prepare password for bcrypt by handling long passwords.

    Bcrypt has a 72 byte limit. For passwords longer than 72 bytes,
    we SHA256 hash them first and encode as base64.

    Args:
        password: The plain text password

    Returns:
        Password ready for bcrypt (guaranteed <= 72 bytes)
    """
    password_bytes = password.encode("utf-8")

    if len(password_bytes) <= 72:
        return password

    # SHA256 produces 32 bytes, base64 encoding produces 44 chars (well under 72)
    hashed = hashlib.sha256(password_bytes).digest()
    return base64.b64encode(hashed).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    The comparison inside bcrypt.checkpw is constant-time. A malformed
    digest is treated as a mismatch, never as an error.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The bcrypt hashed password

    Returns:
        True if password matches, False otherwise
    """
    prepared_password = _prepare_password_for_bcrypt(plain_password)
    try:
        return bcrypt.checkpw(prepared_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    For passwords longer than 72 bytes (bcrypt's limit), we SHA256 hash them first.

    Args:
        password: The plain text password to hash

    Returns:
        The bcrypt hashed password
    """
    prepared_password = _prepare_password_for_bcrypt(password)
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(prepared_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return get_password_hash(secrets.token_urlsafe(16))


def burn_password_check(plain_password: str) -> None:
    """
    Spend the same bcrypt work as a real verification.

    Called when a login identifier matches no account, so that "unknown user"
    and "wrong password" take comparable time.
    """
    verify_password(plain_password, _dummy_password_hash())


def generate_token(byte_length: int = 32) -> str:
    """
    Create a cryptographically secure opaque token.

    Args:
        byte_length: Number of random bytes (32 bytes -> 43 characters)

    Returns:
        URL-safe base64 string without padding
    """
    return secrets.token_urlsafe(byte_length)


def hash_token(raw_token: str) -> str:
    """
    Digest an opaque token for storage and lookup.

    The input is already high-entropy, so a fast hash is sufficient here.
    Only this digest is ever persisted.

    Args:
        raw_token: Token as handed to the client

    Returns:
        SHA-256 hex digest (64 characters)
    """
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
