"""
Access token issuing and verification (RS256 JWT).

Access tokens are short-lived, stateless bearer credentials. They are signed
with the private half of an RSA key pair; any service holding only the public
half can verify them with AccessTokenVerifier but cannot mint new ones.

Key material is loaded once at start-up into an immutable SigningKeys object
and handed to the issuer explicitly. Nothing in this module reads settings
or keeps module-level key state.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from pydantic import BaseModel, ValidationError

from app.core.errors import INVALID_ACCESS_TOKEN, UnauthorizedError
from app.models.account import AccountRole

ALGORITHM = "RS256"
TOKEN_TYPE = "access"


class AccessTokenClaims(BaseModel):
    """Verified claim set carried by an access token."""

    sub: str
    username: str
    role: AccountRole
    iss: str
    iat: datetime
    exp: datetime

    @property
    def account_id(self) -> str:
        return self.sub


@dataclass(frozen=True)
class SigningKeys:
    """
    RSA key pair used to sign and verify access tokens.

    private_key is None for verify-only deployments that were given just the
    public key.
    """

    public_key: RSAPublicKey
    issuer: str
    private_key: RSAPrivateKey | None = None

    @classmethod
    def from_pem(
        cls,
        issuer: str,
        private_pem: str | bytes | None = None,
        public_pem: str | bytes | None = None,
    ) -> "SigningKeys":
        """
        Build keys from PEM text.

        When only the private key is given the public key is derived from it.

        Raises:
            ValueError: If neither key is given or a key is not RSA
        """
        private_key: RSAPrivateKey | None = None
        if private_pem is not None:
            loaded = serialization.load_pem_private_key(_as_bytes(private_pem), password=None)
            if not isinstance(loaded, RSAPrivateKey):
                raise ValueError("Access token signing key must be an RSA private key")
            private_key = loaded

        if public_pem is not None:
            loaded_public = serialization.load_pem_public_key(_as_bytes(public_pem))
            if not isinstance(loaded_public, RSAPublicKey):
                raise ValueError("Access token verification key must be an RSA public key")
            public_key = loaded_public
        elif private_key is not None:
            public_key = private_key.public_key()
        else:
            raise ValueError("At least one of private_pem or public_pem is required")

        return cls(public_key=public_key, issuer=issuer, private_key=private_key)

    @classmethod
    def from_files(
        cls,
        issuer: str,
        private_key_path: str | Path | None = None,
        public_key_path: str | Path | None = None,
    ) -> "SigningKeys":
        """Build keys from PEM files on disk."""
        private_pem = Path(private_key_path).read_bytes() if private_key_path else None
        public_pem = Path(public_key_path).read_bytes() if public_key_path else None
        return cls.from_pem(issuer, private_pem=private_pem, public_pem=public_pem)


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


class AccessTokenVerifier:
    """Verifies access tokens using only the public key."""

    def __init__(self, keys: SigningKeys) -> None:
        self._keys = keys

    @property
    def issuer(self) -> str:
        return self._keys.issuer

    def verify(self, token: str) -> AccessTokenClaims:
        """
        Verify signature, algorithm, issuer and expiry of an access token.

        The algorithm named in the token header must be RS256 before any
        decoding happens; an HS256 token signed with the public key as an
        HMAC secret is rejected here.

        Args:
            token: Encoded JWT from the Authorization header

        Returns:
            Verified claims

        Raises:
            UnauthorizedError: For every kind of invalid token (single message)
        """
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != ALGORITHM:
                raise UnauthorizedError(INVALID_ACCESS_TOKEN)

            payload = jwt.decode(
                token,
                self._keys.public_key,
                algorithms=[ALGORITHM],
                issuer=self._keys.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "require": ["sub", "exp", "iat", "iss"],
                },
            )
        except jwt.PyJWTError as e:
            raise UnauthorizedError(INVALID_ACCESS_TOKEN) from e

        if payload.get("type") != TOKEN_TYPE:
            raise UnauthorizedError(INVALID_ACCESS_TOKEN)

        try:
            return AccessTokenClaims.model_validate(payload)
        except ValidationError as e:
            raise UnauthorizedError(INVALID_ACCESS_TOKEN) from e


class AccessTokenIssuer(AccessTokenVerifier):
    """Signs access tokens with the private key and verifies them with the public key."""

    def __init__(self, keys: SigningKeys) -> None:
        if keys.private_key is None:
            raise ValueError("AccessTokenIssuer requires a private key")
        super().__init__(keys)
        self._private_key = keys.private_key

    def issue(self, account_id: str, username: str, role: AccountRole, ttl: timedelta) -> str:
        """
        Create a signed access token.

        Args:
            account_id: Subject of the token
            username: Username claim
            role: Role claim
            ttl: Lifetime from now

        Returns:
            Encoded JWT string

        Raises:
            jwt.PyJWTError: If signing fails
        """
        issued_at = datetime.now(UTC)
        payload = {
            "sub": account_id,  # "sub" (subject) is standard JWT claim
            "iss": self.issuer,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "type": TOKEN_TYPE,  # Custom claim to distinguish token types
            "username": username,
            "role": str(role),
        }
        return jwt.encode(payload, self._private_key, algorithm=ALGORITHM)
