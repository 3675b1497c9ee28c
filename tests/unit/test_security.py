"""Tests for password hashing and opaque token helpers."""

import pytest

from app.core.security import (
    burn_password_check,
    generate_token,
    get_password_hash,
    hash_token,
    validate_password_strength,
    verify_password,
)


@pytest.mark.unit
class TestPasswordHashing:
    def test_hash_verifies_with_original_password(self):
        hashed = get_password_hash("Secret123")

        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)

    def test_wrong_password_rejected(self):
        hashed = get_password_hash("Secret123")

        assert not verify_password("Secret124", hashed)

    def test_same_password_hashes_differently(self):
        """Each hash carries its own salt."""
        assert get_password_hash("Secret123") != get_password_hash("Secret123")

    def test_long_password_beyond_bcrypt_limit(self):
        """Passwords over 72 bytes are pre-hashed, so the tail still matters."""
        base = "A1" + "x" * 100
        hashed = get_password_hash(base + "tail-one")

        assert verify_password(base + "tail-one", hashed)
        assert not verify_password(base + "tail-two", hashed)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("Secret123", "not-a-bcrypt-hash") is False

    def test_burn_password_check_returns_nothing(self):
        assert burn_password_check("whatever") is None


@pytest.mark.unit
class TestPasswordStrength:
    @pytest.mark.parametrize(
        ("password", "fragment"),
        [
            ("Sh0rt", "8 characters"),
            ("alllowercase1", "uppercase"),
            ("ALLUPPERCASE1", "lowercase"),
            ("NoDigitsHere", "digit"),
        ],
    )
    def test_weak_passwords(self, password, fragment):
        is_valid, message = validate_password_strength(password)

        assert is_valid is False
        assert fragment in message

    def test_strong_password(self):
        assert validate_password_strength("Secret123") == (True, None)


@pytest.mark.unit
class TestOpaqueTokens:
    def test_generate_token_is_url_safe_and_unique(self):
        tokens = {generate_token() for _ in range(50)}

        assert len(tokens) == 50
        for token in tokens:
            assert len(token) == 43  # 32 bytes, unpadded base64
            assert all(c.isalnum() or c in "-_" for c in token)

    def test_hash_token_is_stable_sha256_hex(self):
        digest = hash_token("abc")

        assert digest == hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        assert digest != hash_token("abd")
