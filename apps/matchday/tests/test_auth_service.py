"""
Unit tests for authentication service.
Tests password hashing, JWT tokens and input normalization.
"""
from datetime import timedelta

import pytest

from matchday.services import auth_service


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_password_is_salted(self):
        """Same password hashes differently but both verify."""
        password = "test_password_123"
        hash1 = auth_service.hash_password(password)
        hash2 = auth_service.hash_password(password)

        assert hash1 != hash2
        assert auth_service.verify_password(password, hash1)
        assert auth_service.verify_password(password, hash2)

    def test_hash_is_not_plaintext(self):
        assert "secret123" not in auth_service.hash_password("secret123")

    def test_verify_password_incorrect(self):
        password_hash = auth_service.hash_password("test_password_123")
        assert auth_service.verify_password("wrong_password", password_hash) is False

    def test_verify_password_empty(self):
        password_hash = auth_service.hash_password("test_password_123")
        assert auth_service.verify_password("", password_hash) is False
        assert auth_service.verify_password("test_password_123", None) is False

    def test_verify_password_malformed_hash(self):
        assert auth_service.verify_password("test_password_123", "not-a-bcrypt-hash") is False


class TestJWTTokens:
    """Tests for JWT token creation and verification."""

    def test_create_and_verify_token(self):
        token = auth_service.create_access_token({"user_id": "abc"})
        payload = auth_service.verify_token(token)

        assert payload is not None
        assert payload["user_id"] == "abc"
        assert "exp" in payload

    def test_expired_token(self):
        token = auth_service.create_access_token({"user_id": "abc"}, expires_delta=timedelta(seconds=-1))
        assert auth_service.verify_token(token) is None

    def test_tampered_token(self):
        token = auth_service.create_access_token({"user_id": "abc"})
        assert auth_service.verify_token(token + "x") is None

    def test_garbage_token(self):
        assert auth_service.verify_token("not.a.token") is None


class TestNormalization:
    def test_normalize_email(self):
        assert auth_service.normalize_email("  Ana@Example.COM ") == "ana@example.com"

    @pytest.mark.parametrize("email", ["", "ana", "ana@", "@example.com", "ana@example", "a na@x.com"])
    def test_invalid_email(self, email):
        with pytest.raises(ValueError):
            auth_service.normalize_email(email)

    def test_validate_password(self):
        auth_service.validate_password("secret123")
        with pytest.raises(ValueError, match="at least 8"):
            auth_service.validate_password("abc1")
        with pytest.raises(ValueError, match="number"):
            auth_service.validate_password("abcdefghij")

    def test_format_name(self):
        assert auth_service.format_name("  ana   SILVA ") == "Ana Silva"
        assert auth_service.format_name("") == ""
