"""
Authentication helpers: password hashing, JWT access tokens and input normalization.
"""

import logging
import os
from datetime import timedelta
from typing import Dict, Optional

import bcrypt
import jwt
from dotenv import load_dotenv

from matchday.utils.datetime_utils import utcnow

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRATION_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRATION_MINUTES", str(60 * 24 * 7)))

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """
    Hash a password with a per-password bcrypt salt.

    Args:
        password: Plain text password

    Returns:
        bcrypt hash as a string
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a password against a stored bcrypt hash.

    Returns:
        True if the password matches, False otherwise (including malformed hashes)
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to include (must contain ``user_id``)
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRATION_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and validate a JWT access token.

    Returns:
        Token payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def normalize_email(email: str) -> str:
    """
    Trim and lowercase an email address.

    Raises:
        ValueError: If the result is not a plausible email address
    """
    normalized = (email or "").strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or "." not in domain or " " in normalized:
        raise ValueError("Invalid email address")
    return normalized


def validate_password(password: str) -> None:
    """
    Enforce the minimal password rules.

    Raises:
        ValueError: If the password is too short or has no digit
    """
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(char.isdigit() for char in password):
        raise ValueError("Password must include at least one number")


def format_name(name: str) -> str:
    """Capitalize each word of a display name: ``"ana  SILVA"`` -> ``"Ana Silva"``."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in (name or "").split())
