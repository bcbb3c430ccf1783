# core/security.py
"""
JWT helpers for the identity collaborator.

Tokens are issued elsewhere; this service only needs to read them (and to
mint them in tests).
"""
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from config import settings

# JWT configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours


def get_secret_key() -> str:
    """Get JWT secret key from settings; only non-production modes may fall back."""
    secret = getattr(settings, 'SECRET_KEY', None)
    if secret:
        return secret
    if settings.APP_ENV == "production":
        raise RuntimeError("SECRET_KEY must be set in production")
    # Development fallback
    return "dev-secret-key-change-in-production-abc123xyz"


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded payload dict if valid, None if invalid
    """
    try:
        return jwt.decode(token, get_secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        return None
