"""
JWT token utilities for authentication.

This module provides functions for encoding and decoding the bearer tokens
that identify a driver session.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from geodispatch.app.core.config import Settings, settings as default_settings


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data payload to encode in the token (should include: sub, user_id, phone)
        expires_delta: Optional custom expiration time
        settings: Settings carrying the signing key (defaults to the process settings)

    Returns:
        Encoded JWT token string

    Example payload:
        {
            "sub": "driver_42",
            "user_id": "42",
            "phone": "+9779800000000",
            "exp": 1234567890
        }
    """
    settings = settings or default_settings
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded token payload if valid, None otherwise
    """
    settings = settings or default_settings
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
