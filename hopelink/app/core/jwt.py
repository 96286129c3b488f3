"""
JWT token utilities for authentication.

This module provides functions for encoding and decoding JWT tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from hopelink.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data payload to encode in the token (should include: sub, user_id, role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example payload:
        {
            "sub": "maria",
            "user_id": 12,
            "role": "volunteer",
            "exp": 1234567890
        }
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_user_token(user) -> str:
    """Issue a token carrying the identity claims the guards rely on."""
    return create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
    })


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded token payload if valid (includes: sub, user_id, role, exp), None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
