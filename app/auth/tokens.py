"""
JWT access tokens shared by the HTTP API and the chat WebSocket.

Claims: userId, role (buyer | manufacturer), phoneNumber, type="auth", iat, exp.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.schemas.auth import CurrentUser

TOKEN_TYPE = "auth"


class InvalidTokenError(ValueError):
    """Token is missing, malformed, expired or carries unusable claims."""


def create_access_token(
    user_id: UUID,
    role: str,
    phone_number: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expires_minutes))
    payload = {
        "userId": str(user_id),
        "role": role,
        "phoneNumber": phone_number,
        "type": TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> CurrentUser:
    """Verify a token and return the caller identity. Raises InvalidTokenError."""
    if not token:
        raise InvalidTokenError("Missing token")
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except ExpiredSignatureError as e:
        raise InvalidTokenError("Token has expired") from e
    except JWTError as e:
        raise InvalidTokenError("Could not validate token") from e
    if payload.get("type") != TOKEN_TYPE:
        raise InvalidTokenError("Unexpected token type")
    try:
        return CurrentUser(
            user_id=payload.get("userId"),
            role=payload.get("role"),
            phone_number=payload.get("phoneNumber"),
        )
    except ValidationError as e:
        raise InvalidTokenError("Token claims are invalid") from e
