"""Resolve the authenticated caller for HTTP routes and WebSocket connections."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.tokens import InvalidTokenError, decode_access_token
from app.infra.logging_config import get_logger
from app.schemas.auth import CurrentUser

logger = get_logger("auth")

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """FastAPI dependency: the caller identity from the bearer token, else 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def _websocket_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


def authenticate_websocket(websocket: WebSocket) -> Optional[CurrentUser]:
    """Caller identity from the `token` query parameter or Authorization header, or None."""
    try:
        return decode_access_token(_websocket_token(websocket) or "")
    except InvalidTokenError as e:
        logger.info("Rejected chat connection: %s", e)
        return None
