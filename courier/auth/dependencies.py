import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, WebSocket, status
from sqlalchemy.orm import Session

from courier.auth.models.user import User
from courier.core import security
from courier.db.session import get_db

logger = logging.getLogger(__name__)


async def get_access_token(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """Extract the access token from a Bearer header, falling back to the cookie"""
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    if access_token:
        return access_token
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_validated_token_payload(token: str, expected_type: str = "access") -> dict[str, Any]:
    """Decode and validate JWT token"""
    payload = security.decode_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != expected_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token type, expected {expected_type}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


def resolve_user(payload: dict[str, Any], db: Session) -> User:
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return user


async def get_current_user(
    access_token: str = Depends(get_access_token),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from access token"""
    payload = get_validated_token_payload(access_token, expected_type="access")
    return resolve_user(payload, db)


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def authenticate_websocket(websocket: WebSocket, db: Session) -> User | None:
    """Resolve the user behind a WebSocket handshake, or None if unauthenticated.

    Browsers cannot set headers on WebSocket upgrades, so the token may also
    arrive as a `token` query parameter or the access_token cookie.
    """
    token = websocket.query_params.get("token") or websocket.cookies.get("access_token")
    if not token:
        authorization = websocket.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()
    if not token:
        return None

    try:
        payload = get_validated_token_payload(token, expected_type="access")
        return resolve_user(payload, db)
    except HTTPException as exc:
        logger.info("WebSocket authentication rejected: %s", exc.detail)
        return None
