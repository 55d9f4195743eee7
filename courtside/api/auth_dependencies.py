"""
Authentication dependencies for FastAPI routes.

HTTP routes read the bearer token from the Authorization header; WebSocket
routes pass it as ?token= and call get_user_from_token directly.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from courtside.services import auth_service, user_service
from courtside.database.db import get_db_session

security = HTTPBearer()


class TokenRejected(Exception):
    """Raised when a token cannot be resolved to a user."""


async def _resolve_token(session: AsyncSession, token: str) -> dict:
    payload = auth_service.verify_token(token)
    if payload is None:
        raise TokenRejected("Invalid authentication token")

    user_id = payload.get("user_id")
    if user_id is None:
        raise TokenRejected("Invalid token payload")

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise TokenRejected("User not found")
    return user


async def get_user_from_token(session: AsyncSession, token: Optional[str]) -> Optional[dict]:
    """
    Resolve a raw JWT to a user dict.

    Returns:
        User dictionary, or None if the token is missing, invalid or stale
    """
    if not token:
        return None
    try:
        return await _resolve_token(session, token)
    except TokenRejected:
        return None


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Raises:
        HTTPException: 401 if the token is invalid or its user no longer exists
    """
    try:
        return await _resolve_token(session, credentials.credentials)
    except TokenRejected as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user
