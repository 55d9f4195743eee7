"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import limiter, INVALID_CREDENTIALS_RESPONSE
from courtside.database.db import get_db_session
from courtside.services import auth_service, user_service
from courtside.models.schemas import SignupRequest, LoginRequest, AuthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/signup", response_model=AuthResponse)
@limiter.limit("5/minute")
async def signup(
    request: Request, payload: SignupRequest, session: AsyncSession = Depends(get_db_session)
):
    """Create an account with email and password and return an access token."""
    try:
        email = auth_service.normalize_email(payload.email)
        if not any(char.isdigit() for char in payload.password):
            raise HTTPException(status_code=400, detail="Password must include at least one number")
        if not payload.name.strip():
            raise HTTPException(status_code=400, detail="Name is required")

        password_hash = auth_service.hash_password(payload.password)
        user_id = await user_service.create_user(session, email, password_hash, payload.name)

        access_token = auth_service.create_access_token(data={"user_id": user_id, "email": email})
        return AuthResponse(access_token=access_token, user_id=user_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error during signup: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error during signup")


@router.post("/api/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """Login with email and password."""
    try:
        user = await user_service.get_user_by_email(session, payload.email)
        if not user or not user.get("password_hash"):
            raise INVALID_CREDENTIALS_RESPONSE

        if not auth_service.verify_password(payload.password, user["password_hash"]):
            raise INVALID_CREDENTIALS_RESPONSE

        access_token = auth_service.create_access_token(
            data={"user_id": user["id"], "email": user["email"]}
        )
        return AuthResponse(access_token=access_token, user_id=user["id"])
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error during login")
