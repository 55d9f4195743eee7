"""User profile route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.db import get_db_session
from courtside.services import feedback_service, user_service
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import (
    UserResponse,
    UserUpdateRequest,
    PublicUserResponse,
    ReputationResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _own_profile(user: dict) -> UserResponse:
    return UserResponse(
        id=user["id"],
        email=user["email"],
        name=user["name"],
        img_url=user["img_url"],
        created_at=user["created_at"],
    )


@router.get("/api/users/me", response_model=UserResponse)
async def get_current_user_profile(current_user: dict = Depends(require_user)):
    """Get the current user's profile."""
    return _own_profile(current_user)


@router.patch("/api/users/me", response_model=UserResponse)
async def update_current_user(
    payload: UserUpdateRequest,
    current_user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the current user's display name and/or photo URL."""
    try:
        updated = await user_service.update_user_profile(
            session, current_user["id"], name=payload.name, img_url=payload.img_url
        )
        if not updated:
            raise HTTPException(status_code=400, detail="No fields provided to update")

        user = await user_service.get_user_by_id(session, current_user["id"])
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return _own_profile(user)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating user profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating user profile")


@router.get("/api/users/{user_id}", response_model=PublicUserResponse)
async def get_user_profile(
    user_id: int,
    current_user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get another user's public profile."""
    user = await user_service.get_user_by_id(session, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_service.public_profile(user)


@router.get("/api/users/{user_id}/feedback", response_model=ReputationResponse)
async def get_user_feedback(
    user_id: int,
    current_user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Average grade and feedback history for a user."""
    try:
        return await feedback_service.get_reputation(session, user_id)
    except Exception as e:
        logger.error(f"Error fetching feedback for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching feedback")
