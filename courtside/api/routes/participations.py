"""Participation ledger route handlers (personal calendar and chat rooms)."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.db import get_db_session
from courtside.database.models import ParticipationState
from courtside.services import participation_service
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import ParticipationResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/participations", response_model=List[ParticipationResponse])
async def list_participations(
    state: Optional[ParticipationState] = Query(None),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The current user's participation records, ordered by event start."""
    try:
        return await participation_service.list_for_user(
            session, user["id"], state.value if state else None
        )
    except Exception as e:
        logger.error(f"Error listing participations for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing participations")


@router.get("/api/participations/rooms", response_model=List[ParticipationResponse])
async def list_chat_rooms(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Events whose group chat the current user can join."""
    try:
        return await participation_service.list_chat_rooms(session, user["id"])
    except Exception as e:
        logger.error(f"Error listing chat rooms for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing chat rooms")
