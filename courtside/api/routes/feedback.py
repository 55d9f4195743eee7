"""Post-event feedback route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import service_error_response
from courtside.database.db import get_db_session
from courtside.services import feedback_service
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import FeedbackSubmitRequest, FeedbackResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.put("/api/events/{event_id}/feedback/{user_id}", response_model=FeedbackResponse)
async def submit_feedback(
    event_id: int,
    user_id: int,
    payload: FeedbackSubmitRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rate a player of a finished event. Resubmitting overwrites the earlier rating."""
    try:
        return await feedback_service.submit_feedback(
            session,
            event_id=event_id,
            user_id=user_id,
            rater_id=user["id"],
            friendliness_level=payload.friendliness_level.value,
            level=payload.level.value,
            grade=payload.grade,
            note=payload.note,
        )
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error saving feedback {event_id}_{user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error saving feedback")


@router.get("/api/events/{event_id}/feedback/{user_id}", response_model=FeedbackResponse)
async def get_feedback(
    event_id: int,
    user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Feedback left for one player of an event."""
    try:
        return await feedback_service.get_feedback(session, event_id, user_id)
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error fetching feedback {event_id}_{user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching feedback")
