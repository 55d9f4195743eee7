"""Event lifecycle route handlers: hold, browse, apply, approve, decline."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import service_error_response
from courtside.database.db import get_db_session
from courtside.services import event_service
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import (
    EventCreateRequest,
    EventResponse,
    EventDetailResponse,
    PendingApprovalResponse,
    ParticipationResponse,
    ApproveRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/events", response_model=EventResponse)
async def create_event(
    payload: EventCreateRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Hold a new event. The organizer and any invitees join as accepted players."""
    try:
        return await event_service.create_event(
            session,
            organizer_id=user["id"],
            court_id=payload.court_id,
            date=payload.date,
            start_time=payload.start_time,
            duration_hours=payload.duration_hours,
            find_num=payload.find_num,
            total_cost=payload.total_cost,
            net_height=payload.net_height.value,
            friendliness_level=payload.friendliness_level.value if payload.friendliness_level else None,
            level=payload.level.value if payload.level else None,
            is_ac=payload.is_ac,
            notes=payload.notes,
            player_list=payload.player_list,
        )
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error creating event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating event")


@router.get("/api/events", response_model=List[EventResponse])
async def list_upcoming_events(session: AsyncSession = Depends(get_db_session)):
    """Events that have not started yet, soonest first."""
    try:
        return await event_service.list_upcoming(session)
    except Exception as e:
        logger.error(f"Error listing events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing events")


@router.get("/api/events/owned/closed", response_model=List[EventResponse])
async def list_owned_closed_events(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The current user's finished events, for leaving feedback."""
    try:
        return await event_service.list_owned_closed(session, user["id"])
    except Exception as e:
        logger.error(f"Error listing closed events for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing closed events")


@router.get("/api/events/approvals", response_model=List[PendingApprovalResponse])
async def list_pending_approvals(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The current user's events that have applicants waiting for a decision."""
    try:
        return await event_service.list_pending_approvals(session, user["id"])
    except Exception as e:
        logger.error(f"Error listing approvals for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing approvals")


@router.get("/api/events/{event_id}", response_model=EventDetailResponse)
async def get_event(event_id: int, session: AsyncSession = Depends(get_db_session)):
    """Event detail with player and applicant profiles."""
    try:
        return await event_service.get_event_detail(session, event_id)
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error fetching event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching event")


@router.post("/api/events/{event_id}/apply", response_model=ParticipationResponse)
async def apply_to_event(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Apply to join an event."""
    try:
        return await event_service.apply_to_event(session, event_id, user["id"])
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error applying to event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error applying to event")


@router.post("/api/events/{event_id}/applicants/{applicant_id}/approve", response_model=EventResponse)
async def approve_applicant(
    event_id: int,
    applicant_id: int,
    payload: Optional[ApproveRequest] = Body(None),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept an applicant. Fails with 409 if the capacity changed since the caller read it."""
    try:
        return await event_service.approve_applicant(
            session,
            event_id,
            applicant_id,
            actor_id=user["id"],
            expected_find_num=payload.expected_find_num if payload else None,
        )
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error approving user {applicant_id} for event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error approving applicant")


@router.post("/api/events/{event_id}/applicants/{applicant_id}/decline", response_model=EventResponse)
async def decline_applicant(
    event_id: int,
    applicant_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an applicant."""
    try:
        return await event_service.decline_applicant(
            session, event_id, applicant_id, actor_id=user["id"]
        )
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error declining user {applicant_id} for event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error declining applicant")
