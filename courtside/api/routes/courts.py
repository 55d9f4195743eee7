"""Court directory route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import service_error_response
from courtside.database.db import get_db_session
from courtside.services import court_service
from courtside.models.schemas import CourtResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/courts/cities", response_model=List[str])
async def list_cities(session: AsyncSession = Depends(get_db_session)):
    """Cities with at least one court."""
    try:
        return await court_service.list_cities(session)
    except Exception as e:
        logger.error(f"Error listing cities: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing cities")


@router.get("/api/courts", response_model=List[CourtResponse])
async def list_courts(
    city: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_db_session),
):
    """Courts, optionally filtered by city."""
    try:
        return await court_service.list_courts(session, city)
    except Exception as e:
        logger.error(f"Error listing courts: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing courts")


@router.get("/api/courts/{court_id}", response_model=CourtResponse)
async def get_court(court_id: int, session: AsyncSession = Depends(get_db_session)):
    """Court detail."""
    try:
        return await court_service.get_court(session, court_id)
    except ValueError as e:
        raise service_error_response(e)
    except Exception as e:
        logger.error(f"Error fetching court {court_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching court")
