"""
Court directory service: courts grouped by city.

Events reference a court by ID and copy its display fields at creation.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Court

logger = logging.getLogger(__name__)


class CourtNotFoundError(ValueError):
    """Raised when a court ID does not exist."""


def _court_to_dict(court: Court) -> Dict:
    return {
        "id": court.id,
        "name": court.name,
        "city": court.city,
        "address": court.address,
        "is_indoor": court.is_indoor,
        "has_ac": court.has_ac,
    }


async def list_cities(session: AsyncSession) -> List[str]:
    """Distinct cities that have at least one court, alphabetically."""
    result = await session.execute(select(Court.city).distinct().order_by(Court.city))
    return list(result.scalars().all())


async def list_courts(session: AsyncSession, city: Optional[str] = None) -> List[Dict]:
    """
    List courts, optionally restricted to one city.

    Args:
        session: Database session
        city: Optional city name (exact match)

    Returns:
        List of court dicts ordered by city then name
    """
    query = select(Court)
    if city:
        query = query.where(Court.city == city.strip())
    query = query.order_by(Court.city, Court.name)
    result = await session.execute(query)
    return [_court_to_dict(court) for court in result.scalars().all()]


async def get_court_model(session: AsyncSession, court_id: int) -> Court:
    """
    Load a Court ORM object.

    Raises:
        CourtNotFoundError: If the court does not exist
    """
    result = await session.execute(select(Court).where(Court.id == court_id))
    court = result.scalar_one_or_none()
    if court is None:
        raise CourtNotFoundError(f"Court {court_id} not found")
    return court


async def get_court(session: AsyncSession, court_id: int) -> Dict:
    """Court detail dict. Raises CourtNotFoundError if missing."""
    return _court_to_dict(await get_court_model(session, court_id))


async def create_court(
    session: AsyncSession,
    name: str,
    city: str,
    address: Optional[str] = None,
    is_indoor: bool = False,
    has_ac: bool = False,
) -> Dict:
    """
    Create a court.

    Raises:
        ValueError: If name or city is empty
    """
    name = (name or "").strip()
    city = (city or "").strip()
    if not name or not city:
        raise ValueError("Court name and city are required")

    court = Court(
        name=name,
        city=city,
        address=address.strip() if address else None,
        is_indoor=is_indoor,
        has_ac=has_ac,
    )
    session.add(court)
    await session.commit()
    await session.refresh(court)

    logger.info(f"Created court {court.id} ({court.name}, {court.city})")
    return _court_to_dict(court)
