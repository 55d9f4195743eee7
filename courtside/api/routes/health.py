"""Health check route."""

from fastapi import APIRouter

from courtside.services.change_feed import get_change_feed
from courtside.services.event_closer_service import get_event_closer_service

router = APIRouter()


@router.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {
        "status": "healthy",
        "message": "API is running",
        "event_closer_running": get_event_closer_service().is_running(),
        "live_subscriptions": get_change_feed().subscription_count(),
    }
