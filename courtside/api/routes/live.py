"""
Live listing WebSocket handlers.

Each connection registers one change-feed subscription. The client receives
a JSON message {"type": "snapshot", "data": [...]} with the full result set
on connect and after every relevant change. The subscription is cancelled
when the socket closes.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from courtside.database import db
from courtside.database.models import ParticipationState
from courtside.api.auth_dependencies import get_user_from_token
from courtside.services import event_service, participation_service
from courtside.services.change_feed import Unsubscribe

logger = logging.getLogger(__name__)
router = APIRouter()

# Seconds without client traffic before the server pings
WEBSOCKET_TIMEOUT_SECONDS = 30


async def _authenticate(websocket: WebSocket) -> Optional[int]:
    """Resolve the ?token= query parameter, closing the socket on failure."""
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008, reason="Missing authentication token")
        return None

    async with db.AsyncSessionLocal() as session:
        user = await get_user_from_token(session, token)
    if user is None:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return None
    return user["id"]


async def _serve_subscription(
    websocket: WebSocket,
    label: str,
    subscribe: Callable[[Callable], Awaitable[Unsubscribe]],
) -> None:
    """Stream snapshots to the socket until it disconnects, then unsubscribe."""

    async def send_snapshot(data) -> None:
        await websocket.send_json({"type": "snapshot", "data": data})

    unsubscribe = await subscribe(send_snapshot)
    logger.info(f"Live subscription opened: {label}")
    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS
                )
                # Handle ping messages (client sends "ping", server responds "pong")
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                try:
                    await websocket.send_text("ping")
                except Exception:
                    break
    except WebSocketDisconnect:
        logger.info(f"Live subscription disconnected: {label}")
    except Exception as e:
        logger.error(f"WebSocket error on {label}: {e}")
    finally:
        unsubscribe()


@router.websocket("/api/ws/events")
async def websocket_upcoming_events(websocket: WebSocket):
    """Live upcoming-events listing. No authentication required."""
    await websocket.accept()
    await _serve_subscription(websocket, "upcoming events", event_service.listen_upcoming)


@router.websocket("/api/ws/participations")
async def websocket_participations(websocket: WebSocket):
    """
    Live participation records for the current user.

    Requires JWT token in query parameter: ?token=<jwt_token>
    Optional ?state=pending|accept|decline filter.
    """
    await websocket.accept()
    user_id = await _authenticate(websocket)
    if user_id is None:
        return

    state = websocket.query_params.get("state")
    if state is not None and state not in {s.value for s in ParticipationState}:
        await websocket.close(code=1008, reason="Invalid state filter")
        return

    async def subscribe(on_change):
        return await participation_service.listen_for_user(user_id, on_change, state=state)

    await _serve_subscription(websocket, f"participations of user {user_id}", subscribe)


@router.websocket("/api/ws/approvals")
async def websocket_approvals(websocket: WebSocket):
    """
    Live approval queue for the current user's events.

    Requires JWT token in query parameter: ?token=<jwt_token>
    """
    await websocket.accept()
    user_id = await _authenticate(websocket)
    if user_id is None:
        return

    async def subscribe(on_change):
        return await event_service.listen_pending_approvals(user_id, on_change)

    await _serve_subscription(websocket, f"approvals of user {user_id}", subscribe)
