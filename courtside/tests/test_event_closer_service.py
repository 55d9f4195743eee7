"""
Tests for the event closer (hold -> closed once an event has ended).
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from courtside.database.models import User, Event, EventStatus
from courtside.services.event_closer_service import EventCloserService, POLL_INTERVAL_SECONDS
from courtside.services import change_feed
from courtside.utils.datetime_utils import utcnow


@pytest_asyncio.fixture
async def events(db_session):
    """One ended event, one ending in the future, one already closed."""
    organizer = User(email="olivia@example.com", password_hash="hash")
    db_session.add(organizer)
    await db_session.flush()

    now = utcnow()

    def _event(end_at, status=EventStatus.HOLD.value):
        return Event(
            court_name="Banqiao Sports Center",
            create_user_id=organizer.id,
            date=(end_at - timedelta(hours=2)).strftime("%Y-%m-%d"),
            start_time="10:00",
            duration_hours=2,
            start_at=end_at - timedelta(hours=2),
            end_at=end_at,
            find_num=3,
            total_cost=300,
            net_height="men",
            event_status=status,
        )

    ended = _event(now - timedelta(minutes=5))
    upcoming = _event(now + timedelta(days=1))
    closed = _event(now - timedelta(days=3), EventStatus.CLOSED.value)
    db_session.add_all([ended, upcoming, closed])
    await db_session.commit()
    return {"ended": ended.id, "upcoming": upcoming.id, "closed": closed.id}


async def _status(db_session, event_id):
    result = await db_session.execute(
        select(Event.event_status).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_run_once_closes_ended_events(db_session, events):
    closer = EventCloserService(interval_seconds=60)

    assert await closer.run_once() == 1
    assert await _status(db_session, events["ended"]) == "closed"
    assert await _status(db_session, events["upcoming"]) == "hold"
    assert await _status(db_session, events["closed"]) == "closed"


@pytest.mark.asyncio
async def test_run_once_is_idempotent(db_session, events):
    closer = EventCloserService(interval_seconds=60)

    assert await closer.run_once() == 1
    assert await closer.run_once() == 0


@pytest.mark.asyncio
async def test_closing_publishes_event_change(db_session, events, fresh_change_feed):
    snapshots = []

    async def load():
        return "reloaded"

    async def on_change(result):
        snapshots.append(result)

    await fresh_change_feed.subscribe([change_feed.EVENTS], load, on_change, deliver_initial=False)

    await EventCloserService(interval_seconds=60).run_once()
    assert snapshots == ["reloaded"]

    # Nothing left to close, nothing published
    await EventCloserService(interval_seconds=60).run_once()
    assert snapshots == ["reloaded"]


@pytest.mark.asyncio
async def test_worker_start_and_stop(db_session, events):
    closer = EventCloserService(interval_seconds=3600)
    closer.start()
    assert closer.is_running()

    # First sweep runs immediately on start
    for _ in range(50):
        if await _status(db_session, events["ended"]) == "closed":
            break
        await asyncio.sleep(0.02)
    assert await _status(db_session, events["ended"]) == "closed"

    closer.stop()
    await asyncio.sleep(0)
    assert closer._stop_event.is_set()


def test_explicit_zero_interval_is_kept():
    assert EventCloserService(interval_seconds=0).interval_seconds == 0
    assert EventCloserService().interval_seconds == POLL_INTERVAL_SECONDS
