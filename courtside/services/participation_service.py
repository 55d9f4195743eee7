"""
Participation ledger: one record per (event, user).

The ledger is the single source for an event's player list (ACCEPT rows)
and application list (PENDING rows), and the per-user view used by the
personal calendar and chat-room eligibility.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import db
from courtside.database.models import ParticipationRecord, ParticipationState
from courtside.services import change_feed
from courtside.utils.datetime_utils import utcnow, isoformat_utc

logger = logging.getLogger(__name__)


class ParticipationNotFoundError(ValueError):
    """Raised when no ledger record exists for an (event, user) pair."""


def record_key(event_id: int, user_id: int) -> str:
    """Composite identifier of a ledger record."""
    return f"{event_id}_{user_id}"


def _validate_state(state: str) -> str:
    try:
        return ParticipationState(state).value
    except ValueError:
        allowed = ", ".join(s.value for s in ParticipationState)
        raise ValueError(f"Invalid participation state {state!r} (expected one of: {allowed})")


def format_participation(record: ParticipationRecord) -> Dict:
    """Serialize a ledger record."""
    return {
        "id": record.record_key,
        "event_id": record.event_id,
        "user_id": record.user_id,
        "state": record.state,
        "date": record.date,
        "start_at": isoformat_utc(record.start_at),
        "end_at": isoformat_utc(record.end_at),
        "court_name": record.court_name,
    }


async def get_participation(
    session: AsyncSession, event_id: int, user_id: int
) -> Optional[ParticipationRecord]:
    """
    Get the ledger record for an (event, user) pair.

    Args:
        session: Database session
        event_id: Event ID
        user_id: User ID

    Returns:
        ParticipationRecord or None
    """
    result = await session.execute(
        select(ParticipationRecord)
        .where(
            and_(
                ParticipationRecord.event_id == event_id,
                ParticipationRecord.user_id == user_id,
            )
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_participation(
    session: AsyncSession,
    event_id: int,
    user_id: int,
    state: str,
    date: str,
    start_at: datetime,
    end_at: datetime,
    court_name: str,
) -> ParticipationRecord:
    """
    Write the ledger record for an (event, user) pair, overwriting any existing one.

    Only flushes; the calling workflow owns the transaction.

    Args:
        session: Database session
        event_id: Event ID
        user_id: User ID
        state: ParticipationState value
        date: Event calendar date
        start_at: Event start timestamp
        end_at: Event end timestamp
        court_name: Court name at the time of writing

    Returns:
        The written ParticipationRecord

    Raises:
        ValueError: If state is not a ParticipationState value
    """
    state = _validate_state(state)
    record = await get_participation(session, event_id, user_id)

    if record is None:
        record = ParticipationRecord(event_id=event_id, user_id=user_id)
        session.add(record)

    if record.state != state:
        record.state_changed_at = utcnow()
    record.state = state
    record.date = date
    record.start_at = start_at
    record.end_at = end_at
    record.court_name = court_name

    await session.flush()
    return record


async def set_state(
    session: AsyncSession, event_id: int, user_id: int, state: str
) -> ParticipationRecord:
    """
    Change the state of an existing ledger record. Only flushes.

    Raises:
        ParticipationNotFoundError: If no record exists
        ValueError: If state is not a ParticipationState value
    """
    state = _validate_state(state)
    record = await get_participation(session, event_id, user_id)
    if record is None:
        raise ParticipationNotFoundError(
            f"No participation record {record_key(event_id, user_id)}"
        )
    if record.state != state:
        record.state = state
        record.state_changed_at = utcnow()
        await session.flush()
    return record


async def transition_state(
    session: AsyncSession, event_id: int, user_id: int, from_state: str, to_state: str
) -> bool:
    """
    Move a ledger record from one state to another, only if it is still in from_state.

    Runs as a single conditional UPDATE, so a concurrent decision on the same
    record makes this one a no-op instead of overwriting it. Does not commit.

    Returns:
        True if the record was in from_state and now holds to_state
    """
    from_state = _validate_state(from_state)
    to_state = _validate_state(to_state)
    result = await session.execute(
        update(ParticipationRecord)
        .where(
            and_(
                ParticipationRecord.event_id == event_id,
                ParticipationRecord.user_id == user_id,
                ParticipationRecord.state == from_state,
            )
        )
        .values(state=to_state, state_changed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def is_accepted_member(session: AsyncSession, event_id: int, user_id: int) -> bool:
    """True if the user is a confirmed player of the event (chat-room eligible)."""
    record = await get_participation(session, event_id, user_id)
    return record is not None and record.state == ParticipationState.ACCEPT.value


async def get_event_lists(session: AsyncSession, event_ids: Iterable[int]) -> Dict[int, Dict[str, List[int]]]:
    """
    Derive player and application lists for a batch of events.

    Args:
        session: Database session
        event_ids: Event IDs to resolve

    Returns:
        Dict mapping event_id to {"player_list": [...], "application_list": [...]},
        each list in the order users entered that state
    """
    event_ids = list(event_ids)
    lists = {event_id: {"player_list": [], "application_list": []} for event_id in event_ids}
    if not event_ids:
        return lists

    result = await session.execute(
        select(
            ParticipationRecord.event_id,
            ParticipationRecord.user_id,
            ParticipationRecord.state,
        )
        .where(
            and_(
                ParticipationRecord.event_id.in_(event_ids),
                ParticipationRecord.state.in_(
                    [ParticipationState.ACCEPT.value, ParticipationState.PENDING.value]
                ),
            )
        )
        .order_by(ParticipationRecord.state_changed_at, ParticipationRecord.id)
    )
    for row in result.all():
        key = "player_list" if row.state == ParticipationState.ACCEPT.value else "application_list"
        lists[row.event_id][key].append(row.user_id)
    return lists


async def list_for_user(
    session: AsyncSession, user_id: int, state: Optional[str] = None
) -> List[Dict]:
    """
    Get every ledger record for a user, ordered by event start.

    Args:
        session: Database session
        user_id: User ID
        state: Optional ParticipationState value to filter on

    Returns:
        List of participation dicts
    """
    query = select(ParticipationRecord).where(ParticipationRecord.user_id == user_id)
    if state is not None:
        query = query.where(ParticipationRecord.state == _validate_state(state))
    query = query.order_by(ParticipationRecord.start_at, ParticipationRecord.id)

    result = await session.execute(query)
    return [format_participation(record) for record in result.scalars().all()]


async def list_chat_rooms(session: AsyncSession, user_id: int) -> List[Dict]:
    """Events whose group chat the user may join: accepted participations only."""
    return await list_for_user(session, user_id, ParticipationState.ACCEPT.value)


async def listen_for_user(
    user_id: int,
    on_change: Callable,
    state: Optional[str] = None,
    predicate: Optional[Callable[[Dict], bool]] = None,
) -> change_feed.Unsubscribe:
    """
    Subscribe to a user's ledger records.

    The callback receives the full filtered list once immediately and again
    after every ledger change.

    Args:
        user_id: User ID
        on_change: Coroutine function receiving the list of participation dicts
        state: Optional ParticipationState value to filter on
        predicate: Optional extra filter applied to each participation dict

    Returns:
        Unsubscribe callable
    """
    if state is not None:
        state = _validate_state(state)

    async def load() -> List[Dict]:
        async with db.AsyncSessionLocal() as session:
            records = await list_for_user(session, user_id, state)
        if predicate is not None:
            records = [record for record in records if predicate(record)]
        return records

    return await change_feed.get_change_feed().subscribe(
        [change_feed.PARTICIPATIONS], load, on_change
    )
