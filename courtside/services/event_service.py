"""
Event store: creation, listing, applications and organizer decisions.

Player and application lists are not stored on the event; they are derived
from the participation ledger (ACCEPT and PENDING rows respectively). Every
mutating workflow runs in one transaction and publishes to the change feed
after it commits.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import db
from courtside.database.models import (
    Event,
    EventStatus,
    NetHeight,
    ParticipationState,
    SkillLevel,
)
from courtside.services import change_feed
from courtside.services import court_service
from courtside.services import participation_service
from courtside.services import user_service
from courtside.utils.datetime_utils import (
    utcnow,
    ensure_utc,
    isoformat_utc,
    compute_event_window,
)

logger = logging.getLogger(__name__)


class EventNotFoundError(ValueError):
    """Raised when an event ID does not exist."""


class NotEventOrganizerError(ValueError):
    """Raised when someone other than the organizer acts on an event."""


class AlreadyAppliedError(ValueError):
    """Raised when a user applies while an application is still pending."""


class AlreadyMemberError(ValueError):
    """Raised when a confirmed player applies to the same event."""


class NotAnApplicantError(ValueError):
    """Raised when approving or declining a user with no pending application."""


class EventClosedError(ValueError):
    """Raised when applying to an event that is no longer on hold."""


class EventFullError(ValueError):
    """Raised when approving an applicant with no open slots left."""


class CapacityConflictError(ValueError):
    """Raised when find_num changed between the caller's read and the write."""


class UnknownUserError(ValueError):
    """Raised when an organizer or invitee ID does not exist."""


def compute_average_cost(total_cost: int, find_num: int, invited_count: int) -> int:
    """
    Per-head cost, counting open slots, invitees and the organizer.

    Rounds half up. Returns 0 when there is nobody to split the cost between.

    Examples:
        >>> compute_average_cost(600, 5, 1)
        86
    """
    divisor = find_num + invited_count + 1
    if divisor <= 0:
        return 0
    average = Decimal(total_cost) / Decimal(divisor)
    return int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _normalize_invitees(organizer_id: int, player_list: Optional[Sequence[int]]) -> List[int]:
    """Drop the organizer and duplicate IDs, keeping first-occurrence order."""
    invitees = []
    seen = {organizer_id}
    for user_id in player_list or []:
        if user_id in seen:
            continue
        seen.add(user_id)
        invitees.append(user_id)
    return invitees


def _optional_level(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return SkillLevel(value).value
    except ValueError:
        raise ValueError(f"Invalid {field} {value!r} (expected one of A-E)")


def format_event(event: Event, lists: Optional[Dict[str, List[int]]] = None) -> Dict:
    """
    Serialize an event together with its derived player/application lists.

    Args:
        event: Event ORM object
        lists: {"player_list": [...], "application_list": [...]} from the ledger
    """
    lists = lists or {"player_list": [], "application_list": []}
    return {
        "id": event.id,
        "court": {
            "id": event.court_id,
            "name": event.court_name,
            "address": event.court_address,
            "city": event.court_city,
            "is_indoor": event.court_is_indoor,
            "has_ac": event.court_has_ac,
        },
        "create_user_id": event.create_user_id,
        "date": event.date,
        "start_time": event.start_time,
        "duration_hours": event.duration_hours,
        "start_at": isoformat_utc(event.start_at),
        "end_at": isoformat_utc(event.end_at),
        "find_num": event.find_num,
        "total_cost": event.total_cost,
        "average_cost": event.average_cost,
        "net_height": event.net_height,
        "friendliness_level": event.friendliness_level,
        "level": event.level,
        "is_ac": event.is_ac,
        "notes": event.notes,
        "event_status": event.event_status,
        "player_list": list(lists["player_list"]),
        "application_list": list(lists["application_list"]),
        "created_at": isoformat_utc(event.created_at),
    }


async def _format_events(session: AsyncSession, events: Sequence[Event]) -> List[Dict]:
    lists = await participation_service.get_event_lists(session, [e.id for e in events])
    return [format_event(event, lists[event.id]) for event in events]


async def get_event_model(session: AsyncSession, event_id: int) -> Event:
    """
    Load an Event ORM object, refreshed from the database.

    Raises:
        EventNotFoundError: If the event does not exist
    """
    result = await session.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise EventNotFoundError(f"Event {event_id} not found")
    return event


async def get_event(session: AsyncSession, event_id: int) -> Dict:
    """Event dict with derived lists. Raises EventNotFoundError if missing."""
    event = await get_event_model(session, event_id)
    return (await _format_events(session, [event]))[0]


async def get_event_detail(session: AsyncSession, event_id: int) -> Dict:
    """
    Event dict plus resolved public profiles of its players and applicants.

    Returns:
        Event dict with extra "players" and "applicants" lists, in list order
    """
    event = await get_event(session, event_id)
    profiles = await user_service.get_users_by_ids(
        session, event["player_list"] + event["application_list"]
    )
    event["players"] = [
        profiles.get(user_id, {"id": user_id, "name": None, "img_url": None})
        for user_id in event["player_list"]
    ]
    event["applicants"] = [
        profiles.get(user_id, {"id": user_id, "name": None, "img_url": None})
        for user_id in event["application_list"]
    ]
    return event


async def create_event(
    session: AsyncSession,
    organizer_id: int,
    court_id: int,
    date: str,
    start_time: str,
    duration_hours: float,
    find_num: int,
    total_cost: int,
    net_height: str,
    friendliness_level: Optional[str] = None,
    level: Optional[str] = None,
    is_ac: Optional[bool] = None,
    notes: Optional[str] = None,
    player_list: Optional[Sequence[int]] = None,
) -> Dict:
    """
    Create an event and enroll its organizer and invitees as accepted players.

    The event row and every participation row are written in one
    transaction; any failure leaves nothing behind.

    Args:
        session: Database session
        organizer_id: Creating user
        court_id: Court the event is held at
        date: "YYYY-MM-DD" in the event timezone
        start_time: "HH:MM" in the event timezone
        duration_hours: Length in hours (fractions allowed)
        find_num: Open slots to fill through applications
        total_cost: Court rental total
        net_height: NetHeight value
        friendliness_level: Optional A-E
        level: Optional A-E
        is_ac: Air conditioning flag; defaults to the court's
        notes: Optional free text
        player_list: Pre-invited user IDs

    Returns:
        The created event dict

    Raises:
        CourtNotFoundError: If the court does not exist
        UnknownUserError: If the organizer or an invitee does not exist
        ValueError: If the date/time or an enum field is invalid
    """
    if find_num is None or find_num < 0:
        raise ValueError("find_num must be zero or greater")
    if total_cost is None or total_cost < 0:
        raise ValueError("total_cost must be zero or greater")
    try:
        net_height = NetHeight(net_height).value
    except ValueError:
        raise ValueError(f"Invalid net height {net_height!r}")
    friendliness_level = _optional_level(friendliness_level, "friendliness level")
    level = _optional_level(level, "level")
    start_at, end_at = compute_event_window(date, start_time, duration_hours)

    court = await court_service.get_court_model(session, court_id)
    invitees = _normalize_invitees(organizer_id, player_list)
    missing = await user_service.get_missing_user_ids(session, [organizer_id] + invitees)
    if missing:
        raise UnknownUserError(f"Unknown user IDs: {sorted(missing)}")

    try:
        event = Event(
            court_id=court.id,
            court_name=court.name,
            court_address=court.address,
            court_city=court.city,
            court_is_indoor=court.is_indoor,
            court_has_ac=court.has_ac,
            create_user_id=organizer_id,
            date=date,
            start_time=start_time,
            duration_hours=duration_hours,
            start_at=start_at,
            end_at=end_at,
            find_num=find_num,
            total_cost=total_cost,
            average_cost=compute_average_cost(total_cost, find_num, len(invitees)),
            net_height=net_height,
            friendliness_level=friendliness_level,
            level=level,
            is_ac=court.has_ac if is_ac is None else is_ac,
            notes=notes.strip() if notes and notes.strip() else None,
            event_status=EventStatus.HOLD.value,
        )
        session.add(event)
        await session.flush()

        # Organizer first, then invitees in the order given
        for user_id in [organizer_id] + invitees:
            await participation_service.upsert_participation(
                session,
                event_id=event.id,
                user_id=user_id,
                state=ParticipationState.ACCEPT.value,
                date=date,
                start_at=start_at,
                end_at=end_at,
                court_name=court.name,
            )
        event_id = event.id
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"Created event {event_id} at {court.name} on {date} {start_time} "
        f"by user {organizer_id} with {len(invitees)} invitee(s)"
    )
    await change_feed.publish_safely(change_feed.EVENTS, change_feed.PARTICIPATIONS)
    return await get_event(session, event_id)


async def list_upcoming(session: AsyncSession, now: Optional[datetime] = None) -> List[Dict]:
    """Events that have not started yet, soonest first."""
    now = now or utcnow()
    result = await session.execute(
        select(Event).where(Event.start_at >= now).order_by(Event.date, Event.start_at, Event.id)
    )
    return await _format_events(session, result.scalars().all())


async def listen_upcoming(on_change: Callable) -> change_feed.Unsubscribe:
    """
    Subscribe to the upcoming-events listing.

    The callback receives the full list immediately and after every change to
    events or the participation ledger.
    """

    async def load() -> List[Dict]:
        async with db.AsyncSessionLocal() as session:
            return await list_upcoming(session)

    return await change_feed.get_change_feed().subscribe(
        [change_feed.EVENTS, change_feed.PARTICIPATIONS], load, on_change
    )


async def list_owned_closed(
    session: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> List[Dict]:
    """Events the user organized that have already ended, most recent first."""
    now = now or utcnow()
    result = await session.execute(
        select(Event)
        .where(and_(Event.create_user_id == user_id, Event.end_at <= now))
        .order_by(Event.start_at.desc(), Event.id.desc())
    )
    return await _format_events(session, result.scalars().all())


async def list_pending_approvals(session: AsyncSession, organizer_id: int) -> List[Dict]:
    """
    The organizer's events that have pending applicants.

    Each event carries an "applicants" list with the applicant's public
    profile and reputation summary, in application order.
    """
    # Import here to avoid circular import
    from courtside.services import feedback_service

    result = await session.execute(
        select(Event)
        .where(Event.create_user_id == organizer_id)
        .order_by(Event.date, Event.start_at, Event.id)
    )
    events = [e for e in await _format_events(session, result.scalars().all()) if e["application_list"]]
    applicant_ids = [user_id for e in events for user_id in e["application_list"]]

    profiles = await user_service.get_users_by_ids(session, applicant_ids)
    reputations = await feedback_service.get_reputations(session, applicant_ids)
    for event in events:
        event["applicants"] = [
            {
                "user_id": user_id,
                "name": profiles.get(user_id, {}).get("name"),
                "img_url": profiles.get(user_id, {}).get("img_url"),
                "average_grade": reputations[user_id]["average_grade"],
                "feedback_count": reputations[user_id]["count"],
            }
            for user_id in event["application_list"]
        ]
    return events


async def listen_pending_approvals(organizer_id: int, on_change: Callable) -> change_feed.Unsubscribe:
    """Subscribe to an organizer's approval queue."""

    async def load() -> List[Dict]:
        async with db.AsyncSessionLocal() as session:
            return await list_pending_approvals(session, organizer_id)

    return await change_feed.get_change_feed().subscribe(
        [change_feed.EVENTS, change_feed.PARTICIPATIONS, change_feed.FEEDBACK], load, on_change
    )


async def apply_to_event(session: AsyncSession, event_id: int, user_id: int) -> Dict:
    """
    Apply to join an event. Leaves a PENDING ledger record.

    A previously declined user may apply again.

    Raises:
        EventNotFoundError: If the event does not exist
        EventClosedError: If the event is closed
        AlreadyMemberError: If the user is already a player
        AlreadyAppliedError: If the user already has a pending application
    """
    event = await get_event_model(session, event_id)
    if event.event_status != EventStatus.HOLD.value:
        raise EventClosedError(f"Event {event_id} is closed")

    existing = await participation_service.get_participation(session, event_id, user_id)
    if existing is not None and existing.state == ParticipationState.ACCEPT.value:
        raise AlreadyMemberError(f"User {user_id} is already a player in event {event_id}")
    if existing is not None and existing.state == ParticipationState.PENDING.value:
        raise AlreadyAppliedError(f"User {user_id} has already applied to event {event_id}")

    try:
        record = await participation_service.upsert_participation(
            session,
            event_id=event_id,
            user_id=user_id,
            state=ParticipationState.PENDING.value,
            date=event.date,
            start_at=event.start_at,
            end_at=event.end_at,
            court_name=event.court_name,
        )
        participation = participation_service.format_participation(record)
        await session.commit()
    except IntegrityError:
        # A concurrent apply inserted the same (event, user) row first
        await session.rollback()
        raise AlreadyAppliedError(f"User {user_id} has already applied to event {event_id}")

    logger.info(f"User {user_id} applied to event {event_id}")
    await change_feed.publish_safely(change_feed.EVENTS, change_feed.PARTICIPATIONS)
    return participation


async def _get_pending_applicant(session: AsyncSession, event: Event, applicant_id: int, actor_id: int):
    if event.create_user_id != actor_id:
        raise NotEventOrganizerError("Only the event organizer can review applications")
    record = await participation_service.get_participation(session, event.id, applicant_id)
    if record is None or record.state != ParticipationState.PENDING.value:
        raise NotAnApplicantError(f"User {applicant_id} has no pending application to event {event.id}")
    return record


async def approve_applicant(
    session: AsyncSession,
    event_id: int,
    applicant_id: int,
    actor_id: int,
    expected_find_num: Optional[int] = None,
) -> Dict:
    """
    Accept a pending applicant, taking one open slot.

    find_num is decremented with a conditional update against the value read
    in this transaction, so two concurrent approvals cannot both take the
    last slot. The ledger row moves only if it is still pending, so an approve
    racing a decline of the same applicant cannot take a slot for a declined user.

    Args:
        session: Database session
        event_id: Event ID
        applicant_id: User whose application is accepted
        actor_id: Acting user (must be the organizer)
        expected_find_num: find_num the caller last saw; a mismatch is a conflict

    Returns:
        The updated event dict

    Raises:
        EventNotFoundError: If the event does not exist
        NotEventOrganizerError: If actor_id is not the organizer
        NotAnApplicantError: If the applicant has no pending application
        CapacityConflictError: If find_num changed underneath the caller
        EventFullError: If no open slots remain
    """
    event = await get_event_model(session, event_id)
    await _get_pending_applicant(session, event, applicant_id, actor_id)

    current = event.find_num
    if expected_find_num is not None and expected_find_num != current:
        raise CapacityConflictError(
            f"Event {event_id} has {current} open slot(s), expected {expected_find_num}"
        )
    if current <= 0:
        raise EventFullError(f"Event {event_id} has no open slots")

    try:
        # Ledger first: if the application was settled concurrently nothing is written
        accepted = await participation_service.transition_state(
            session,
            event_id,
            applicant_id,
            ParticipationState.PENDING.value,
            ParticipationState.ACCEPT.value,
        )
        if not accepted:
            raise NotAnApplicantError(
                f"Application of user {applicant_id} to event {event_id} was already decided"
            )

        result = await session.execute(
            update(Event)
            .where(and_(Event.id == event_id, Event.find_num == current, Event.find_num > 0))
            .values(find_num=Event.find_num - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CapacityConflictError(f"Event {event_id} capacity changed during approval")

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Organizer {actor_id} approved user {applicant_id} for event {event_id}")
    await change_feed.publish_safely(change_feed.EVENTS, change_feed.PARTICIPATIONS)
    return await get_event(session, event_id)


async def decline_applicant(
    session: AsyncSession, event_id: int, applicant_id: int, actor_id: int
) -> Dict:
    """
    Decline a pending applicant. find_num and the player list are untouched.

    Raises:
        EventNotFoundError: If the event does not exist
        NotEventOrganizerError: If actor_id is not the organizer
        NotAnApplicantError: If the applicant has no pending application
    """
    event = await get_event_model(session, event_id)
    await _get_pending_applicant(session, event, applicant_id, actor_id)

    try:
        declined = await participation_service.transition_state(
            session,
            event_id,
            applicant_id,
            ParticipationState.PENDING.value,
            ParticipationState.DECLINE.value,
        )
        if not declined:
            raise NotAnApplicantError(
                f"Application of user {applicant_id} to event {event_id} was already decided"
            )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Organizer {actor_id} declined user {applicant_id} for event {event_id}")
    await change_feed.publish_safely(change_feed.EVENTS, change_feed.PARTICIPATIONS)
    return await get_event(session, event_id)


async def close_expired(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Close every held event whose end time has passed.

    Runs as a single UPDATE, so the batch is applied atomically. Running it
    again with no newly expired events closes nothing.

    Returns:
        Number of events closed
    """
    now = now or utcnow()
    result = await session.execute(
        update(Event)
        .where(and_(Event.end_at <= now, Event.event_status == EventStatus.HOLD.value))
        .values(event_status=EventStatus.CLOSED.value)
        .execution_options(synchronize_session=False)
    )
    closed = result.rowcount or 0
    await session.commit()

    if closed:
        logger.info(f"Closed {closed} expired event(s)")
        await change_feed.publish_safely(change_feed.EVENTS)
    else:
        logger.debug("No expired events to close")
    return closed


def has_ended(event: Event, now: Optional[datetime] = None) -> bool:
    return ensure_utc(event.end_at) <= ensure_utc(now or utcnow())
