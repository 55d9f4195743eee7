"""
Feedback store: post-event ratings written by an event's organizer.

One record per (event, rated user); resubmitting overwrites.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import FeedbackRecord, SkillLevel
from courtside.services import change_feed
from courtside.services import participation_service
from courtside.utils.constants import GRADE_MIN, GRADE_MAX
from courtside.utils.datetime_utils import isoformat_utc

logger = logging.getLogger(__name__)


class FeedbackNotFoundError(ValueError):
    """Raised when no feedback exists for an (event, user) pair."""


class InvalidGradeError(ValueError):
    """Raised when a grade is not an integer in the allowed range."""


class EventNotEndedError(ValueError):
    """Raised when feedback is submitted before the event is over."""


class NotAPlayerError(ValueError):
    """Raised when the rated user was not an accepted player of the event."""


def validate_grade(grade: Any) -> int:
    """
    Check that a grade is an integer between GRADE_MIN and GRADE_MAX.

    Integral floats (e.g. 70.0) are accepted and returned as int.

    Raises:
        InvalidGradeError: For booleans, strings, fractional or out-of-range values
    """
    if isinstance(grade, bool) or not isinstance(grade, (int, float)):
        raise InvalidGradeError(f"Grade must be an integer, got {grade!r}")
    if isinstance(grade, float):
        if not grade.is_integer():
            raise InvalidGradeError(f"Grade must be an integer, got {grade!r}")
        grade = int(grade)
    if grade < GRADE_MIN or grade > GRADE_MAX:
        raise InvalidGradeError(f"Grade must be between {GRADE_MIN} and {GRADE_MAX}, got {grade}")
    return grade


def _validate_level(value: Any, field: str) -> str:
    try:
        return SkillLevel(value).value
    except ValueError:
        raise ValueError(f"Invalid {field} {value!r} (expected one of A-E)")


def _grade_of(record: Any) -> Any:
    if isinstance(record, dict):
        return record.get("grade")
    return getattr(record, "grade", None)


def average_grade(records: Iterable[Any]) -> float:
    """
    Mean grade over feedback records.

    Records may be dicts or objects with a ``grade`` attribute. Missing and
    non-numeric grades are left out of both the sum and the count.

    Returns:
        The mean, or 0 when no record carries a usable grade

    Examples:
        >>> average_grade([])
        0
        >>> average_grade([{"grade": 80}, {"grade": "x"}])
        80.0
    """
    grades = []
    for record in records:
        grade = _grade_of(record)
        if isinstance(grade, bool) or not isinstance(grade, (int, float)):
            continue
        if math.isnan(grade):
            continue
        grades.append(grade)
    if not grades:
        return 0
    return sum(grades) / len(grades)


def format_feedback(record: FeedbackRecord) -> Dict:
    """Serialize a feedback record."""
    return {
        "id": record.record_key,
        "event_id": record.event_id,
        "user_id": record.user_id,
        "rater_user_id": record.rater_user_id,
        "court_name": record.court_name,
        "date": record.date,
        "start_at": isoformat_utc(record.start_at),
        "end_at": isoformat_utc(record.end_at),
        "friendliness_level": record.friendliness_level,
        "level": record.level,
        "grade": record.grade,
        "note": record.note,
        "updated_at": isoformat_utc(record.updated_at),
    }


async def _get_record(
    session: AsyncSession, event_id: int, user_id: int
) -> Optional[FeedbackRecord]:
    result = await session.execute(
        select(FeedbackRecord)
        .where(and_(FeedbackRecord.event_id == event_id, FeedbackRecord.user_id == user_id))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def submit_feedback(
    session: AsyncSession,
    event_id: int,
    user_id: int,
    rater_id: int,
    friendliness_level: str,
    level: str,
    grade: Any,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Write (or overwrite) the organizer's feedback for one player of an event.

    Args:
        session: Database session
        event_id: Event ID
        user_id: Rated user ID
        rater_id: Acting user ID (must be the event organizer)
        friendliness_level: A-E
        level: A-E
        grade: Integer 0-100
        note: Optional free text
        now: Override for the current time (tests)

    Returns:
        The stored feedback dict

    Raises:
        InvalidGradeError: If grade is not an integer in range
        EventNotFoundError: If the event does not exist
        NotEventOrganizerError: If rater_id did not create the event
        EventNotEndedError: If the event has not ended yet
        NotAPlayerError: If user_id was not an accepted player
    """
    # Import here to avoid circular import
    from courtside.services import event_service

    grade = validate_grade(grade)
    friendliness_level = _validate_level(friendliness_level, "friendliness level")
    level = _validate_level(level, "level")

    event = await event_service.get_event_model(session, event_id)
    if event.create_user_id != rater_id:
        raise event_service.NotEventOrganizerError("Only the event organizer can leave feedback")

    if not event_service.has_ended(event, now):
        raise EventNotEndedError("Feedback can only be given after the event has ended")

    if not await participation_service.is_accepted_member(session, event_id, user_id):
        raise NotAPlayerError(f"User {user_id} did not play in event {event_id}")

    record = await _get_record(session, event_id, user_id)
    if record is None:
        record = FeedbackRecord(event_id=event_id, user_id=user_id)
        session.add(record)

    record.rater_user_id = rater_id
    record.court_name = event.court_name
    record.date = event.date
    record.start_at = event.start_at
    record.end_at = event.end_at
    record.friendliness_level = friendliness_level
    record.level = level
    record.grade = grade
    record.note = note.strip() if note and note.strip() else None

    await session.commit()
    await session.refresh(record)
    logger.info(f"Feedback {record.record_key} saved by organizer {rater_id} (grade {grade})")

    await change_feed.publish_safely(change_feed.FEEDBACK)
    return format_feedback(record)


async def get_feedback(session: AsyncSession, event_id: int, user_id: int) -> Dict:
    """
    Get feedback for an (event, user) pair.

    Raises:
        FeedbackNotFoundError: If no feedback has been written
    """
    record = await _get_record(session, event_id, user_id)
    if record is None:
        raise FeedbackNotFoundError(f"No feedback for user {user_id} in event {event_id}")
    return format_feedback(record)


async def list_for_user(session: AsyncSession, user_id: int) -> List[Dict]:
    """All feedback a user has received, most recent event first."""
    result = await session.execute(
        select(FeedbackRecord)
        .where(FeedbackRecord.user_id == user_id)
        .order_by(FeedbackRecord.start_at.desc(), FeedbackRecord.id.desc())
    )
    return [format_feedback(record) for record in result.scalars().all()]


async def get_reputation(session: AsyncSession, user_id: int) -> Dict:
    """Average grade, feedback count and history for a user."""
    history = await list_for_user(session, user_id)
    return {
        "user_id": user_id,
        "average_grade": average_grade(history),
        "count": len(history),
        "history": history,
    }


async def get_reputations(session: AsyncSession, user_ids: Iterable[int]) -> Dict[int, Dict]:
    """
    Batch reputation summary (without history) for several users.

    Returns:
        Dict mapping user_id to {"average_grade", "count"}; users without
        feedback get average 0 and count 0
    """
    user_ids = list(set(user_ids))
    summaries = {user_id: {"average_grade": 0, "count": 0} for user_id in user_ids}
    if not user_ids:
        return summaries

    result = await session.execute(
        select(FeedbackRecord.user_id, FeedbackRecord.grade).where(
            FeedbackRecord.user_id.in_(user_ids)
        )
    )
    grouped: Dict[int, List[Dict]] = {}
    for row in result.all():
        grouped.setdefault(row.user_id, []).append({"grade": row.grade})
    for user_id, records in grouped.items():
        summaries[user_id] = {"average_grade": average_grade(records), "count": len(records)}
    return summaries
