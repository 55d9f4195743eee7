"""
Unit tests for event service.

Tests event creation, applications, organizer approval/decline, listings
and the capacity guard on approval.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, func

from courtside.database import db
from courtside.services import event_service, participation_service
from courtside.services.court_service import CourtNotFoundError
from courtside.database.models import User, Court, Event, ParticipationRecord, FeedbackRecord
from courtside.utils.datetime_utils import local_today, ensure_utc


async def _create_user(db_session, email, name):
    """Helper: create a user directly, return user_id."""
    user = User(email=email, password_hash="hash", name=name)
    db_session.add(user)
    await db_session.flush()
    return user.id


async def _create_court(db_session, name="Da'an Sports Center", city="Taipei", has_ac=True):
    court = Court(name=name, city=city, address="No. 55, Xinyi Rd.", is_indoor=True, has_ac=has_ac)
    db_session.add(court)
    await db_session.flush()
    return court.id


def _future_date(days=3):
    return (local_today() + timedelta(days=days)).isoformat()


@pytest_asyncio.fixture
async def people(db_session):
    """Create an organizer, an invitee and two would-be applicants, plus a court."""
    ids = {
        "organizer": await _create_user(db_session, "olivia@example.com", "Olivia"),
        "invitee": await _create_user(db_session, "pete@example.com", "Pete"),
        "alice": await _create_user(db_session, "alice@example.com", "Alice"),
        "bob": await _create_user(db_session, "bob@example.com", "Bob"),
        "court": await _create_court(db_session),
    }
    await db_session.commit()
    return ids


async def _hold_event(db_session, people, **overrides):
    params = dict(
        organizer_id=people["organizer"],
        court_id=people["court"],
        date=_future_date(),
        start_time="19:00",
        duration_hours=2,
        find_num=5,
        total_cost=600,
        net_height="women",
        friendliness_level="B",
        level="C",
        player_list=[],
    )
    params.update(overrides)
    return await event_service.create_event(db_session, **params)


async def _count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar()


# ──────────────────────────────────────────────────────────────
# Average cost
# ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "total_cost, find_num, invited, expected",
    [
        (600, 5, 1, 86),  # 600 / 7 = 85.7
        (1000, 3, 0, 250),
        (5, 1, 0, 3),  # 2.5 rounds half up
        (0, 4, 2, 0),
    ],
)
def test_compute_average_cost(total_cost, find_num, invited, expected):
    assert event_service.compute_average_cost(total_cost, find_num, invited) == expected


def test_compute_average_cost_zero_divisor():
    """Nobody to split the cost between gives 0 rather than dividing by zero."""
    assert event_service.compute_average_cost(600, -1, 0) == 0


# ──────────────────────────────────────────────────────────────
# Create
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_event_scenario(db_session, people):
    """Organizer plus one invitee: cost split seven ways, both enrolled as accepted."""
    event = await _hold_event(
        db_session,
        people,
        date="2024-01-01",
        start_time="14:00",
        player_list=[people["invitee"]],
    )

    assert event["average_cost"] == 86
    assert event["player_list"] == [people["organizer"], people["invitee"]]
    assert event["application_list"] == []
    assert event["find_num"] == 5
    assert event["event_status"] == "hold"
    assert event["court"]["name"] == "Da'an Sports Center"

    for user_id in (people["organizer"], people["invitee"]):
        record = await participation_service.get_participation(db_session, event["id"], user_id)
        assert record is not None
        assert record.state == "accept"
        assert record.date == "2024-01-01"

    stored = await event_service.get_event_model(db_session, event["id"])
    assert ensure_utc(stored.end_at) - ensure_utc(stored.start_at) == timedelta(hours=2)


@pytest.mark.asyncio
async def test_create_event_fractional_duration(db_session, people):
    event = await _hold_event(db_session, people, duration_hours=1.5)
    stored = await event_service.get_event_model(db_session, event["id"])
    assert ensure_utc(stored.end_at) - ensure_utc(stored.start_at) == timedelta(minutes=90)


@pytest.mark.asyncio
async def test_create_event_dedupes_invitees(db_session, people):
    """The organizer is never double-counted and repeated invitees collapse."""
    event = await _hold_event(
        db_session,
        people,
        player_list=[people["invitee"], people["organizer"], people["invitee"], people["alice"]],
    )
    assert event["player_list"] == [people["organizer"], people["invitee"], people["alice"]]
    # 600 / (5 + 2 + 1)
    assert event["average_cost"] == 75
    assert await _count(db_session, ParticipationRecord) == 3


@pytest.mark.asyncio
async def test_create_event_defaults_ac_from_court(db_session, people):
    event = await _hold_event(db_session, people)
    assert event["is_ac"] is True

    event = await _hold_event(db_session, people, is_ac=False)
    assert event["is_ac"] is False


@pytest.mark.asyncio
async def test_create_event_unknown_court_writes_nothing(db_session, people):
    with pytest.raises(CourtNotFoundError):
        await _hold_event(db_session, people, court_id=9999, player_list=[people["invitee"]])

    assert await _count(db_session, Event) == 0
    assert await _count(db_session, ParticipationRecord) == 0


@pytest.mark.asyncio
async def test_create_event_unknown_invitee_writes_nothing(db_session, people):
    with pytest.raises(event_service.UnknownUserError):
        await _hold_event(db_session, people, player_list=[people["invitee"], 424242])

    assert await _count(db_session, Event) == 0
    assert await _count(db_session, ParticipationRecord) == 0


@pytest.mark.asyncio
async def test_create_event_rejects_bad_fields(db_session, people):
    with pytest.raises(ValueError, match="net height"):
        await _hold_event(db_session, people, net_height="kids")
    with pytest.raises(ValueError, match="level"):
        await _hold_event(db_session, people, level="Z")
    with pytest.raises(ValueError, match="Invalid event date/time"):
        await _hold_event(db_session, people, start_time="7pm")
    assert await _count(db_session, Event) == 0


@pytest.mark.asyncio
async def test_get_event_not_found(db_session, people):
    with pytest.raises(event_service.EventNotFoundError):
        await event_service.get_event(db_session, 12345)


@pytest.mark.asyncio
async def test_get_event_detail_resolves_names(db_session, people):
    event = await _hold_event(db_session, people, player_list=[people["invitee"]])
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    detail = await event_service.get_event_detail(db_session, event["id"])
    assert [p["name"] for p in detail["players"]] == ["Olivia", "Pete"]
    assert [p["name"] for p in detail["applicants"]] == ["Alice"]


# ──────────────────────────────────────────────────────────────
# Apply
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_apply_to_event(db_session, people):
    event = await _hold_event(db_session, people)

    participation = await event_service.apply_to_event(db_session, event["id"], people["alice"])
    assert participation["state"] == "pending"
    assert participation["id"] == f"{event['id']}_{people['alice']}"

    event = await event_service.get_event(db_session, event["id"])
    assert event["application_list"] == [people["alice"]]
    assert people["alice"] not in event["player_list"]


@pytest.mark.asyncio
async def test_apply_twice_rejected(db_session, people):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    with pytest.raises(event_service.AlreadyAppliedError):
        await event_service.apply_to_event(db_session, event["id"], people["alice"])

    event = await event_service.get_event(db_session, event["id"])
    assert event["application_list"] == [people["alice"]]


@pytest.mark.asyncio
async def test_member_cannot_apply(db_session, people):
    event = await _hold_event(db_session, people, player_list=[people["invitee"]])

    with pytest.raises(event_service.AlreadyMemberError):
        await event_service.apply_to_event(db_session, event["id"], people["invitee"])
    with pytest.raises(event_service.AlreadyMemberError):
        await event_service.apply_to_event(db_session, event["id"], people["organizer"])


@pytest.mark.asyncio
async def test_cannot_apply_to_closed_event(db_session, people):
    event = await _hold_event(db_session, people, date="2024-01-01")
    await event_service.close_expired(db_session)

    with pytest.raises(event_service.EventClosedError):
        await event_service.apply_to_event(db_session, event["id"], people["alice"])


@pytest.mark.asyncio
async def test_apply_to_missing_event(db_session, people):
    with pytest.raises(event_service.EventNotFoundError):
        await event_service.apply_to_event(db_session, 999, people["alice"])


# ──────────────────────────────────────────────────────────────
# Approve / Decline
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_approve_applicant(db_session, people):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    updated = await event_service.approve_applicant(
        db_session, event["id"], people["alice"], actor_id=people["organizer"], expected_find_num=5
    )

    assert updated["application_list"] == []
    assert updated["player_list"] == [people["organizer"], people["alice"]]
    assert updated["find_num"] == 4
    record = await participation_service.get_participation(db_session, event["id"], people["alice"])
    assert record.state == "accept"


@pytest.mark.asyncio
async def test_approve_keeps_application_order(db_session, people):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])
    await event_service.apply_to_event(db_session, event["id"], people["bob"])

    updated = await event_service.approve_applicant(
        db_session, event["id"], people["bob"], actor_id=people["organizer"]
    )
    assert updated["application_list"] == [people["alice"]]
    assert updated["player_list"] == [people["organizer"], people["bob"]]


@pytest.mark.asyncio
async def test_approve_with_stale_find_num_conflicts(db_session, people):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    with pytest.raises(event_service.CapacityConflictError):
        await event_service.approve_applicant(
            db_session, event["id"], people["alice"], actor_id=people["organizer"], expected_find_num=3
        )

    event = await event_service.get_event(db_session, event["id"])
    assert event["find_num"] == 5
    assert event["application_list"] == [people["alice"]]
    record = await participation_service.get_participation(db_session, event["id"], people["alice"])
    assert record.state == "pending"


@pytest.mark.asyncio
async def test_approve_when_full_rejected(db_session, people):
    event = await _hold_event(db_session, people, find_num=1)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])
    await event_service.apply_to_event(db_session, event["id"], people["bob"])
    await event_service.approve_applicant(
        db_session, event["id"], people["alice"], actor_id=people["organizer"]
    )

    with pytest.raises(event_service.EventFullError):
        await event_service.approve_applicant(
            db_session, event["id"], people["bob"], actor_id=people["organizer"]
        )

    event = await event_service.get_event(db_session, event["id"])
    assert event["find_num"] == 0
    assert event["application_list"] == [people["bob"]]


@pytest.mark.asyncio
async def test_only_organizer_can_approve(db_session, people):
    event = await _hold_event(db_session, people, player_list=[people["invitee"]])
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    with pytest.raises(event_service.NotEventOrganizerError):
        await event_service.approve_applicant(
            db_session, event["id"], people["alice"], actor_id=people["invitee"]
        )
    with pytest.raises(event_service.NotEventOrganizerError):
        await event_service.decline_applicant(
            db_session, event["id"], people["alice"], actor_id=people["invitee"]
        )


@pytest.mark.asyncio
async def test_approve_requires_pending_application(db_session, people):
    event = await _hold_event(db_session, people)

    with pytest.raises(event_service.NotAnApplicantError):
        await event_service.approve_applicant(
            db_session, event["id"], people["bob"], actor_id=people["organizer"]
        )


@pytest.mark.asyncio
async def test_decline_applicant(db_session, people):
    event = await _hold_event(db_session, people, player_list=[people["invitee"]])
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    updated = await event_service.decline_applicant(
        db_session, event["id"], people["alice"], actor_id=people["organizer"]
    )

    assert updated["application_list"] == []
    assert updated["player_list"] == [people["organizer"], people["invitee"]]
    assert updated["find_num"] == 5
    record = await participation_service.get_participation(db_session, event["id"], people["alice"])
    assert record.state == "decline"


@pytest.mark.asyncio
async def test_declined_user_can_reapply(db_session, people):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])
    await event_service.decline_applicant(
        db_session, event["id"], people["alice"], actor_id=people["organizer"]
    )

    participation = await event_service.apply_to_event(db_session, event["id"], people["alice"])
    assert participation["state"] == "pending"
    assert await _count(db_session, ParticipationRecord) == 2


@pytest.mark.asyncio
async def test_user_never_in_both_lists(db_session, people):
    """Through a mixed sequence of actions the two lists stay disjoint and duplicate-free."""
    event = await _hold_event(db_session, people, player_list=[people["invitee"]])
    event_id = event["id"]

    await event_service.apply_to_event(db_session, event_id, people["alice"])
    await event_service.apply_to_event(db_session, event_id, people["bob"])
    await event_service.approve_applicant(db_session, event_id, people["alice"], actor_id=people["organizer"])
    await event_service.decline_applicant(db_session, event_id, people["bob"], actor_id=people["organizer"])
    await event_service.apply_to_event(db_session, event_id, people["bob"])
    with pytest.raises(event_service.AlreadyMemberError):
        await event_service.apply_to_event(db_session, event_id, people["alice"])

    event = await event_service.get_event(db_session, event_id)
    players = event["player_list"]
    applicants = event["application_list"]
    assert len(players) == len(set(players))
    assert len(applicants) == len(set(applicants))
    assert not set(players) & set(applicants)
    assert applicants == [people["bob"]]


def _settle_concurrently_once(monkeypatch, settle):
    """
    Patch the ledger transition so that, the first time it runs, `settle`
    commits a competing decision in a separate session beforehand.
    """
    original = participation_service.transition_state
    state = {"raced": False}

    async def racing_transition(session, *args, **kwargs):
        if not state["raced"]:
            state["raced"] = True
            async with db.AsyncSessionLocal() as other_session:
                await settle(other_session)
        return await original(session, *args, **kwargs)

    monkeypatch.setattr(participation_service, "transition_state", racing_transition)


@pytest.mark.asyncio
async def test_decline_after_concurrent_approve_writes_nothing(db_session, people, monkeypatch):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    async def approve(other_session):
        await event_service.approve_applicant(
            other_session, event["id"], people["alice"], actor_id=people["organizer"]
        )

    _settle_concurrently_once(monkeypatch, approve)

    with pytest.raises(event_service.NotAnApplicantError):
        await event_service.decline_applicant(
            db_session, event["id"], people["alice"], actor_id=people["organizer"]
        )

    # The approval stands: the slot taken belongs to a player
    event = await event_service.get_event(db_session, event["id"])
    assert event["find_num"] == 4
    assert event["player_list"] == [people["organizer"], people["alice"]]
    assert event["application_list"] == []
    record = await participation_service.get_participation(db_session, event["id"], people["alice"])
    assert record.state == "accept"


@pytest.mark.asyncio
async def test_approve_after_concurrent_decline_takes_no_slot(db_session, people, monkeypatch):
    event = await _hold_event(db_session, people)
    await event_service.apply_to_event(db_session, event["id"], people["alice"])

    async def decline(other_session):
        await event_service.decline_applicant(
            other_session, event["id"], people["alice"], actor_id=people["organizer"]
        )

    _settle_concurrently_once(monkeypatch, decline)

    with pytest.raises(event_service.NotAnApplicantError):
        await event_service.approve_applicant(
            db_session, event["id"], people["alice"], actor_id=people["organizer"], expected_find_num=5
        )

    event = await event_service.get_event(db_session, event["id"])
    assert event["find_num"] == 5
    assert event["player_list"] == [people["organizer"]]
    assert event["application_list"] == []
    record = await participation_service.get_participation(db_session, event["id"], people["alice"])
    assert record.state == "decline"


# ──────────────────────────────────────────────────────────────
# Listings
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_upcoming(db_session, people):
    later = await _hold_event(db_session, people, date=_future_date(5))
    sooner = await _hold_event(db_session, people, date=_future_date(2))
    await _hold_event(db_session, people, date="2024-01-01")

    events = await event_service.list_upcoming(db_session)
    assert [e["id"] for e in events] == [sooner["id"], later["id"]]


@pytest.mark.asyncio
async def test_list_owned_closed(db_session, people):
    past = await _hold_event(db_session, people, date="2024-01-01")
    await _hold_event(db_session, people)
    await _hold_event(db_session, people, organizer_id=people["alice"], date="2024-02-01")

    events = await event_service.list_owned_closed(db_session, people["organizer"])
    assert [e["id"] for e in events] == [past["id"]]


@pytest.mark.asyncio
async def test_list_pending_approvals(db_session, people):
    with_applicant = await _hold_event(db_session, people)
    await _hold_event(db_session, people)  # no applicants
    past = await _hold_event(db_session, people, date="2024-01-01", player_list=[people["alice"]])
    await event_service.apply_to_event(db_session, with_applicant["id"], people["alice"])

    db_session.add(
        FeedbackRecord(
            event_id=past["id"],
            user_id=people["alice"],
            rater_user_id=people["organizer"],
            court_name="Da'an Sports Center",
            date=past["date"],
            start_at=(await event_service.get_event_model(db_session, past["id"])).start_at,
            end_at=(await event_service.get_event_model(db_session, past["id"])).end_at,
            friendliness_level="A",
            level="B",
            grade=90,
        )
    )
    await db_session.commit()

    approvals = await event_service.list_pending_approvals(db_session, people["organizer"])
    assert [e["id"] for e in approvals] == [with_applicant["id"]]
    applicant = approvals[0]["applicants"][0]
    assert applicant["user_id"] == people["alice"]
    assert applicant["name"] == "Alice"
    assert applicant["average_grade"] == 90
    assert applicant["feedback_count"] == 1


@pytest.mark.asyncio
async def test_listen_upcoming(db_session, people):
    snapshots = []

    async def on_change(events):
        snapshots.append(
            [(e["id"], e["find_num"], e["player_list"], e["application_list"]) for e in events]
        )

    unsubscribe = await event_service.listen_upcoming(on_change)
    assert snapshots == [[]]

    event = await _hold_event(db_session, people)
    event_id = event["id"]
    organizer, alice = people["organizer"], people["alice"]
    assert snapshots[-1] == [(event_id, 5, [organizer], [])]

    await event_service.apply_to_event(db_session, event_id, alice)
    assert snapshots[-1] == [(event_id, 5, [organizer], [alice])]

    await event_service.approve_applicant(db_session, event_id, alice, actor_id=organizer)
    assert snapshots[-1] == [(event_id, 4, [organizer, alice], [])]

    delivered = len(snapshots)
    unsubscribe()
    await event_service.apply_to_event(db_session, event_id, people["bob"])
    await _hold_event(db_session, people)
    assert len(snapshots) == delivered


@pytest.mark.asyncio
async def test_listen_pending_approvals(db_session, people):
    queues = []

    async def on_change(events):
        queues.append([(e["id"], [a["user_id"] for a in e["applicants"]]) for e in events])

    organizer = people["organizer"]
    unsubscribe = await event_service.listen_pending_approvals(organizer, on_change)
    assert queues == [[]]

    event = await _hold_event(db_session, people)
    event_id = event["id"]
    assert queues[-1] == []  # No applicants yet

    await event_service.apply_to_event(db_session, event_id, people["alice"])
    assert queues[-1] == [(event_id, [people["alice"]])]

    await event_service.approve_applicant(db_session, event_id, people["alice"], actor_id=organizer)
    assert queues[-1] == []

    await event_service.apply_to_event(db_session, event_id, people["bob"])
    assert queues[-1] == [(event_id, [people["bob"]])]

    await event_service.decline_applicant(db_session, event_id, people["bob"], actor_id=organizer)
    assert queues[-1] == []

    delivered = len(queues)
    unsubscribe()
    await event_service.apply_to_event(db_session, event_id, people["invitee"])
    assert len(queues) == delivered


# ──────────────────────────────────────────────────────────────
# Closing
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_close_expired_is_idempotent(db_session, people):
    past = await _hold_event(db_session, people, date="2024-01-01")
    future = await _hold_event(db_session, people)

    assert await event_service.close_expired(db_session) == 1
    assert await event_service.close_expired(db_session) == 0

    assert (await event_service.get_event(db_session, past["id"]))["event_status"] == "closed"
    assert (await event_service.get_event(db_session, future["id"]))["event_status"] == "hold"
