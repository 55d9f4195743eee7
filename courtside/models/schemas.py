"""
Pydantic models for API request/response validation.
"""

from datetime import datetime, timedelta
from typing import Optional, List
from pydantic import BaseModel, Field, StrictInt, field_validator

from courtside.database.models import NetHeight, ParticipationState, SkillLevel
from courtside.utils.constants import (
    FIND_NUM_MIN,
    FIND_NUM_MAX,
    DURATION_HOURS_MIN,
    DURATION_HOURS_MAX,
    TOTAL_COST_MIN,
    GRADE_MIN,
    GRADE_MAX,
    EVENT_NOTES_MAX_LENGTH,
    USER_NAME_MAX_LENGTH,
)
from courtside.utils.datetime_utils import local_today


# ---------------------------------------------------------------------------
# Auth / users
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request to sign up a new user."""

    email: str
    password: str = Field(min_length=8)
    name: str = Field(min_length=1, max_length=USER_NAME_MAX_LENGTH)


class LoginRequest(BaseModel):
    """Request to login with email and password."""

    email: str
    password: str


class AuthResponse(BaseModel):
    """Authentication response with JWT token."""

    access_token: str
    token_type: str = "bearer"
    user_id: int


class UserResponse(BaseModel):
    """Current user's own profile."""

    id: int
    email: str
    name: Optional[str] = None
    img_url: Optional[str] = None
    created_at: Optional[str] = None


class PublicUserResponse(BaseModel):
    """Another user's public profile."""

    id: int
    name: Optional[str] = None
    img_url: Optional[str] = None


class UserUpdateRequest(BaseModel):
    """Edit display name and/or photo URL."""

    name: Optional[str] = Field(None, max_length=USER_NAME_MAX_LENGTH)
    img_url: Optional[str] = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Courts
# ---------------------------------------------------------------------------


class CourtResponse(BaseModel):
    id: Optional[int] = None
    name: str
    city: Optional[str] = None
    address: Optional[str] = None
    is_indoor: bool = False
    has_ac: bool = False


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventCreateRequest(BaseModel):
    """Request to hold a new event."""

    court_id: int
    date: str  # YYYY-MM-DD in the event timezone
    start_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    duration_hours: float = Field(ge=DURATION_HOURS_MIN, le=DURATION_HOURS_MAX)
    find_num: int = Field(ge=FIND_NUM_MIN, le=FIND_NUM_MAX)
    total_cost: int = Field(ge=TOTAL_COST_MIN)
    net_height: NetHeight
    friendliness_level: Optional[SkillLevel] = None
    level: Optional[SkillLevel] = None
    is_ac: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=EVENT_NOTES_MAX_LENGTH)
    player_list: List[int] = Field(default_factory=list)  # Pre-invited user IDs

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        """Events can be held from tomorrow onward."""
        try:
            day = datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError("date must be in YYYY-MM-DD format")
        if day < local_today() + timedelta(days=1):
            raise ValueError("date must be tomorrow or later")
        return value


class EventResponse(BaseModel):
    """Event with its derived player and application lists."""

    id: int
    court: CourtResponse
    create_user_id: int
    date: str
    start_time: str
    duration_hours: float
    start_at: str
    end_at: str
    find_num: int
    total_cost: int
    average_cost: int
    net_height: str
    friendliness_level: Optional[str] = None
    level: Optional[str] = None
    is_ac: bool
    notes: Optional[str] = None
    event_status: str
    player_list: List[int]
    application_list: List[int]
    created_at: Optional[str] = None


class EventDetailResponse(EventResponse):
    """Event plus the public profiles behind its lists."""

    players: List[PublicUserResponse] = Field(default_factory=list)
    applicants: List[PublicUserResponse] = Field(default_factory=list)


class ApplicantSummary(BaseModel):
    user_id: int
    name: Optional[str] = None
    img_url: Optional[str] = None
    average_grade: float = 0
    feedback_count: int = 0


class PendingApprovalResponse(EventResponse):
    """Organizer's event with applicants awaiting a decision."""

    applicants: List[ApplicantSummary] = Field(default_factory=list)


class ApproveRequest(BaseModel):
    """Optional capacity the organizer last saw; a mismatch is rejected with 409."""

    expected_find_num: Optional[int] = Field(None, ge=0)


# ---------------------------------------------------------------------------
# Participations
# ---------------------------------------------------------------------------


class ParticipationResponse(BaseModel):
    id: str  # "{event_id}_{user_id}"
    event_id: int
    user_id: int
    state: ParticipationState
    date: str
    start_at: str
    end_at: str
    court_name: str


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class FeedbackSubmitRequest(BaseModel):
    """Organizer's rating of one player."""

    friendliness_level: SkillLevel
    level: SkillLevel
    grade: StrictInt = Field(ge=GRADE_MIN, le=GRADE_MAX)
    note: Optional[str] = Field(None, max_length=EVENT_NOTES_MAX_LENGTH)


class FeedbackResponse(BaseModel):
    id: str  # "{event_id}_{user_id}"
    event_id: int
    user_id: int
    rater_user_id: int
    court_name: str
    date: str
    start_at: str
    end_at: str
    friendliness_level: str
    level: str
    grade: int
    note: Optional[str] = None
    updated_at: Optional[str] = None


class ReputationResponse(BaseModel):
    user_id: int
    average_grade: float
    count: int
    history: List[FeedbackResponse]
