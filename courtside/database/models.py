"""
SQLAlchemy ORM models for the Courtside pickup-game system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from courtside.database.db import Base


class EventStatus(str, enum.Enum):
    """Event availability status. Transitions hold -> closed only."""

    HOLD = "hold"
    CLOSED = "closed"


class ParticipationState(str, enum.Enum):
    """A user's standing with respect to one event."""

    PENDING = "pending"
    ACCEPT = "accept"
    DECLINE = "decline"


class SkillLevel(str, enum.Enum):
    """Qualitative A-E grading used for both friendliness and skill."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"


class NetHeight(str, enum.Enum):
    """Net height for the session."""

    WOMEN = "women"
    MEN = "men"


class User(Base):
    """User accounts and public profile."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)  # Stored lower-cased
    password_hash = Column(String, nullable=True)
    name = Column(String, nullable=True)
    img_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    created_events = relationship("Event", back_populates="creator")
    participations = relationship("ParticipationRecord", back_populates="user")

    __table_args__ = (Index("idx_users_email", "email"),)


class Court(Base):
    """Bookable courts, grouped by city."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    city = Column(String, nullable=False)
    address = Column(String, nullable=True)
    is_indoor = Column(Boolean, nullable=False, default=False)
    has_ac = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    events = relationship("Event", back_populates="court")

    __table_args__ = (Index("idx_courts_city", "city"),)


class Event(Base):
    """
    A scheduled court session looking for players.

    Court fields are copied at creation so the event keeps describing the
    court it was held on even if the court record changes later.
    """

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=True)
    court_name = Column(String, nullable=False)
    court_address = Column(String, nullable=True)
    court_city = Column(String, nullable=True)
    court_is_indoor = Column(Boolean, nullable=False, default=False)
    court_has_ac = Column(Boolean, nullable=False, default=False)
    create_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD in the event timezone
    start_time = Column(String(5), nullable=False)  # HH:MM in the event timezone
    duration_hours = Column(Float, nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    find_num = Column(Integer, nullable=False)  # Remaining open slots
    total_cost = Column(Integer, nullable=False, default=0)
    average_cost = Column(Integer, nullable=False, default=0)  # Fixed at creation
    net_height = Column(String(10), nullable=False)  # NetHeight enum value
    friendliness_level = Column(String(1), nullable=True)  # SkillLevel enum value
    level = Column(String(1), nullable=True)  # SkillLevel enum value
    is_ac = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    event_status = Column(String(10), nullable=False, default=EventStatus.HOLD.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    court = relationship("Court", back_populates="events")
    creator = relationship("User", back_populates="created_events")
    participations = relationship(
        "ParticipationRecord", back_populates="event", cascade="all, delete-orphan"
    )
    feedback = relationship("FeedbackRecord", back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("find_num >= 0", name="ck_events_find_num_non_negative"),
        Index("idx_events_start_at", "start_at"),
        Index("idx_events_creator", "create_user_id"),
        Index("idx_events_status_end", "event_status", "end_at"),
    )


class ParticipationRecord(Base):
    """
    One row per (event, user) that has applied or been enrolled.

    The event's player list is the set of ACCEPT rows and its application
    list the set of PENDING rows, so a user can never sit in both.
    """

    __tablename__ = "team_participations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    state = Column(String(10), nullable=False)  # ParticipationState enum value
    date = Column(String(10), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    court_name = Column(String, nullable=False)
    state_changed_at = Column(DateTime(timezone=True), nullable=True)  # Orders the derived lists
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    event = relationship("Event", back_populates="participations")
    user = relationship("User", back_populates="participations")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_team_participation_event_user"),
        Index("idx_team_participations_user_start", "user_id", "start_at"),
        Index("idx_team_participations_event_state", "event_id", "state"),
    )

    @property
    def record_key(self) -> str:
        return f"{self.event_id}_{self.user_id}"


class FeedbackRecord(Base):
    """Organizer rating of one participant after an event has ended."""

    __tablename__ = "feedback_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Rated user
    rater_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Event organizer
    court_name = Column(String, nullable=False)
    date = Column(String(10), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    friendliness_level = Column(String(1), nullable=False)
    level = Column(String(1), nullable=False)
    grade = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    event = relationship("Event", back_populates="feedback")
    user = relationship("User", foreign_keys=[user_id])
    rater = relationship("User", foreign_keys=[rater_user_id])

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_feedback_event_user"),
        CheckConstraint("grade >= 0 AND grade <= 100", name="ck_feedback_grade_range"),
        Index("idx_feedback_records_user", "user_id"),
    )

    @property
    def record_key(self) -> str:
        return f"{self.event_id}_{self.user_id}"
