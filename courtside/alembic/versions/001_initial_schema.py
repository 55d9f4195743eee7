"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the pickup-game schema: users, courts, events, team_participations
and feedback_records, with the uniqueness constraints that keep one
participation row and one feedback row per (event, user).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("img_url", sa.String(500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "courts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("is_indoor", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_ac", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_courts_city", "courts", ["city"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("court_id", sa.Integer(), nullable=True),
        sa.Column("court_name", sa.String(), nullable=False),
        sa.Column("court_address", sa.String(), nullable=True),
        sa.Column("court_city", sa.String(), nullable=True),
        sa.Column("court_is_indoor", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("court_has_ac", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("create_user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("find_num", sa.Integer(), nullable=False),
        sa.Column("total_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("net_height", sa.String(10), nullable=False),
        sa.Column("friendliness_level", sa.String(1), nullable=True),
        sa.Column("level", sa.String(1), nullable=True),
        sa.Column("is_ac", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("event_status", sa.String(10), nullable=False, server_default="hold"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["court_id"], ["courts.id"]),
        sa.ForeignKeyConstraint(["create_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("find_num >= 0", name="ck_events_find_num_non_negative"),
    )
    op.create_index("idx_events_start_at", "events", ["start_at"])
    op.create_index("idx_events_creator", "events", ["create_user_id"])
    op.create_index("idx_events_status_end", "events", ["event_status", "end_at"])

    op.create_table(
        "team_participations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(10), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("court_name", sa.String(), nullable=False),
        sa.Column("state_changed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_team_participation_event_user"),
    )
    op.create_index(
        "idx_team_participations_user_start", "team_participations", ["user_id", "start_at"]
    )
    op.create_index(
        "idx_team_participations_event_state", "team_participations", ["event_id", "state"]
    )

    op.create_table(
        "feedback_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("rater_user_id", sa.Integer(), nullable=False),
        sa.Column("court_name", sa.String(), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("friendliness_level", sa.String(1), nullable=False),
        sa.Column("level", sa.String(1), nullable=False),
        sa.Column("grade", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["rater_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_feedback_event_user"),
        sa.CheckConstraint("grade >= 0 AND grade <= 100", name="ck_feedback_grade_range"),
    )
    op.create_index("idx_feedback_records_user", "feedback_records", ["user_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_feedback_records_user", table_name="feedback_records")
    op.drop_table("feedback_records")
    op.drop_index("idx_team_participations_event_state", table_name="team_participations")
    op.drop_index("idx_team_participations_user_start", table_name="team_participations")
    op.drop_table("team_participations")
    op.drop_index("idx_events_status_end", table_name="events")
    op.drop_index("idx_events_creator", table_name="events")
    op.drop_index("idx_events_start_at", table_name="events")
    op.drop_table("events")
    op.drop_index("idx_courts_city", table_name="courts")
    op.drop_table("courts")
    op.drop_index("idx_users_email", table_name="users")
    op.drop_table("users")
