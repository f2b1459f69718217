"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16

Creates all tables for the Family RSVP service:
events, attendees, family_members, attendee_mutations.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RSVP_STATUSES = ("going", "not-going", "pending", "waitlisted")
ATTENDEE_TYPES = ("primary", "family_member")
RELATIONSHIPS = ("self", "spouse", "child", "guest")
AGE_GROUPS = ("0-2", "3-5", "6-10", "11+", "teen", "adult")
ACTION_TYPES = ("create", "status_change", "cascade", "promote", "link", "rename", "delete")


def upgrade() -> None:
    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_attendees", sa.Integer, nullable=True),
        sa.Column("waitlist_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("waitlist_limit", sa.Integer, nullable=True),
        sa.Column("going_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("going_count >= 0", name="ck_events_going_count_non_negative"),
    )

    # --- attendees ---
    op.create_table(
        "attendees",
        sa.Column("attendee_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("attendee_type", sa.Enum(*ATTENDEE_TYPES, name="attendeetype"), nullable=False),
        sa.Column("relationship", sa.Enum(*RELATIONSHIPS, name="relationship"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("age_group", sa.Enum(*AGE_GROUPS, name="agegroup"), nullable=False),
        sa.Column("family_member_id", sa.String(36), nullable=True),
        sa.Column("rsvp_status", sa.Enum(*RSVP_STATUSES, name="rsvpstatus"), nullable=False),
        sa.Column("waitlist_joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_attendees_primary_per_user",
        "attendees",
        ["event_id", "user_id"],
        unique=True,
        sqlite_where=sa.text("attendee_type = 'primary'"),
        postgresql_where=sa.text("attendee_type = 'primary'"),
    )
    op.create_index("ix_attendees_event_status", "attendees", ["event_id", "rsvp_status"])

    # --- family_members ---
    op.create_table(
        "family_members",
        sa.Column("family_member_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("age_group", postgresql.ENUM(*AGE_GROUPS, name="agegroup", create_type=False), nullable=True),
        sa.Column("is_default_member", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_family_members_user_id", "family_members", ["user_id"])

    # --- attendee_mutations ---
    op.create_table(
        "attendee_mutations",
        sa.Column("mutation_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("attendee_id", sa.String(36), nullable=False),
        sa.Column("actor_user_id", sa.String(36), nullable=True),
        sa.Column("action_type", sa.Enum(*ACTION_TYPES, name="actiontype"), nullable=False),
        sa.Column("before_snapshot", sa.JSON, nullable=True),
        sa.Column("after_snapshot", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_attendee_mutations_event_id", "attendee_mutations", ["event_id"])
    op.create_index("ix_attendee_mutations_attendee_id", "attendee_mutations", ["attendee_id"])


def downgrade() -> None:
    op.drop_table("attendee_mutations")
    op.drop_table("family_members")
    op.drop_index("ix_attendees_event_status", table_name="attendees")
    op.drop_index("uq_attendees_primary_per_user", table_name="attendees")
    op.drop_table("attendees")
    op.drop_table("events")
