"""Initial troupe schema: troupes, event types, events, members,
attendance buckets, dashboards and quota ledger

Revision ID: 5e1c0a7d9b2f
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision = "5e1c0a7d9b2f"
down_revision = None
branch_labels = None
depends_on = None


def _last_updated() -> sa.Column:
    return sa.Column(
        "last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "troupes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("log_sheet_uri", sa.String(500), nullable=True),
        sa.Column("member_property_types", JSONB(), nullable=False, server_default="{}"),
        sa.Column("point_types", JSONB(), nullable=False, server_default="{}"),
        sa.Column("sync_lock", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sync_lock_owner", sa.String(36), nullable=True),
        sa.Column("sync_lock_expires_at", sa.DateTime(timezone=True), nullable=True),
        _last_updated(),
    )

    op.create_table(
        "event_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_folder_uris", JSONB(), nullable=False, server_default="[]"),
        sa.Column(
            "synchronized_source_folder_uris", JSONB(), nullable=False, server_default="[]"
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        _last_updated(),
    )
    op.create_index("ix_event_types_troupe", "event_types", ["troupe_id", "position"])

    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("source", sa.String(30), nullable=False, server_default=""),
        sa.Column("synchronized_source", sa.String(30), nullable=False, server_default=""),
        sa.Column("source_uri", sa.String(500), nullable=False),
        sa.Column("synchronized_source_uri", sa.String(500), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "event_type_id", sa.String(36),
            sa.ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("event_type_title", sa.String(100), nullable=True),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("field_to_property_map", JSONB(), nullable=False, server_default="{}"),
        sa.Column(
            "synchronized_field_to_property_map", JSONB(), nullable=False, server_default="{}"
        ),
        _last_updated(),
        sa.UniqueConstraint("troupe_id", "source_uri", name="uq_events_troupe_source_uri"),
    )
    op.create_index("ix_events_troupe_start", "events", ["troupe_id", "start_date"])

    op.create_table(
        "members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("properties", JSONB(), nullable=False, server_default="{}"),
        sa.Column("points", JSONB(), nullable=False, server_default="{}"),
        _last_updated(),
    )
    op.create_index("ix_members_troupe", "members", ["troupe_id"])

    op.create_table(
        "events_attended",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "member_id", sa.String(36),
            sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("page", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("events", JSONB(), nullable=False, server_default="{}"),
        sa.UniqueConstraint("member_id", "page", name="uq_events_attended_member_page"),
    )
    op.create_index("ix_events_attended_troupe", "events_attended", ["troupe_id"])

    op.create_table(
        "dashboards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("total_members", sa.Integer(), server_default="0"),
        sa.Column("total_events", sa.Integer(), server_default="0"),
        sa.Column("total_event_types", sa.Integer(), server_default="0"),
        sa.Column("total_attendees", sa.Integer(), server_default="0"),
        sa.Column("avg_attendees_per_event", sa.Integer(), server_default="0"),
        sa.Column("total_attendees_by_event_type", JSONB(), server_default="{}"),
        sa.Column("total_events_by_event_type", JSONB(), server_default="{}"),
        sa.Column("avg_attendees_by_event_type", JSONB(), server_default="{}"),
        sa.Column("attendee_percentage_by_event_type", JSONB(), server_default="{}"),
        sa.Column("event_percentage_by_event_type", JSONB(), server_default="{}"),
        sa.Column("upcoming_birthdays", JSONB(), server_default="{}"),
        _last_updated(),
    )

    op.create_table(
        "troupe_limits",
        sa.Column(
            "troupe_id", sa.String(36),
            sa.ForeignKey("troupes.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("modify_operations_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("manual_syncs_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("event_types_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("events_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_folder_uris_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("members_left", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("troupe_limits")
    op.drop_table("dashboards")
    op.drop_index("ix_events_attended_troupe", table_name="events_attended")
    op.drop_table("events_attended")
    op.drop_index("ix_members_troupe", table_name="members")
    op.drop_table("members")
    op.drop_index("ix_events_troupe_start", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_event_types_troupe", table_name="event_types")
    op.drop_table("event_types")
    op.drop_table("troupes")
