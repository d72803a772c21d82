"""
mytroupe.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- troupes          — Organizations, their member schema, point windows and sync lease
- event_types      — Point-valued event categories that own Drive folders
- events           — One row per discovered form / sheet
- members          — Audience members; identity is the ``Member ID`` property
- events_attended  — Fixed-size pages of one member's attendance history
- dashboards       — Aggregates recomputed in full on every sync
- troupe_limits    — Per-troupe quota ledger counters
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_id() -> str:
    """Generate a primary key up front so rows can reference each other before flush."""
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all MyTroupe ORM models."""


# ---------------------------------------------------------------------------
# Troupe — one row per organization
# ---------------------------------------------------------------------------
class Troupe(Base):
    """An organization whose events and members are tracked.

    ``member_property_types`` maps property name → type string such as
    ``"string!"`` (required) or ``"date?"`` (optional).  ``point_types``
    maps point type name → ``{"start_date", "end_date"}`` ISO strings.

    The sync lock is a lease: ``sync_lock`` is only meaningful together
    with ``sync_lock_owner`` and ``sync_lock_expires_at``.
    """
    __tablename__ = "troupes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    log_sheet_uri: Mapped[str | None] = mapped_column(String(500), default=None)
    member_property_types: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    point_types: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    sync_lock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_lock_owner: Mapped[str | None] = mapped_column(String(36), default=None)
    sync_lock_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    event_types: Mapped[list[EventType]] = relationship(
        back_populates="troupe", cascade="all, delete-orphan",
        order_by="EventType.position",
    )

    def __repr__(self) -> str:
        return f"<Troupe id={self.id} name={self.name!r} locked={self.sync_lock}>"


# ---------------------------------------------------------------------------
# EventType — point-valued categories owning Drive folders
# ---------------------------------------------------------------------------
class EventType(Base):
    __tablename__ = "event_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_folder_uris: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    # Declared + discovered sub-folders this type owned after the last sync
    synchronized_source_folder_uris: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    troupe: Mapped[Troupe] = relationship(back_populates="event_types")

    __table_args__ = (
        Index("ix_event_types_troupe", "troupe_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<EventType id={self.id} title={self.title!r} value={self.value}>"


# ---------------------------------------------------------------------------
# Event — one discovered form / sheet
# ---------------------------------------------------------------------------
class Event(Base):
    """An event backed by one Google Form or Sheet.

    ``field_to_property_map`` maps a source field (question ID or column
    header) → ``{"property": str | None, "override": bool}``.  The
    ``synchronized_*`` columns mirror what the last sync actually saw.
    """
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    synchronized_source: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    source_uri: Mapped[str] = mapped_column(String(500), nullable=False)
    synchronized_source_uri: Mapped[str] = mapped_column(String(500), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_type_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True
    )
    event_type_title: Mapped[str | None] = mapped_column(String(100), default=None)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    field_to_property_map: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    synchronized_field_to_property_map: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("troupe_id", "source_uri", name="uq_events_troupe_source_uri"),
        Index("ix_events_troupe_start", "troupe_id", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} source={self.source!r}>"


# ---------------------------------------------------------------------------
# Member — audience members
# ---------------------------------------------------------------------------
class Member(Base):
    """A troupe member.

    ``properties`` maps property name → ``{"value": ..., "override": bool}``;
    dates are stored as ISO strings.  ``points`` maps point type → total.
    Cross-sync identity is ``properties["Member ID"]["value"]``, not ``id``.
    """
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False
    )
    properties: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    points: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_members_troupe", "troupe_id"),
    )

    def __repr__(self) -> str:
        return f"<Member id={self.id} troupe={self.troupe_id}>"


# ---------------------------------------------------------------------------
# EventsAttendedBucket — one page of a member's attendance history
# ---------------------------------------------------------------------------
class EventsAttendedBucket(Base):
    """Up to ``MAX_PAGE_SIZE`` attendance records for one member.

    ``events`` maps event ID → ``{"type_id", "value", "start_date"}``.
    A member's history is the concatenation of its buckets ordered by page.
    """
    __tablename__ = "events_attended"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("member_id", "page", name="uq_events_attended_member_page"),
        Index("ix_events_attended_troupe", "troupe_id"),
    )

    def __repr__(self) -> str:
        return f"<EventsAttendedBucket member={self.member_id} page={self.page}>"


# ---------------------------------------------------------------------------
# TroupeDashboard — aggregates recomputed on every sync
# ---------------------------------------------------------------------------
class TroupeDashboard(Base):
    """Derived statistics, fully replaced on every successful sync.

    Per event type breakdowns map event type ID → ``{"title", "value"}``
    (plus ``"percent"`` for the percentage maps).
    """
    __tablename__ = "dashboards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    total_members: Mapped[int] = mapped_column(Integer, default=0)
    total_events: Mapped[int] = mapped_column(Integer, default=0)
    total_event_types: Mapped[int] = mapped_column(Integer, default=0)
    total_attendees: Mapped[int] = mapped_column(Integer, default=0)
    avg_attendees_per_event: Mapped[int] = mapped_column(Integer, default=0)
    total_attendees_by_event_type: Mapped[dict] = mapped_column(JSONB, default=dict)
    total_events_by_event_type: Mapped[dict] = mapped_column(JSONB, default=dict)
    avg_attendees_by_event_type: Mapped[dict] = mapped_column(JSONB, default=dict)
    attendee_percentage_by_event_type: Mapped[dict] = mapped_column(JSONB, default=dict)
    event_percentage_by_event_type: Mapped[dict] = mapped_column(JSONB, default=dict)
    upcoming_birthdays: Mapped[dict] = mapped_column(JSONB, default=dict)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TroupeDashboard troupe={self.troupe_id} members={self.total_members}>"


# ---------------------------------------------------------------------------
# TroupeLimit — quota ledger
# ---------------------------------------------------------------------------
class TroupeLimit(Base):
    """Remaining resource counters for one troupe.

    Counters only move through :mod:`mytroupe.services.limit_service`,
    which refuses any increment that would drive a counter negative.
    """
    __tablename__ = "troupe_limits"

    troupe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("troupes.id", ondelete="CASCADE"), primary_key=True
    )
    modify_operations_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_syncs_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    event_types_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_folder_uris_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    members_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<TroupeLimit troupe={self.troupe_id} events={self.events_left} "
            f"members={self.members_left}>"
        )
