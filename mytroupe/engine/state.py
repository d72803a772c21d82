"""
mytroupe.engine.state — Shared Sync Accumulator
=================================================

One :class:`SyncState` lives for the duration of a single troupe sync.
Discovery steps and delegates mutate it; the persistence step reads it.

Delegates run concurrently, so every mutation here is order-independent:
attendance is keyed by event ID (a repeat is ignored), member records
are keyed by ``Member ID``, and a non-overridden property keeps the value
from the newest event (start date, then source URI) no matter which
delegate finishes first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from mytroupe.constants import MEMBER_ID_PROPERTY
from mytroupe.database.models import (
    Event,
    EventsAttendedBucket,
    EventType,
    Member,
    Troupe,
    TroupeDashboard,
    new_id,
)
from mytroupe.engine.properties import matching_point_types

logger = logging.getLogger(__name__)

EVENTS_LEFT = "events_left"
FOLDERS_LEFT = "source_folder_uris_left"
MEMBERS_LEFT = "members_left"


# ---------------------------------------------------------------------------
# Local quota projection
# ---------------------------------------------------------------------------
@dataclass
class LimitProjection:
    """Projected quota usage against the snapshot taken at sync start.

    ``delta`` is what the commit step will hand to the ledger in one
    checked increment.  It only ever gates admission locally.
    """

    snapshot: dict[str, int]
    delta: dict[str, int] = field(default_factory=lambda: {
        EVENTS_LEFT: 0, FOLDERS_LEFT: 0, MEMBERS_LEFT: 0,
    })

    def remaining(self, name: str) -> int:
        return self.snapshot.get(name, 0) + self.delta.get(name, 0)

    def consume(self, name: str) -> bool:
        """Reserve one unit of *name*; ``False`` once the quota is exhausted."""
        if self.remaining(name) <= 0:
            return False
        self.delta[name] = self.delta.get(name, 0) - 1
        return True

    def release(self, name: str) -> None:
        self.delta[name] = self.delta.get(name, 0) + 1


# ---------------------------------------------------------------------------
# Accumulator entries
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AttendanceRecord:
    """One attended event, attributed to one member."""

    event_id: str
    type_id: str | None
    value: int
    start_date: datetime

    def sort_key(self) -> tuple:
        return (self.start_date, self.event_id)


@dataclass
class EventData:
    event: Event
    from_coll: bool


@dataclass
class AttendeeData:
    """A member plus everything this sync learned about them."""

    member: Member
    from_coll: bool
    events_attended: list[AttendanceRecord] = field(default_factory=list)
    buckets: list[EventsAttendedBucket] = field(default_factory=list)
    delete: bool = False
    # property → (start_date, source_uri) of the event that last set it
    property_sources: dict[str, tuple] = field(default_factory=dict)

    def attended(self, event_id: str) -> bool:
        return any(r.event_id == event_id for r in self.events_attended)

    def set_property(self, name: str, value, rank: tuple) -> None:
        """Set a non-overridden property if *rank* is at least as new as the last writer."""
        current = self.member.properties.get(name)
        if current is not None and current.get("override"):
            return
        previous = self.property_sources.get(name)
        if previous is not None and rank < previous:
            return
        self.member.properties[name] = {"value": value, "override": False}
        self.property_sources[name] = rank


# ---------------------------------------------------------------------------
# SyncState
# ---------------------------------------------------------------------------
@dataclass
class SyncState:
    """Everything one troupe sync reads, discovers, and will persist."""

    troupe: Troupe
    event_types: list[EventType]
    dashboard: TroupeDashboard
    limits: LimitProjection
    started_at: datetime
    event_map: dict[str, EventData] = field(default_factory=dict)  # source URI → event
    attendee_map: dict[str, AttendeeData] = field(default_factory=dict)  # Member ID → member

    @property
    def troupe_id(self) -> str:
        return self.troupe.id

    # -- Members -------------------------------------------------------

    def get_or_create_attendee(self, member_id: str) -> AttendeeData | None:
        """Look up *member_id*, creating a new member if the quota allows.

        Returns ``None`` when the identifier is new and the members quota
        is exhausted; the caller drops the signal.
        """
        attendee = self.attendee_map.get(member_id)
        if attendee is not None:
            return attendee

        if not self.limits.consume(MEMBERS_LEFT):
            logger.debug("Members quota exhausted; dropping %s", member_id)
            return None

        properties = {
            name: {"value": None, "override": False}
            for name in self.troupe.member_property_types
        }
        properties[MEMBER_ID_PROPERTY] = {"value": member_id, "override": False}
        member = Member(
            id=new_id(),
            troupe_id=self.troupe_id,
            properties=properties,
            points={name: 0 for name in self.troupe.point_types},
            last_updated=self.started_at,
        )
        attendee = AttendeeData(member=member, from_coll=False)
        self.attendee_map[member_id] = attendee
        return attendee

    def record_attendance(self, attendee: AttendeeData, event: Event) -> bool:
        """Credit *event* to *attendee* once; returns ``False`` for a repeat."""
        if attendee.attended(event.id):
            return False

        record = AttendanceRecord(
            event_id=event.id,
            type_id=event.event_type_id,
            value=event.value,
            start_date=event.start_date,
        )
        attendee.events_attended.append(record)

        points = dict(attendee.member.points)
        for point_type in matching_point_types(self.troupe.point_types, event.start_date):
            points[point_type] = points.get(point_type, 0) + event.value
        attendee.member.points = points
        return True
