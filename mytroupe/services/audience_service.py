"""
mytroupe.services.audience_service — Audience Discovery & Validation
=====================================================================

How it works:
    1. Load every stored member with its ``events_attended`` pages.
       Point totals reset to zero; non-overridden properties are blanked
       so only what the sources still say survives this sync.
    2. Run one discovery delegate per event, all at once, inside a
       :class:`asyncio.TaskGroup`.  The first delegate failure cancels
       the rest and propagates, so a broken source aborts the sync before
       anything is written.  Events with an unknown source are skipped.
    3. Flag every member missing a required property for deletion.  A
       flagged member that was never stored is simply not persisted, and
       its projected member quota is handed back.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mytroupe.constants import MEMBER_ID_PROPERTY
from mytroupe.database.models import Event, EventsAttendedBucket, Member
from mytroupe.engine.properties import required_properties
from mytroupe.engine.state import MEMBERS_LEFT, AttendeeData, SyncState
from mytroupe.sources import gforms, gsheets  # noqa: F401  (registers delegates)
from mytroupe.sources.base import EventDataService, SourceClients, get_delegate_class

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_members(
    engine: Engine, troupe_id: str
) -> list[tuple[Member, list[EventsAttendedBucket]]]:
    """Detached members, each with its buckets ordered by page."""
    with Session(engine, expire_on_commit=False) as session:
        members = session.scalars(
            select(Member).where(Member.troupe_id == troupe_id).order_by(Member.id)
        ).all()
        buckets = session.scalars(
            select(EventsAttendedBucket)
            .where(EventsAttendedBucket.troupe_id == troupe_id)
            .order_by(EventsAttendedBucket.member_id, EventsAttendedBucket.page)
        ).all()

    by_member: dict[str, list[EventsAttendedBucket]] = defaultdict(list)
    for bucket in buckets:
        by_member[bucket.member_id].append(bucket)
    return [(member, by_member.get(member.id, [])) for member in members]


def seed_attendees(
    state: SyncState, members: list[tuple[Member, list[EventsAttendedBucket]]]
) -> None:
    """Reset stored members and key them by ``Member ID`` in the state."""
    schema = state.troupe.member_property_types

    for member, buckets in members:
        stored = member.properties or {}
        identity = (stored.get(MEMBER_ID_PROPERTY) or {}).get("value")
        key = str(identity) if identity else f"member:{member.id}"

        properties = {}
        for prop in schema:
            current = stored.get(prop)
            if current is not None and current.get("override"):
                properties[prop] = dict(current)
            else:
                properties[prop] = {"value": None, "override": False}

        member.properties = properties
        member.points = {point_type: 0 for point_type in state.troupe.point_types}
        member.last_updated = state.started_at

        state.attendee_map[key] = AttendeeData(member=member, from_coll=True, buckets=buckets)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

async def _run_delegate(delegate: EventDataService, event: Event, cutoff: datetime) -> None:
    await delegate.ready()
    await delegate.discover_audience(event, cutoff)


async def discover_audience(state: SyncState, clients: SourceClients, cutoff: datetime) -> None:
    """Fan delegates out over every event and join them.

    Re-raises the first delegate failure itself, not the task group's
    ``ExceptionGroup``.
    """
    try:
        async with asyncio.TaskGroup() as group:
            for event_data in state.event_map.values():
                event = event_data.event
                delegate_cls = get_delegate_class(event.source)
                if delegate_cls is None:
                    logger.debug("Event %s has no audience source (%r)", event.id, event.source)
                    continue
                group.create_task(_run_delegate(delegate_cls(state, clients), event, cutoff))
    except ExceptionGroup as failures:
        raise failures.exceptions[0] from failures

    flag_invalid_members(state)


def _is_absent(value) -> bool:
    return value is None or value == ""


def flag_invalid_members(state: SyncState) -> int:
    """Mark members missing any required property.  Returns how many."""
    required = required_properties(state.troupe.member_property_types)
    flagged = 0

    for attendee in state.attendee_map.values():
        if attendee.delete:
            continue
        properties = attendee.member.properties
        missing = [
            prop for prop in required
            if _is_absent((properties.get(prop) or {}).get("value"))
        ]
        if not missing:
            continue

        attendee.delete = True
        flagged += 1
        if not attendee.from_coll:
            state.limits.release(MEMBERS_LEFT)

    if flagged:
        logger.info("Troupe %s: %d members fail required-property checks", state.troupe_id, flagged)
    return flagged
