"""
mytroupe.services.log_service — Record Publisher Contract
==========================================================

After a successful commit the sync hands the canonical record set to a
:class:`TroupeLogService`, which renders it somewhere people can read
(a spreadsheet, in production).  Rendering itself lives outside the
engine; this module fixes the hand-off shape and ordering.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from mytroupe.constants import TOTAL_POINT_TYPE
from mytroupe.database.models import Event, Troupe
from mytroupe.engine.buckets import record_to_json
from mytroupe.engine.properties import as_utc
from mytroupe.engine.state import SyncState


def build_attendee(member, records) -> dict:
    """A member plus the attendance this sync credited them with."""
    return {
        "id": member.id,
        "troupe_id": member.troupe_id,
        "properties": dict(member.properties),
        "points": dict(member.points),
        "events_attended": {r.event_id: record_to_json(r) for r in records},
    }


def build_log_payload(state: SyncState) -> tuple[list[Event], list[dict]]:
    """Events ascending by start date, attendees ascending by total points.

    Members flagged for deletion are left out; they no longer exist
    once the commit has run.
    """
    events = sorted(
        (data.event for data in state.event_map.values()),
        key=lambda e: (as_utc(e.start_date), e.source_uri),
    )
    attendees = [
        build_attendee(a.member, a.events_attended)
        for a in state.attendee_map.values()
        if not a.delete
    ]
    attendees.sort(key=lambda a: (a["points"].get(TOTAL_POINT_TYPE, 0), a["id"]))
    return events, attendees


class TroupeLogService(ABC):
    """Publishes a troupe's events and attendees to an external log."""

    @abstractmethod
    async def update_log(
        self,
        location: str | None,
        troupe: Troupe,
        events: Sequence[Event],
        attendees: Sequence[dict],
    ) -> None:
        """Replace the log at *location* with the given records."""
