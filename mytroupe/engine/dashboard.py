"""
mytroupe.engine.dashboard — Dashboard Aggregation
===================================================

Recomputes every dashboard statistic from scratch.  The result is a
plain dict of :class:`~mytroupe.database.models.TroupeDashboard`
column values, so the commit step can replace the row wholesale.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from mytroupe.constants import (
    BIRTHDAY_PROPERTY,
    FIRST_NAME_PROPERTY,
    LAST_NAME_PROPERTY,
)
from mytroupe.database.models import Event, EventType, Member
from mytroupe.engine.state import AttendanceRecord

logger = logging.getLogger(__name__)

WEEKLY_WINDOW_DAYS = 7
MONTHLY_WINDOW_DAYS = 30


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _share(part: int, whole: int) -> float:
    return part / whole if whole > 0 else 0


def _property_value(member: Member, name: str):
    prop = member.properties.get(name) or {}
    return prop.get("value")


def next_birthday(birthday: date, today: date) -> date:
    """The first anniversary of *birthday* on or after *today*."""
    for year in (today.year, today.year + 1):
        try:
            candidate = birthday.replace(year=year)
        except ValueError:  # Feb 29 in a non-leap year
            candidate = date(year, 2, 28)
        if candidate >= today:
            return candidate
    return candidate


def upcoming_birthdays(
    members: Iterable[Member], frequency: str, now: datetime
) -> list[dict]:
    """Members whose next birthday falls within the window from *now*.

    The window is 7 days for a ``weekly`` digest, 30 days otherwise.
    """
    window = WEEKLY_WINDOW_DAYS if frequency == "weekly" else MONTHLY_WINDOW_DAYS
    today = now.date()
    upcoming: list[tuple[date, dict]] = []

    for member in members:
        raw = _property_value(member, BIRTHDAY_PROPERTY)
        if not raw:
            continue
        try:
            birthday = date.fromisoformat(str(raw)[:10])
        except ValueError:
            logger.debug("Skipping unparseable birthday %r for member %s", raw, member.id)
            continue

        anniversary = next_birthday(birthday, today)
        if (anniversary - today).days <= window:
            upcoming.append((anniversary, {
                "id": member.id,
                "first_name": _property_value(member, FIRST_NAME_PROPERTY),
                "last_name": _property_value(member, LAST_NAME_PROPERTY),
                "birthday": birthday.isoformat(),
            }))

    upcoming.sort(key=lambda item: (item[0], item[1]["id"]))
    return [entry for _, entry in upcoming]


def compute_dashboard(
    event_types: Sequence[EventType],
    events: Iterable[Event],
    attendance: Iterable[tuple[Member, Sequence[AttendanceRecord]]],
    desired_frequency: str,
    now: datetime,
) -> dict:
    """Build the full set of dashboard column values.

    *attendance* holds only members that will be persisted, each with
    the records accumulated this sync.
    """
    totals_events = {et.id: 0 for et in event_types}
    totals_attendees = {et.id: 0 for et in event_types}
    titles = {et.id: et.title for et in event_types}

    total_events = 0
    for event in events:
        total_events += 1
        if event.event_type_id in totals_events:
            totals_events[event.event_type_id] += 1

    members: list[Member] = []
    total_attendees = 0
    for member, records in attendance:
        members.append(member)
        for record in records:
            total_attendees += 1
            if record.type_id in totals_attendees:
                totals_attendees[record.type_id] += 1

    avg_by_type = {}
    attendee_pct = {}
    event_pct = {}
    for type_id, title in titles.items():
        type_events = totals_events[type_id]
        type_attendees = totals_attendees[type_id]
        avg_by_type[type_id] = {
            "title": title,
            "value": round_half_up(type_attendees / type_events) if type_events > 0 else 0,
        }
        attendee_pct[type_id] = {
            "title": title,
            "value": type_attendees,
            "percent": _share(type_attendees, total_attendees),
        }
        event_pct[type_id] = {
            "title": title,
            "value": type_events,
            "percent": _share(type_events, total_events),
        }

    return {
        "total_members": len(members),
        "total_events": total_events,
        "total_event_types": len(titles),
        "total_attendees": total_attendees,
        "avg_attendees_per_event": (
            round_half_up(total_attendees / total_events) if total_events > 0 else 0
        ),
        "total_events_by_event_type": {
            type_id: {"title": titles[type_id], "value": count}
            for type_id, count in totals_events.items()
        },
        "total_attendees_by_event_type": {
            type_id: {"title": titles[type_id], "value": count}
            for type_id, count in totals_attendees.items()
        },
        "avg_attendees_by_event_type": avg_by_type,
        "attendee_percentage_by_event_type": attendee_pct,
        "event_percentage_by_event_type": event_pct,
        "upcoming_birthdays": {
            "frequency": desired_frequency,
            "desired_frequency": desired_frequency,
            "members": upcoming_birthdays(members, desired_frequency, now),
        },
        "last_updated": now,
    }
