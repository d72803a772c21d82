"""
tests/test_dashboard.py — Dashboard Aggregation Tests
=======================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from mytroupe.database.models import Event, EventType, Member
from mytroupe.engine.dashboard import (
    compute_dashboard,
    next_birthday,
    round_half_up,
    upcoming_birthdays,
)
from mytroupe.engine.state import AttendanceRecord

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _type(type_id: str, title: str) -> EventType:
    return EventType(id=type_id, troupe_id="t", title=title, value=1, source_folder_uris=[])


def _event(event_id: str, type_id: str | None) -> Event:
    return Event(id=event_id, troupe_id="t", event_type_id=type_id, start_date=NOW, value=1)


def _member(member_id: str, birthday: str | None = None, first: str = "Ada") -> Member:
    return Member(
        id=member_id,
        troupe_id="t",
        properties={
            "First Name": {"value": first, "override": False},
            "Last Name": {"value": "Lovelace", "override": False},
            "Birthday": {"value": birthday, "override": False},
        },
        points={"Total": 0},
    )


def _attended(*event_type_pairs) -> list[AttendanceRecord]:
    return [
        AttendanceRecord(event_id=e, type_id=t, value=1, start_date=NOW)
        for e, t in event_type_pairs
    ]


class TestRounding:
    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(1.49) == 1
        assert round_half_up(0) == 0


class TestComputeDashboard:
    def test_type_without_events_has_zero_average_and_shares(self):
        types = [_type("rehearsal", "Rehearsal"), _type("show", "Show")]
        events = [_event("e1", "rehearsal")]
        attendance = [(_member("m1"), _attended(("e1", "rehearsal")))]

        dash = compute_dashboard(types, events, attendance, "monthly", NOW)

        assert dash["avg_attendees_by_event_type"]["show"] == {"title": "Show", "value": 0}
        assert dash["attendee_percentage_by_event_type"]["show"]["percent"] == 0
        assert dash["event_percentage_by_event_type"]["show"]["percent"] == 0

    def test_empty_troupe(self):
        dash = compute_dashboard([], [], [], "weekly", NOW)
        assert dash["total_events"] == 0
        assert dash["avg_attendees_per_event"] == 0
        assert dash["upcoming_birthdays"] == {
            "frequency": "weekly", "desired_frequency": "weekly", "members": [],
        }

    def test_totals_and_shares(self):
        types = [_type("rehearsal", "Rehearsal"), _type("show", "Show")]
        events = [_event("e1", "rehearsal"), _event("e2", "rehearsal"), _event("e3", "show"),
                  _event("e4", None)]
        attendance = [
            (_member("m1"), _attended(("e1", "rehearsal"), ("e2", "rehearsal"), ("e3", "show"))),
            (_member("m2"), _attended(("e1", "rehearsal"), ("e3", "show"), ("e4", None))),
        ]

        dash = compute_dashboard(types, events, attendance, "monthly", NOW)

        assert dash["total_members"] == 2
        assert dash["total_events"] == 4
        assert dash["total_event_types"] == 2
        assert dash["total_attendees"] == 6
        assert dash["avg_attendees_per_event"] == 2  # 6 / 4 = 1.5 → 2
        assert dash["total_events_by_event_type"]["rehearsal"] == {"title": "Rehearsal", "value": 2}
        assert dash["total_attendees_by_event_type"]["show"] == {"title": "Show", "value": 2}
        assert dash["avg_attendees_by_event_type"]["rehearsal"]["value"] == 2  # 3 / 2 → 2
        assert dash["attendee_percentage_by_event_type"]["rehearsal"]["percent"] == 0.5
        assert dash["event_percentage_by_event_type"]["show"]["percent"] == 0.25
        assert dash["last_updated"] == NOW


class TestBirthdays:
    def test_next_birthday_rolls_to_next_year(self):
        assert next_birthday(date(1990, 1, 15), date(2026, 3, 1)) == date(2027, 1, 15)

    def test_leap_day_falls_back_to_feb_28(self):
        assert next_birthday(date(2004, 2, 29), date(2026, 2, 1)) == date(2026, 2, 28)

    def test_window_depends_on_frequency(self):
        members = [
            _member("soon", "1990-03-05", first="Soon"),
            _member("later", "1985-03-20", first="Later"),
            _member("past", "1980-02-20", first="Past"),
            _member("none", None),
            _member("junk", "not a date"),
        ]

        weekly = upcoming_birthdays(members, "weekly", NOW)
        monthly = upcoming_birthdays(members, "monthly", NOW)

        assert [m["id"] for m in weekly] == ["soon"]
        assert [m["id"] for m in monthly] == ["soon", "later"]
        assert monthly[0] == {
            "id": "soon", "first_name": "Soon", "last_name": "Lovelace", "birthday": "1990-03-05",
        }
