"""
tests/test_troupe_service.py — Troupe Provisioning Tests
==========================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import folder_uri, set_limits
from mytroupe.constants import DEFAULT_MEMBER_PROPERTY_TYPES, MAX_EVENT_TYPES
from mytroupe.database.models import EventType, Troupe, TroupeDashboard, TroupeLimit
from mytroupe.errors import LimitsExceededError, MyTroupeError, TroupeNotFoundError
from mytroupe.services.limit_service import DEFAULT_LIMITS, get_limits
from mytroupe.services.troupe_service import (
    add_event_type,
    create_troupe,
    delete_troupe,
    get_troupe,
)


class TestCreateTroupe:
    def test_defaults(self, db_engine):
        troupe_id = create_troupe(db_engine, "Riverside Players", log_sheet_uri="sheet://log")

        troupe = get_troupe(db_engine, troupe_id)
        assert troupe.name == "Riverside Players"
        assert troupe.member_property_types == DEFAULT_MEMBER_PROPERTY_TYPES
        assert list(troupe.point_types) == ["Total"]
        assert troupe.sync_lock is False
        assert troupe.event_types == []
        assert get_limits(db_engine, troupe_id) == DEFAULT_LIMITS
        with Session(db_engine) as session:
            dash = session.scalar(
                select(TroupeDashboard).where(TroupeDashboard.troupe_id == troupe_id)
            )
            assert dash.upcoming_birthdays["desired_frequency"] == "monthly"

    def test_get_missing_troupe(self, db_engine):
        with pytest.raises(TroupeNotFoundError):
            get_troupe(db_engine, "missing")


class TestEventTypes:
    def test_added_in_order_and_charged(self, db_engine, troupe_id):
        first = add_event_type(db_engine, troupe_id, "Rehearsal", 1, [folder_uri("F1")])
        second = add_event_type(db_engine, troupe_id, "Show", 5)

        troupe = get_troupe(db_engine, troupe_id)
        assert [et.id for et in troupe.event_types] == [first, second]
        assert troupe.event_types[0].synchronized_source_folder_uris == [folder_uri("F1")]
        limits = get_limits(db_engine, troupe_id)
        assert limits["event_types_left"] == DEFAULT_LIMITS["event_types_left"] - 2
        assert limits["source_folder_uris_left"] == DEFAULT_LIMITS["source_folder_uris_left"] - 1

    def test_refused_when_over_quota(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, source_folder_uris_left=0)
        with pytest.raises(LimitsExceededError):
            add_event_type(db_engine, troupe_id, "Rehearsal", 1, [folder_uri("F1")])
        assert get_troupe(db_engine, troupe_id).event_types == []

    def test_hard_cap(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, event_types_left=100)
        for i in range(MAX_EVENT_TYPES):
            add_event_type(db_engine, troupe_id, f"Type {i}", 1)
        with pytest.raises(MyTroupeError):
            add_event_type(db_engine, troupe_id, "One too many", 1)

    def test_missing_troupe(self, db_engine):
        with pytest.raises(TroupeNotFoundError):
            add_event_type(db_engine, "missing", "Show", 1)


class TestDeleteTroupe:
    def test_removes_dependents(self, db_engine, troupe_id):
        add_event_type(db_engine, troupe_id, "Show", 1)
        delete_troupe(db_engine, troupe_id)

        with Session(db_engine) as session:
            assert session.get(Troupe, troupe_id) is None
            assert session.get(TroupeLimit, troupe_id) is None
            assert session.scalars(select(EventType)).all() == []

    def test_missing(self, db_engine):
        with pytest.raises(TroupeNotFoundError):
            delete_troupe(db_engine, "missing")
