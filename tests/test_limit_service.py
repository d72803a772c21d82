"""
tests/test_limit_service.py — Quota Ledger Tests
==================================================
"""

from __future__ import annotations

import pytest

from conftest import set_limits
from mytroupe.database.engine import get_session
from mytroupe.services.limit_service import (
    DEFAULT_LIMITS,
    commit_bypass,
    get_limits,
    increment_limits,
    set_bypass,
    within_limits,
)


class TestIncrement:
    def test_defaults_created_with_troupe(self, db_engine, troupe_id):
        assert get_limits(db_engine, troupe_id) == DEFAULT_LIMITS

    def test_missing_troupe(self, db_engine):
        assert get_limits(db_engine, "nope") is None
        assert increment_limits(db_engine, None, "nope", {"events_left": -1}) is False

    def test_applies_signed_delta(self, db_engine, troupe_id):
        assert increment_limits(db_engine, None, troupe_id, {"events_left": -4, "members_left": 2})
        limits = get_limits(db_engine, troupe_id)
        assert limits["events_left"] == DEFAULT_LIMITS["events_left"] - 4
        assert limits["members_left"] == DEFAULT_LIMITS["members_left"] + 2

    def test_refusal_writes_nothing(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, events_left=1)
        before = get_limits(db_engine, troupe_id)

        ok = increment_limits(db_engine, None, troupe_id, {"events_left": -2, "members_left": -1})

        assert ok is False
        assert get_limits(db_engine, troupe_id) == before

    def test_unknown_counter_rejected(self, db_engine, troupe_id):
        with pytest.raises(ValueError):
            increment_limits(db_engine, None, troupe_id, {"widgets_left": -1})

    def test_joins_caller_transaction(self, db_engine, troupe_id):
        with pytest.raises(RuntimeError):
            with get_session(db_engine) as session:
                assert increment_limits(
                    db_engine, None, troupe_id, {"events_left": -1}, session=session
                )
                raise RuntimeError("abort")
        assert get_limits(db_engine, troupe_id) == DEFAULT_LIMITS


class TestWithinLimits:
    def test_checks_without_writing(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, members_left=2)
        assert within_limits(db_engine, None, troupe_id, {"members_left": -2})
        assert not within_limits(db_engine, None, troupe_id, {"members_left": -3})
        assert get_limits(db_engine, troupe_id)["members_left"] == 2

    def test_counts_pending_bypassed_deltas(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, members_left=2)
        context = set_bypass(None, troupe_id, True)
        increment_limits(db_engine, context, troupe_id, {"members_left": -2})

        assert not within_limits(db_engine, context, troupe_id, {"members_left": -1})


class TestBypass:
    def test_bypass_records_instead_of_applying(self, db_engine, troupe_id):
        context = set_bypass(None, troupe_id, True)
        assert increment_limits(db_engine, context, troupe_id, {"events_left": -3})
        assert increment_limits(db_engine, context, troupe_id, {"events_left": -2})

        assert context.pending == {"events_left": -5}
        assert get_limits(db_engine, troupe_id) == DEFAULT_LIMITS

    def test_commit_bypass_applies_aggregate(self, db_engine, troupe_id):
        context = set_bypass(None, troupe_id, True)
        increment_limits(db_engine, context, troupe_id, {"events_left": -3})

        assert commit_bypass(db_engine, context)
        assert context.pending == {}
        assert not context.bypass
        assert get_limits(db_engine, troupe_id)["events_left"] == DEFAULT_LIMITS["events_left"] - 3

    def test_commit_bypass_refused_keeps_pending(self, db_engine, troupe_id):
        set_limits(db_engine, troupe_id, events_left=1)
        context = set_bypass(None, troupe_id, True)
        increment_limits(db_engine, context, troupe_id, {"events_left": -2})

        assert commit_bypass(db_engine, context) is False
        assert context.pending == {"events_left": -2}
        assert get_limits(db_engine, troupe_id)["events_left"] == 1

    def test_set_bypass_off_keeps_context(self, db_engine, troupe_id):
        context = set_bypass(None, troupe_id, True)
        same = set_bypass(context, troupe_id, False)
        assert same is context and not same.bypass
