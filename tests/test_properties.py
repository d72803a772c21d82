"""
tests/test_properties.py — Property Typing & Point Window Tests
=================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from mytroupe.constants import DEFAULT_MEMBER_PROPERTY_TYPES, DEFAULT_POINT_TYPES
from mytroupe.engine.properties import (
    coerce_value,
    matching_point_types,
    parse_property_type,
    parse_timestamp,
    required_properties,
)


class TestPropertyTypes:
    def test_parse(self):
        assert parse_property_type("date!") == ("date", True)
        assert parse_property_type("string?") == ("string", False)

    def test_unknown_base_type(self):
        with pytest.raises(ValueError):
            parse_property_type("color!")

    def test_default_required_properties(self):
        assert required_properties(DEFAULT_MEMBER_PROPERTY_TYPES) == [
            "First Name", "Last Name", "Member ID", "Email", "Birthday",
        ]


class TestCoerceValue:
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_is_absent(self, raw):
        assert coerce_value("string", raw) is None

    def test_number(self):
        assert coerce_value("number", "42") == 42
        assert coerce_value("number", "2.5") == 2.5
        assert coerce_value("number", "forty") is None

    def test_boolean(self):
        assert coerce_value("boolean", "Yes") is True
        assert coerce_value("boolean", "no") is False
        assert coerce_value("boolean", "maybe") is None

    def test_date(self):
        assert coerce_value("date", "3/5/1990") == "1990-03-05"
        assert coerce_value("date", "1990-03-05") == "1990-03-05"
        assert coerce_value("date", "someday") is None


class TestPointWindows:
    def test_total_spans_everything(self):
        when = datetime(2026, 1, 1, tzinfo=UTC)
        assert matching_point_types(DEFAULT_POINT_TYPES, when) == ["Total"]

    def test_window_bounds(self):
        point_types = {
            "Total": DEFAULT_POINT_TYPES["Total"],
            "Fall": {"start_date": "2025-09-01T00:00:00+00:00",
                     "end_date": "2025-12-31T23:59:59+00:00"},
        }
        assert matching_point_types(point_types, datetime(2025, 10, 1)) == ["Total", "Fall"]
        assert matching_point_types(point_types, datetime(2026, 1, 2)) == ["Total"]

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-01-10T18:00:00Z") == datetime(2026, 1, 10, 18, tzinfo=UTC)
        assert parse_timestamp("") is None
        assert parse_timestamp("garbage") is None
