"""
mytroupe.engine.properties — Member Property Typing & Point Windows
====================================================================

Pure helpers, no I/O.

Property type strings look like ``"string!"`` or ``"date?"``: a base
type followed by ``!`` (required) or ``?`` (optional).  Values are kept
JSON-safe: dates become ISO ``YYYY-MM-DD`` strings.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from dateutil import parser as dateparser

logger = logging.getLogger(__name__)

PROPERTY_BASE_TYPES = ("string", "number", "boolean", "date")

_TRUE_WORDS = {"true", "yes", "y", "1", "x", "checked"}
_FALSE_WORDS = {"false", "no", "n", "0", "", "unchecked"}


def parse_property_type(type_str: str) -> tuple[str, bool]:
    """Split ``"date!"`` into ``("date", True)``.

    Raises ``ValueError`` for unknown base types.
    """
    required = type_str.endswith("!")
    base = type_str.rstrip("!?")
    if base not in PROPERTY_BASE_TYPES:
        raise ValueError(f"Unknown property type: {type_str!r}")
    return base, required


def required_properties(member_property_types: dict[str, str]) -> list[str]:
    """Names of every property flagged required (``!``) in the schema."""
    return [
        name for name, type_str in member_property_types.items()
        if type_str.endswith("!")
    ]


def coerce_value(base_type: str, raw):
    """Convert a raw answer / cell into the declared *base_type*.

    Returns ``None`` when the value is blank or can't be parsed, so an
    unparseable answer counts as absent for required-property checks.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None

    try:
        if base_type == "string":
            return str(raw)
        if base_type == "number":
            number = float(raw)
            return int(number) if number.is_integer() else number
        if base_type == "boolean":
            word = str(raw).lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            return None
        if base_type == "date":
            if isinstance(raw, datetime):
                return raw.date().isoformat()
            if isinstance(raw, date):
                return raw.isoformat()
            return dateparser.parse(str(raw)).date().isoformat()
    except (ValueError, OverflowError):
        logger.debug("Unable to coerce %r to %s", raw, base_type)
        return None

    raise ValueError(f"Unknown property type: {base_type!r}")


# ---------------------------------------------------------------------------
# Datetime helpers
# ---------------------------------------------------------------------------

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so DB round-trips compare cleanly."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(dateparser.isoparse(value))
    except ValueError:
        return None


def matching_point_types(point_types: dict[str, dict], start_date: datetime) -> list[str]:
    """Point types whose ``[start_date, end_date]`` window contains *start_date*."""
    when = as_utc(start_date)
    matches = []
    for name, window in point_types.items():
        window_start = parse_timestamp(window.get("start_date"))
        window_end = parse_timestamp(window.get("end_date"))
        if window_start is not None and when < window_start:
            continue
        if window_end is not None and when > window_end:
            continue
        matches.append(name)
    return matches
