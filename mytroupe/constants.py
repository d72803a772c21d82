"""
mytroupe.constants — Shared Constants & Helpers
=================================================

Single source of truth for troupe limits, Google MIME types, source URL
formats and the default member schema.  Import from here instead of
duplicating in services, delegates, and tests.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
MAX_EVENT_TYPES = 10
MAX_PAGE_SIZE = 30  # Attendance records per bucket page
FULL_DAY = timedelta(days=1)

# ---------------------------------------------------------------------------
# Member schema
# ---------------------------------------------------------------------------
MEMBER_ID_PROPERTY = "Member ID"
FIRST_NAME_PROPERTY = "First Name"
LAST_NAME_PROPERTY = "Last Name"
BIRTHDAY_PROPERTY = "Birthday"
TOTAL_POINT_TYPE = "Total"

DEFAULT_MEMBER_PROPERTY_TYPES: dict[str, str] = {
    "First Name": "string!",
    "Middle Name": "string?",
    "Last Name": "string!",
    "Member ID": "string!",
    "Email": "string!",
    "Birthday": "date!",
}

DEFAULT_POINT_TYPES: dict[str, dict[str, str]] = {
    TOTAL_POINT_TYPE: {
        "start_date": datetime(1970, 1, 1, tzinfo=UTC).isoformat(),
        "end_date": datetime(2065, 1, 24, tzinfo=UTC).isoformat(),
    },
}

BIRTHDAY_FREQUENCIES = ("weekly", "monthly")

# ---------------------------------------------------------------------------
# Event data sources
# ---------------------------------------------------------------------------
DRIVE_FOLDER = "Google Drive Folder"
GOOGLE_FORMS = "Google Forms"
GOOGLE_SHEETS = "Google Sheets"

DRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"

# Source kind → Drive MIME type for every kind that can hold an audience
EVENT_DATA_SOURCE_MIME_TYPES: dict[str, str] = {
    GOOGLE_FORMS: "application/vnd.google-apps.form",
    GOOGLE_SHEETS: "application/vnd.google-apps.spreadsheet",
}
MIME_TYPE_TO_SOURCE: dict[str, str] = {
    mime: source for source, mime in EVENT_DATA_SOURCE_MIME_TYPES.items()
}

DATA_SOURCE_URL_TEMPLATES: dict[str, str] = {
    DRIVE_FOLDER: "https://drive.google.com/drive/folders/{id}",
    GOOGLE_FORMS: "https://docs.google.com/forms/d/{id}/edit",
    GOOGLE_SHEETS: "https://docs.google.com/spreadsheets/d/{id}/edit",
}

DATA_SOURCE_REGEXES: dict[str, re.Pattern[str]] = {
    DRIVE_FOLDER: re.compile(r"^https://drive\.google\.com/drive/(?:u/\d+/)?folders/(?P<id>[\w-]+)"),
    GOOGLE_FORMS: re.compile(r"^https://docs\.google\.com/forms/d/(?P<id>[\w-]+)"),
    GOOGLE_SHEETS: re.compile(r"^https://docs\.google\.com/spreadsheets/d/(?P<id>[\w-]+)"),
}


def get_data_source_id(source: str, uri: str) -> str | None:
    """Extract the Google file/folder ID from *uri* for the given *source*.

    Returns ``None`` when *source* is unknown or *uri* doesn't match.
    """
    pattern = DATA_SOURCE_REGEXES.get(source)
    if pattern is None:
        return None
    match = pattern.match(uri)
    return match.group("id") if match else None


def get_data_source_url(source: str, source_id: str) -> str:
    """Build the canonical URI for *source_id* so URIs compare reliably."""
    return DATA_SOURCE_URL_TEMPLATES[source].format(id=source_id)
