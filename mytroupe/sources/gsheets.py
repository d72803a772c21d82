"""
mytroupe.sources.gsheets — Google Sheets Delegate
===================================================

The first row of the first sheet holds the headers; headers double as
field IDs.  Sheets fed by a form carry a ``Timestamp`` column, and rows
stamped after the sync cutoff are skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime

from dateutil import parser as dateparser

from mytroupe.constants import GOOGLE_SHEETS, get_data_source_id
from mytroupe.database.models import Event
from mytroupe.engine.properties import as_utc
from mytroupe.errors import InvariantViolation
from mytroupe.integrations.google import execute
from mytroupe.sources.base import EventDataService, register_source

logger = logging.getLogger(__name__)

TIMESTAMP_HEADER = "Timestamp"
SHEET_RANGE = "A1:ZZ"


def _row_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return as_utc(dateparser.parse(value))
    except (ValueError, OverflowError):
        return None


@register_source(GOOGLE_SHEETS)
class GoogleSheetsEventDataService(EventDataService):
    """Reads sign-in rows through the Sheets v4 API."""

    async def ready(self) -> None:
        if self.clients.sheets is None:
            raise InvariantViolation("Google Sheets client is not configured")

    async def discover_audience(self, event: Event, cutoff: datetime) -> None:
        sheet_id = get_data_source_id(GOOGLE_SHEETS, event.source_uri)
        if sheet_id is None:
            logger.warning("Event %s has an invalid sheet URI %r", event.id, event.source_uri)
            return

        sheet = self.clients.sheets().spreadsheets()  # pylint: disable=no-member
        result = await execute(
            sheet.values().get(spreadsheetId=sheet_id, range=SHEET_RANGE)
        )
        rows = result.get("values", [])
        if not rows:
            return

        headers = [str(h).strip() for h in rows[0]]
        self.register_fields(event, {h: h for h in headers if h})

        cutoff = as_utc(cutoff)
        credited = 0
        for row in rows[1:]:
            data = dict(zip(headers, row))
            stamped = _row_timestamp(data.get(TIMESTAMP_HEADER))
            if stamped is not None and stamped > cutoff:
                continue
            if self.merge_response(event, data):
                credited += 1

        logger.debug("Sheet %s credited %d rows", sheet_id, credited)
