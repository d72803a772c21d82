"""
mytroupe.sources.gforms — Google Forms Delegate
=================================================

Fields are form question IDs.  Each form response is one attendee;
responses last submitted after the sync cutoff are left for the next run.
"""

from __future__ import annotations

import logging
from datetime import datetime

from mytroupe.constants import GOOGLE_FORMS, get_data_source_id
from mytroupe.database.models import Event
from mytroupe.engine.properties import as_utc, parse_timestamp
from mytroupe.errors import InvariantViolation
from mytroupe.integrations.google import execute
from mytroupe.sources.base import EventDataService, register_source

logger = logging.getLogger(__name__)


def _first_answer(answer: dict):
    texts = (answer.get("textAnswers") or {}).get("answers") or []
    return texts[0].get("value") if texts else None


@register_source(GOOGLE_FORMS)
class GoogleFormsEventDataService(EventDataService):
    """Reads form questions + responses through the Forms v1 API."""

    async def ready(self) -> None:
        if self.clients.forms is None:
            raise InvariantViolation("Google Forms client is not configured")

    async def discover_audience(self, event: Event, cutoff: datetime) -> None:
        form_id = get_data_source_id(GOOGLE_FORMS, event.source_uri)
        if form_id is None:
            logger.warning("Event %s has an invalid form URI %r", event.id, event.source_uri)
            return

        forms = self.clients.forms().forms()  # pylint: disable=no-member
        form = await execute(forms.get(formId=form_id))

        fields: dict[str, str] = {}
        for item in form.get("items", []):
            question = (item.get("questionItem") or {}).get("question")
            if question and question.get("questionId"):
                fields[question["questionId"]] = item.get("title", "")
        self.register_fields(event, fields)

        cutoff = as_utc(cutoff)
        credited = 0
        page_token = None
        while True:
            page = await execute(forms.responses().list(formId=form_id, pageToken=page_token))
            for response in page.get("responses", []):
                submitted = parse_timestamp(
                    response.get("lastSubmittedTime") or response.get("createTime")
                )
                if submitted is not None and submitted > cutoff:
                    continue
                answers = {
                    question_id: _first_answer(answer)
                    for question_id, answer in (response.get("answers") or {}).items()
                }
                if self.merge_response(event, answers):
                    credited += 1
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Form %s credited %d responses", form_id, credited)
