"""
mytroupe.sources.base — Discovery Delegate Contract & Registry
===============================================================

A discovery delegate reads one event's origin document (a form, a
sheet, …) and merges its attendance signals into the shared
:class:`~mytroupe.engine.state.SyncState`.

New source kinds plug in with :func:`register_source`; the audience
service looks delegates up by ``event.source`` and never needs to know
the concrete classes::

    @register_source("Google Forms")
    class GoogleFormsEventDataService(EventDataService):
        async def discover_audience(self, event, cutoff): ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

from mytroupe.constants import MEMBER_ID_PROPERTY
from mytroupe.database.models import Event
from mytroupe.engine.properties import as_utc, coerce_value, parse_property_type
from mytroupe.engine.state import SyncState

logger = logging.getLogger(__name__)


@dataclass
class SourceClients:
    """Factories for the Google API services handed to delegates.

    googleapiclient services share one HTTP connection and are not
    thread-safe, while delegates run concurrently.  Each
    :meth:`EventDataService.discover_audience` call therefore builds its
    own service and keeps it to itself.
    """

    drive: Callable[[], Any] | None = None
    forms: Callable[[], Any] | None = None
    sheets: Callable[[], Any] | None = None


class EventDataService(ABC):
    """Base class for source-kind-specific audience discovery."""

    source: ClassVar[str] = ""

    def __init__(self, state: SyncState, clients: SourceClients) -> None:
        self.state = state
        self.clients = clients

    async def ready(self) -> None:
        """Finish any setup before :meth:`discover_audience` may run."""

    @abstractmethod
    async def discover_audience(self, event: Event, cutoff: datetime) -> None:
        """Merge every attendee of *event* seen up to *cutoff* into the state."""

    # -- Shared merge helpers -------------------------------------------

    def register_fields(self, event: Event, fields: dict[str, str]) -> None:
        """Make sure every source field has a mapping entry.

        *fields* maps field ID → human title.  A new field whose title
        matches a troupe property (case-insensitive) is mapped to it;
        operator-overridden mappings are never touched.
        """
        by_title = {name.lower(): name for name in self.state.troupe.member_property_types}
        mapping = dict(event.field_to_property_map or {})

        for field_id, title in fields.items():
            entry = mapping.get(field_id)
            if entry is not None and (entry.get("override") or entry.get("property")):
                continue
            mapping[field_id] = {
                "property": by_title.get((title or "").strip().lower()),
                "override": False,
            }

        event.field_to_property_map = mapping
        event.synchronized_field_to_property_map = dict(mapping)

    def merge_response(self, event: Event, answers: dict[str, Any]) -> bool:
        """Merge one response / row (field ID → raw value) into the state.

        Returns ``True`` when the response was credited to a member.
        """
        mapping = event.field_to_property_map or {}
        member_field = next(
            (f for f, entry in mapping.items() if entry.get("property") == MEMBER_ID_PROPERTY),
            None,
        )
        if member_field is None:
            return False

        raw_id = answers.get(member_field)
        member_id = str(raw_id).strip() if raw_id is not None else ""
        if not member_id:
            return False

        attendee = self.state.get_or_create_attendee(member_id)
        if attendee is None:
            return False
        self.state.record_attendance(attendee, event)

        schema = self.state.troupe.member_property_types
        rank = (as_utc(event.start_date), event.source_uri)
        attendee.set_property(MEMBER_ID_PROPERTY, member_id, rank)
        for field_id, entry in mapping.items():
            prop = entry.get("property")
            if not prop or prop == MEMBER_ID_PROPERTY or prop not in schema:
                continue
            if field_id not in answers:
                continue
            base_type, _ = parse_property_type(schema[prop])
            value = coerce_value(base_type, answers[field_id])
            if value is None:
                continue
            attendee.set_property(prop, value, rank)
        return True


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
_REGISTRY: dict[str, type[EventDataService]] = {}


def register_source(kind: str):
    """Class decorator registering a delegate for source *kind*."""

    def decorator(cls: type[EventDataService]) -> type[EventDataService]:
        if kind in _REGISTRY and _REGISTRY[kind] is not cls:
            raise ValueError(f"Source kind {kind!r} is already registered")
        cls.source = kind
        _REGISTRY[kind] = cls
        return cls

    return decorator


def get_delegate_class(kind: str | None) -> type[EventDataService] | None:
    """The delegate registered for *kind*, or ``None`` if unknown / unset."""
    if not kind:
        return None
    return _REGISTRY.get(kind)


def registered_sources() -> list[str]:
    return sorted(_REGISTRY)
