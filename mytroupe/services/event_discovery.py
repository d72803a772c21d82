"""
mytroupe.services.event_discovery — Folder Traversal & Event Discovery
========================================================================

Walks every Drive folder owned by the troupe's event types and turns
each form / sheet it finds into a candidate :class:`Event`.

How it works:
    1. Load the troupe's stored events into ``state.event_map`` (keyed by
       source URI).  Stored events are never dropped by a sync.
    2. Seed the claim table from each event type's declared folders, in
       declaration order, resolving duplicates with the tie-break.
    3. Pop folders LIFO and list their children:
       * a failed listing drops the folder from its owner and moves on;
       * a sub-folder is claimed for the expanding owner (folders no
         event type owned after the last sync consume the
         ``source_folder_uris_left`` quota);
       * a known event only gets a missing event type filled in;
       * an unknown event is created while ``events_left`` allows.
    4. Record each event type's final folder set in
       ``synchronized_source_folder_uris`` for the commit step.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mytroupe.constants import (
    DRIVE_FOLDER,
    DRIVE_FOLDER_MIME,
    MIME_TYPE_TO_SOURCE,
    get_data_source_id,
    get_data_source_url,
)
from mytroupe.database.models import Event, new_id
from mytroupe.engine.claims import DiscoveryEventType, FolderClaimTable
from mytroupe.engine.properties import parse_timestamp
from mytroupe.engine.state import EVENTS_LEFT, FOLDERS_LEFT, EventData, SyncState

logger = logging.getLogger(__name__)


class FolderLister(Protocol):
    async def list_children(self, folder_id: str) -> list[dict]:
        """Immediate children as ``{id, name, mimeType, createdTime}`` dicts."""


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_events(engine: Engine, troupe_id: str) -> list[Event]:
    """Detached copies of every stored event for *troupe_id*."""
    with Session(engine, expire_on_commit=False) as session:
        return list(session.scalars(
            select(Event).where(Event.troupe_id == troupe_id).order_by(Event.start_date)
        ).all())


def seed_event_map(state: SyncState, events: list[Event]) -> None:
    for event in events:
        event.synchronized_source = event.source
        event.synchronized_source_uri = event.source_uri
        event.synchronized_field_to_property_map = dict(event.field_to_property_map or {})
        state.event_map[event.source_uri] = EventData(event=event, from_coll=True)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def seed_claims(state: SyncState) -> FolderClaimTable:
    """Claim every declared folder for its event type, in declaration order."""
    table = FolderClaimTable(state.event_types)
    for discovery_type in table.arena:
        for uri in discovery_type.event_type.source_folder_uris or []:
            folder_id = get_data_source_id(DRIVE_FOLDER, uri)
            if folder_id is None:
                logger.warning(
                    "Event type %r has an invalid folder URI %r; skipping",
                    discovery_type.event_type.title, uri,
                )
                continue
            table.claim(folder_id, discovery_type.index)
    return table


def _admit_file(state: SyncState, owner: DiscoveryEventType, child: dict) -> None:
    source = MIME_TYPE_TO_SOURCE[child["mimeType"]]
    source_uri = get_data_source_url(source, child["id"])
    event_type = owner.event_type

    known = state.event_map.get(source_uri)
    if known is not None:
        event = known.event
        if not event.event_type_id:
            event.event_type_id = event_type.id
            event.event_type_title = event_type.title
            event.value = event_type.value
        return

    if not state.limits.consume(EVENTS_LEFT):
        logger.debug("Events quota exhausted; ignoring %s", source_uri)
        return

    event = Event(
        id=new_id(),
        troupe_id=state.troupe_id,
        title=child.get("name") or "Untitled",
        source=source,
        synchronized_source=source,
        source_uri=source_uri,
        synchronized_source_uri=source_uri,
        start_date=parse_timestamp(child.get("createdTime")) or state.started_at,
        event_type_id=event_type.id,
        event_type_title=event_type.title,
        value=event_type.value,
        field_to_property_map={},
        synchronized_field_to_property_map={},
        last_updated=state.started_at,
    )
    state.event_map[source_uri] = EventData(event=event, from_coll=False)


def _known_folder_ids(state: SyncState) -> set[str]:
    """Folders some event type already owned after the last sync (already paid for)."""
    known = set()
    for event_type in state.event_types:
        for uri in event_type.synchronized_source_folder_uris or []:
            folder_id = get_data_source_id(DRIVE_FOLDER, uri)
            if folder_id is not None:
                known.add(folder_id)
    return known


def _admit_folder(
    state: SyncState,
    table: FolderClaimTable,
    owner: DiscoveryEventType,
    folder_id: str,
    known: set[str],
) -> None:
    is_new = not table.is_claimed(folder_id) and folder_id not in known
    if is_new and not state.limits.consume(FOLDERS_LEFT):
        logger.debug("Folder quota exhausted; ignoring sub-folder %s", folder_id)
        return
    table.claim(folder_id, owner.index)


def record_folder_ownership(table: FolderClaimTable) -> None:
    """Mirror the final claim table onto each event type's synchronized folder list."""
    for discovery_type in table.arena:
        discovery_type.event_type.synchronized_source_folder_uris = [
            get_data_source_url(DRIVE_FOLDER, folder_id)
            for folder_id in discovery_type.folder_ids
        ]


async def discover_events(state: SyncState, lister: FolderLister) -> FolderClaimTable:
    """Traverse the troupe's folders and fill ``state.event_map``.

    Returns the final claim table so callers can inspect ownership.
    """
    table = seed_claims(state)
    known = _known_folder_ids(state)
    listed = failed = 0

    while (item := table.next_folder()) is not None:
        folder_id, owner = item
        try:
            children = await lister.list_children(folder_id)
        except Exception as exc:
            logger.warning(
                "Error getting data for folder %s (%r); skipping: %s",
                folder_id, owner.event_type.title, exc,
            )
            table.release(folder_id)
            failed += 1
            continue
        listed += 1

        for child in children:
            mime_type = child.get("mimeType")
            if mime_type == DRIVE_FOLDER_MIME:
                _admit_folder(state, table, owner, child["id"], known)
            elif mime_type in MIME_TYPE_TO_SOURCE:
                _admit_file(state, owner, child)

    record_folder_ownership(table)
    logger.info(
        "Event discovery for troupe %s: %d folders listed, %d failed, %d events known",
        state.troupe_id, listed, failed, len(state.event_map),
    )
    return table
