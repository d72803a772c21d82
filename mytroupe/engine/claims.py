"""
mytroupe.engine.claims — Folder Ownership Table & Tie-Break
=============================================================

Pure data structure, no I/O.  Event types are kept in an arena (a list
indexed by position) and the claim table maps folder ID → arena index.

Tie-break rule when an event type claims a folder someone already owns:
the current owner keeps the folder only if its ``total_files`` is
strictly less than the challenger's.  Equal counts go to the challenger.

The worklist is strictly last-in-first-out (``list.pop()``).  Claims
are resolved in that order, so changing it changes which event type
ends up owning contested folders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mytroupe.database.models import EventType

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryEventType:
    """An event type plus its running claim count for one sync."""

    index: int
    event_type: EventType
    folder_ids: list[str] = field(default_factory=list)
    total_files: int = 0

    @property
    def id(self) -> str:
        return self.event_type.id


class FolderClaimTable:
    """Folder → owning event type, with a LIFO expansion worklist."""

    def __init__(self, event_types: list[EventType]) -> None:
        self.arena: list[DiscoveryEventType] = [
            DiscoveryEventType(index=i, event_type=et)
            for i, et in enumerate(event_types)
        ]
        self.owners: dict[str, int] = {}
        self.worklist: list[str] = []
        self._expanded: set[tuple[str, int]] = set()

    # -- Lookup --------------------------------------------------------

    def owner_of(self, folder_id: str) -> DiscoveryEventType | None:
        index = self.owners.get(folder_id)
        return self.arena[index] if index is not None else None

    def is_claimed(self, folder_id: str) -> bool:
        return folder_id in self.owners

    # -- Tie-break -----------------------------------------------------

    def tie_break(self, folder_id: str, challenger: int) -> int:
        """Return the arena index that should own *folder_id*."""
        existing = self.owner_of(folder_id)
        if existing is None:
            return challenger
        if existing.total_files < self.arena[challenger].total_files:
            return existing.index
        return challenger

    def claim(self, folder_id: str, challenger: int) -> bool:
        """Let *challenger* claim *folder_id*.

        On a transfer the previous owner's count drops by one, the
        winner's rises by one, and the folder is pushed onto the
        worklist.  Returns ``True`` when ownership changed.
        """
        winner = self.tie_break(folder_id, challenger)
        current = self.owners.get(folder_id)
        if winner == current:
            return False

        if current is not None:
            previous = self.arena[current]
            previous.total_files -= 1
            if folder_id in previous.folder_ids:
                previous.folder_ids.remove(folder_id)
            logger.debug(
                "Folder %s moves from %r to %r",
                folder_id, previous.event_type.title, self.arena[winner].event_type.title,
            )

        new_owner = self.arena[winner]
        new_owner.total_files += 1
        if folder_id not in new_owner.folder_ids:
            new_owner.folder_ids.append(folder_id)
        self.owners[folder_id] = winner
        self.worklist.append(folder_id)
        return True

    def release(self, folder_id: str) -> None:
        """Drop *folder_id* from its owner and the table (listing failed)."""
        owner = self.owner_of(folder_id)
        if owner is not None and folder_id in owner.folder_ids:
            owner.folder_ids.remove(folder_id)
        self.owners.pop(folder_id, None)

    # -- Worklist ------------------------------------------------------

    def next_folder(self) -> tuple[str, DiscoveryEventType] | None:
        """Pop the next folder to expand along with its current owner.

        A folder is expanded at most once per owner, so re-enqueued
        folders are re-listed only after a real ownership change and the
        traversal always terminates.
        """
        while self.worklist:
            folder_id = self.worklist.pop()
            owner = self.owner_of(folder_id)
            if owner is None:
                continue
            key = (folder_id, owner.index)
            if key in self._expanded:
                continue
            self._expanded.add(key)
            return folder_id, owner
        return None
