"""
mytroupe.errors — Domain Exceptions
====================================

Every error the sync engine raises on purpose derives from
:class:`MyTroupeError` so callers can tell engine failures apart from
bugs and driver errors.
"""

from __future__ import annotations


class MyTroupeError(Exception):
    """Base class for all MyTroupe errors."""


class TroupeNotFoundError(MyTroupeError):
    """The requested troupe does not exist."""

    def __init__(self, troupe_id: str) -> None:
        super().__init__(f"Unable to find troupe {troupe_id}")
        self.troupe_id = troupe_id


class SyncLockedError(MyTroupeError):
    """The troupe is already being synced by someone else."""

    def __init__(self, troupe_id: str) -> None:
        super().__init__(f"Troupe {troupe_id} is already being synced")
        self.troupe_id = troupe_id


class LimitsExceededError(MyTroupeError):
    """A quota ledger increment would drive a counter below zero."""


class InvariantViolation(MyTroupeError):
    """An expected document or database acknowledgment is missing."""


class LeaseLostError(MyTroupeError):
    """Another sync took over the troupe lease while this one was running."""

    def __init__(self, troupe_id: str, owner: str) -> None:
        super().__init__(f"Sync {owner} no longer holds the lease on troupe {troupe_id}")
        self.troupe_id = troupe_id
        self.owner = owner
