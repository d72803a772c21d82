"""
mytroupe.services.sync_service — Troupe Sync Orchestrator
===========================================================

Runs one full sync of one troupe:

    Idle → Locked → Discovering → Persisting → (Publishing) → Idle

The troupe lock is a lease (owner ID + expiry) stored on the troupe row.
Acquiring it is a single conditional UPDATE, so two syncs can't both
win; an expired lease may be taken over, which bounds the damage of a
crash mid-sync.  A running sync renews its lease after folder traversal
and again inside the commit transaction; if another sync has taken the
lease over by then, this run stops with :class:`LeaseLostError` and
writes nothing.  Release only clears a lease this run still owns and
always runs, whatever happened in between.

Every outcome comes back as a :class:`SyncResult` instead of being
swallowed: ``locked`` if another sync holds the troupe, ``failed`` with
the error and phase if any step raised, ``completed`` otherwise.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, or_, select, update
from sqlalchemy.orm import Session, selectinload

from mytroupe.constants import MAX_PAGE_SIZE
from mytroupe.database.engine import get_session, run_db
from mytroupe.database.models import Troupe, TroupeDashboard, TroupeLimit, new_id
from mytroupe.engine.state import LimitProjection, SyncState
from mytroupe.errors import (
    InvariantViolation,
    LeaseLostError,
    MyTroupeError,
    SyncLockedError,
    TroupeNotFoundError,
)
from mytroupe.integrations.google import DriveFolderLister
from mytroupe.services.audience_service import discover_audience, load_members, seed_attendees
from mytroupe.services.event_discovery import (
    FolderLister,
    discover_events,
    load_events,
    seed_event_map,
)
from mytroupe.services.limit_service import limits_to_dict
from mytroupe.services.log_service import TroupeLogService, build_log_payload
from mytroupe.services.persistence_service import build_plan, commit_plan
from mytroupe.services.troupe_service import extend_lease
from mytroupe.sources.base import SourceClients

logger = logging.getLogger(__name__)

DEFAULT_LEASE = timedelta(minutes=30)


class SyncStatus(enum.StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    LOCKED = "locked"


class SyncPhase(enum.StrEnum):
    IDLE = "idle"
    LOCKED = "locked"
    DISCOVERING = "discovering"
    PERSISTING = "persisting"
    PUBLISHING = "publishing"


@dataclass
class SyncResult:
    """Outcome of one :meth:`SyncService.sync` call."""

    troupe_id: str
    status: SyncStatus = SyncStatus.FAILED
    phase: SyncPhase = SyncPhase.IDLE  # Last phase entered
    error: str | None = None
    summary: dict[str, int] = field(default_factory=dict)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Turn a non-completed result back into an exception."""
        if self.status == SyncStatus.LOCKED:
            raise SyncLockedError(self.troupe_id)
        if self.status == SyncStatus.FAILED:
            raise MyTroupeError(
                f"Sync of troupe {self.troupe_id} failed during {self.phase}: {self.error}"
            )


# ---------------------------------------------------------------------------
# Lease
# ---------------------------------------------------------------------------

def acquire_lock(engine: Engine, troupe_id: str, owner: str, lease: timedelta) -> bool:
    """Take the troupe's sync lease if it is free or expired.

    Raises :class:`TroupeNotFoundError` when the troupe doesn't exist.
    """
    now = datetime.now(UTC)
    with get_session(engine) as session:
        result = session.execute(
            update(Troupe)
            .where(
                Troupe.id == troupe_id,
                or_(Troupe.sync_lock.is_(False), Troupe.sync_lock_expires_at < now),
            )
            .values(sync_lock=True, sync_lock_owner=owner, sync_lock_expires_at=now + lease)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return True
        if session.get(Troupe, troupe_id) is None:
            raise TroupeNotFoundError(troupe_id)
        return False


def release_lock(engine: Engine, troupe_id: str, owner: str) -> bool:
    """Clear the lease if *owner* still holds it."""
    with get_session(engine) as session:
        result = session.execute(
            update(Troupe)
            .where(Troupe.id == troupe_id, Troupe.sync_lock_owner == owner)
            .values(sync_lock=False, sync_lock_owner=None, sync_lock_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def renew_lock(engine: Engine, troupe_id: str, owner: str, lease: timedelta) -> None:
    """Extend *owner*'s lease, or raise :class:`LeaseLostError` if it was taken over."""
    with get_session(engine) as session:
        if not extend_lease(session, troupe_id, owner, lease):
            raise LeaseLostError(troupe_id, owner)


# ---------------------------------------------------------------------------
# State loading
# ---------------------------------------------------------------------------

def load_sync_state(engine: Engine, troupe_id: str, started_at: datetime) -> SyncState:
    """Read the troupe, its dashboard and its quota snapshot."""
    with Session(engine, expire_on_commit=False) as session:
        troupe = session.get(Troupe, troupe_id, options=[selectinload(Troupe.event_types)])
        if troupe is None:
            raise TroupeNotFoundError(troupe_id)

        dashboard = session.scalar(
            select(TroupeDashboard).where(TroupeDashboard.troupe_id == troupe_id)
        )
        if dashboard is None:
            raise InvariantViolation(f"Failed to get dashboard for troupe {troupe_id}")

        limits = session.get(TroupeLimit, troupe_id)
        if limits is None:
            raise InvariantViolation(f"No limits document found for troupe {troupe_id}")

        return SyncState(
            troupe=troupe,
            event_types=list(troupe.event_types),
            dashboard=dashboard,
            limits=LimitProjection(snapshot=limits_to_dict(limits)),
            started_at=started_at,
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SyncService:
    """Sequences discovery, persistence and publication for one troupe at a time."""

    def __init__(
        self,
        engine: Engine,
        clients: SourceClients,
        *,
        lister: FolderLister | None = None,
        log_service: TroupeLogService | None = None,
        lease: timedelta = DEFAULT_LEASE,
        page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self.engine = engine
        self.clients = clients
        self.lister = lister if lister is not None else DriveFolderLister(clients.drive())
        self.log_service = log_service
        self.lease = lease
        self.page_size = page_size

    async def sync(self, troupe_id: str, skip_log_publish: bool = False) -> SyncResult:
        """Sync *troupe_id* and report how it went.  Never leaves the lease held."""
        started_at = datetime.now(UTC)
        result = SyncResult(troupe_id=troupe_id, started_at=started_at)
        owner = new_id()

        try:
            acquired = await run_db(acquire_lock, self.engine, troupe_id, owner, self.lease)
        except TroupeNotFoundError as exc:
            result.error = str(exc)
            result.finished_at = datetime.now(UTC)
            return result

        if not acquired:
            logger.warning("Troupe %s is already being synced", troupe_id)
            result.status = SyncStatus.LOCKED
            result.finished_at = datetime.now(UTC)
            return result

        result.phase = SyncPhase.LOCKED
        lease_lost = False
        try:
            await self._run(troupe_id, owner, started_at, result, skip_log_publish)
        except LeaseLostError as exc:
            # The new holder owns the troupe now; nothing of ours was written.
            logger.warning("%s during %s", exc, result.phase)
            lease_lost = True
            result.status = SyncStatus.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
        except Exception as exc:
            logger.exception(
                "Unable to complete sync of troupe %s during %s", troupe_id, result.phase
            )
            result.status = SyncStatus.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
        finally:
            try:
                released = await run_db(release_lock, self.engine, troupe_id, owner)
            except Exception:
                logger.exception("Unlock of troupe %s raised", troupe_id)
                released = False
            if not released and not lease_lost:
                logger.error("Failed to unlock troupe %s after sync", troupe_id)
                result.status = SyncStatus.FAILED
                result.error = result.error or "Failed to unlock troupe after sync"
            result.finished_at = datetime.now(UTC)

        return result

    async def _run(
        self,
        troupe_id: str,
        owner: str,
        started_at: datetime,
        result: SyncResult,
        skip_log_publish: bool,
    ) -> None:
        result.phase = SyncPhase.DISCOVERING
        state = await run_db(load_sync_state, self.engine, troupe_id, started_at)
        seed_event_map(state, await run_db(load_events, self.engine, troupe_id))
        await discover_events(state, self.lister)
        await run_db(renew_lock, self.engine, troupe_id, owner, self.lease)
        seed_attendees(state, await run_db(load_members, self.engine, troupe_id))
        await discover_audience(state, self.clients, started_at)

        result.phase = SyncPhase.PERSISTING
        plan = build_plan(state, datetime.now(UTC), self.page_size)
        result.summary = await run_db(commit_plan, self.engine, plan, owner, self.lease)
        result.status = SyncStatus.COMPLETED

        if skip_log_publish or self.log_service is None:
            return

        result.phase = SyncPhase.PUBLISHING
        events, attendees = build_log_payload(state)
        try:
            await self.log_service.update_log(
                state.troupe.log_sheet_uri, state.troupe, events, attendees
            )
        except Exception as exc:
            # The commit stands; only publication failed.
            logger.exception("Log publication failed for troupe %s", troupe_id)
            result.status = SyncStatus.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
