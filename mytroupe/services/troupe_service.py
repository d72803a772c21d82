"""
mytroupe.services.troupe_service — Troupe Provisioning & Lock Recovery
=======================================================================

Creates troupes with their default schema, dashboard and quota ledger,
adds event types, extends a running sync's lease and clears stuck locks.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from mytroupe.constants import (
    DEFAULT_MEMBER_PROPERTY_TYPES,
    DEFAULT_POINT_TYPES,
    MAX_EVENT_TYPES,
)
from mytroupe.database.engine import get_session
from mytroupe.database.models import (
    Event,
    EventsAttendedBucket,
    EventType,
    Member,
    Troupe,
    TroupeDashboard,
    TroupeLimit,
    new_id,
)
from mytroupe.errors import LimitsExceededError, MyTroupeError, TroupeNotFoundError
from mytroupe.services.limit_service import create_default_limits, increment_limits

logger = logging.getLogger(__name__)


def create_troupe(engine: Engine, name: str, log_sheet_uri: str | None = None) -> str:
    """Create a troupe with default schema, empty dashboard and limits.

    Returns the new troupe ID.
    """
    troupe_id = new_id()
    with get_session(engine) as session:
        session.add(Troupe(
            id=troupe_id,
            name=name,
            log_sheet_uri=log_sheet_uri,
            member_property_types=dict(DEFAULT_MEMBER_PROPERTY_TYPES),
            point_types={k: dict(v) for k, v in DEFAULT_POINT_TYPES.items()},
            sync_lock=False,
        ))
        session.flush()
        session.add(TroupeDashboard(
            id=new_id(),
            troupe_id=troupe_id,
            upcoming_birthdays={
                "frequency": "monthly",
                "desired_frequency": "monthly",
                "members": [],
            },
        ))
        create_default_limits(session, troupe_id)

    logger.info("Created troupe %s (%r)", troupe_id, name)
    return troupe_id


def get_troupe(engine: Engine, troupe_id: str) -> Troupe:
    """Detached troupe with its event types loaded."""
    with Session(engine, expire_on_commit=False) as session:
        troupe = session.get(
            Troupe, troupe_id, options=[selectinload(Troupe.event_types)]
        )
        if troupe is None:
            raise TroupeNotFoundError(troupe_id)
        return troupe


def add_event_type(
    engine: Engine,
    troupe_id: str,
    title: str,
    value: int,
    source_folder_uris: list[str] | None = None,
) -> str:
    """Append an event type to the troupe.  Returns its ID."""
    with get_session(engine) as session:
        if session.get(Troupe, troupe_id) is None:
            raise TroupeNotFoundError(troupe_id)

        count = session.scalar(
            select(func.count()).select_from(EventType).where(EventType.troupe_id == troupe_id)
        ) or 0
        if count >= MAX_EVENT_TYPES:
            raise MyTroupeError(f"Troupe {troupe_id} already has {MAX_EVENT_TYPES} event types")
        folder_uris = list(source_folder_uris or [])
        if not increment_limits(
            engine, None, troupe_id,
            {"event_types_left": -1, "source_folder_uris_left": -len(folder_uris)},
            session=session,
        ):
            raise LimitsExceededError(f"Operation not within limits for troupe {troupe_id}")

        event_type = EventType(
            id=new_id(),
            troupe_id=troupe_id,
            title=title,
            value=value,
            source_folder_uris=folder_uris,
            synchronized_source_folder_uris=list(folder_uris),
            position=count,
        )
        session.add(event_type)
        return event_type.id


def delete_troupe(engine: Engine, troupe_id: str) -> None:
    """Remove the troupe and everything that hangs off it."""
    with get_session(engine) as session:
        for model in (EventsAttendedBucket, Member, Event, EventType, TroupeDashboard, TroupeLimit):
            session.execute(delete(model).where(model.troupe_id == troupe_id))
        result = session.execute(delete(Troupe).where(Troupe.id == troupe_id))
        if result.rowcount != 1:
            raise TroupeNotFoundError(troupe_id)
    logger.info("Deleted troupe %s", troupe_id)


def force_unlock(engine: Engine, troupe_id: str) -> bool:
    """Clear a sync lock regardless of owner (manual recovery after a crash).

    Returns ``True`` if a lock was actually held.
    """
    with get_session(engine) as session:
        result = session.execute(
            update(Troupe)
            .where(Troupe.id == troupe_id, Troupe.sync_lock.is_(True))
            .values(sync_lock=False, sync_lock_owner=None, sync_lock_expires_at=None)
        )
        cleared = result.rowcount == 1
    if cleared:
        logger.warning("Force-unlocked troupe %s", troupe_id)
    return cleared


def extend_lease(session: Session, troupe_id: str, owner: str, lease: timedelta) -> bool:
    """Push *owner*'s lease expiry out by *lease* inside *session*.

    Returns ``False`` when *owner* no longer holds the lease, i.e. it
    expired and another sync took it over.
    """
    result = session.execute(
        update(Troupe)
        .where(
            Troupe.id == troupe_id,
            Troupe.sync_lock.is_(True),
            Troupe.sync_lock_owner == owner,
        )
        .values(sync_lock_expires_at=datetime.now(UTC) + lease)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
