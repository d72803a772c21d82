"""
mytroupe.services.persistence_service — Bucketed Commit
=========================================================

Turns a finished :class:`~mytroupe.engine.state.SyncState` into one
database transaction.

Planning (pure, :func:`build_plan`):
  * every kept member's attendance is re-paged; stored page *i* is reused
    for new page *i*, surplus stored pages are deleted;
  * stored members flagged for deletion lose the member row and *all*
    of their pages; new members that failed validation are left out;
  * the dashboard is recomputed in full.

Commit (:func:`commit_plan`): lease check, dashboard replace, event type
folder mirrors, event / member / bucket upserts, deletions, and the
single authoritative quota increment run in one session.  The lease
check both renews the caller's lease and fences out a sync whose lease
was taken over.  If the fence or the ledger refuses, everything rolls
back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.orm import Session

from mytroupe.constants import MAX_PAGE_SIZE
from mytroupe.database.engine import get_session
from mytroupe.database.models import (
    Event,
    EventsAttendedBucket,
    EventType,
    Member,
    TroupeDashboard,
    new_id,
)
from mytroupe.engine.buckets import plan_buckets
from mytroupe.engine.dashboard import compute_dashboard
from mytroupe.engine.state import SyncState
from mytroupe.errors import LeaseLostError, LimitsExceededError
from mytroupe.services.limit_service import increment_limits
from mytroupe.services.troupe_service import extend_lease

logger = logging.getLogger(__name__)


@dataclass
class PersistencePlan:
    troupe_id: str
    dashboard: dict
    events: list[Event] = field(default_factory=list)
    members: list[Member] = field(default_factory=list)
    member_deletions: list[str] = field(default_factory=list)
    bucket_upserts: list[EventsAttendedBucket] = field(default_factory=list)
    bucket_deletions: list[str] = field(default_factory=list)
    # event type ID → synchronized folder URIs
    event_type_folders: dict[str, list[str]] = field(default_factory=dict)
    limits_delta: dict[str, int] = field(default_factory=dict)

    def summary(self) -> dict[str, int]:
        return {
            "events": len(self.events),
            "members": len(self.members),
            "members_deleted": len(self.member_deletions),
            "buckets": len(self.bucket_upserts),
            "buckets_deleted": len(self.bucket_deletions),
        }


def build_plan(
    state: SyncState, now: datetime, page_size: int = MAX_PAGE_SIZE
) -> PersistencePlan:
    """Work out every write the commit step must perform."""
    events = [data.event for data in state.event_map.values()]
    kept = []
    plan = PersistencePlan(troupe_id=state.troupe_id, dashboard={}, events=events)
    plan.event_type_folders = {
        et.id: list(et.synchronized_source_folder_uris or []) for et in state.event_types
    }

    for attendee in state.attendee_map.values():
        member = attendee.member
        if attendee.delete:
            if attendee.from_coll:
                plan.member_deletions.append(member.id)
                plan.bucket_deletions.extend(bucket.id for bucket in attendee.buckets)
            continue

        plan.members.append(member)
        kept.append((member, attendee.events_attended))

        buckets = plan_buckets(
            state.troupe_id, member.id, attendee.events_attended, attendee.buckets, page_size
        )
        plan.bucket_upserts.extend(buckets.upserts)
        plan.bucket_deletions.extend(buckets.deletions)

    frequency = (state.dashboard.upcoming_birthdays or {}).get("desired_frequency", "monthly")
    plan.dashboard = compute_dashboard(state.event_types, events, kept, frequency, now)
    plan.limits_delta = {name: amount for name, amount in state.limits.delta.items() if amount}
    return plan


def _replace_dashboard(session: Session, troupe_id: str, values: dict) -> None:
    dashboard = session.scalar(
        select(TroupeDashboard).where(TroupeDashboard.troupe_id == troupe_id)
    )
    if dashboard is None:
        dashboard = TroupeDashboard(id=new_id(), troupe_id=troupe_id)
        session.add(dashboard)
    for column, value in values.items():
        setattr(dashboard, column, value)


def commit_plan(
    engine: Engine,
    plan: PersistencePlan,
    lock_owner: str | None = None,
    lease: timedelta | None = None,
) -> dict[str, int]:
    """Apply *plan* atomically.  Returns the plan summary.

    With *lock_owner* set, the commit only goes through while that owner
    still holds the troupe lease, and extends it by *lease*.

    Raises
    ------
    LeaseLostError
        If *lock_owner* lost the lease to another sync.
    LimitsExceededError
        If the quota ledger refuses the sync's aggregate increment.  The
        transaction is rolled back, so nothing from this sync is visible.
    """
    with get_session(engine) as session:
        if lock_owner is not None and not extend_lease(
            session, plan.troupe_id, lock_owner, lease or timedelta(0)
        ):
            raise LeaseLostError(plan.troupe_id, lock_owner)

        _replace_dashboard(session, plan.troupe_id, plan.dashboard)

        for type_id, folder_uris in plan.event_type_folders.items():
            session.execute(
                update(EventType)
                .where(EventType.id == type_id)
                .values(synchronized_source_folder_uris=folder_uris)
                .execution_options(synchronize_session=False)
            )

        for event in plan.events:
            session.merge(event)
        for member in plan.members:
            session.merge(member)
        session.flush()

        for bucket in plan.bucket_upserts:
            session.merge(bucket)
        session.flush()

        if plan.bucket_deletions:
            session.execute(
                delete(EventsAttendedBucket)
                .where(EventsAttendedBucket.id.in_(plan.bucket_deletions))
                .execution_options(synchronize_session=False)
            )
        if plan.member_deletions:
            session.execute(
                delete(Member)
                .where(Member.id.in_(plan.member_deletions))
                .execution_options(synchronize_session=False)
            )

        if plan.limits_delta and not increment_limits(
            engine, None, plan.troupe_id, plan.limits_delta, session=session
        ):
            raise LimitsExceededError(
                f"Invalid state: limits exceeded for sync of troupe {plan.troupe_id} "
                f"(delta={plan.limits_delta})"
            )

    summary = plan.summary()
    logger.info("Committed sync for troupe %s: %s", plan.troupe_id, summary)
    return summary
