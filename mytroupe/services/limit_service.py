"""
mytroupe.services.limit_service — Quota Ledger
================================================

Per-troupe resource counters (``troupe_limits``).  Every counter holds
what is *left*, so consuming a resource is a negative delta.

Rules:
  1. An increment is all-or-nothing: if any resulting counter would go
     negative, nothing is written and the call reports ``False``.
  2. A :class:`LimitContext` in bypass mode records deltas instead of
     applying them.  The batch is reconciled later by one aggregate,
     checked increment (:func:`commit_bypass`).
  3. The row is read ``FOR UPDATE`` so concurrent increments serialize
     on PostgreSQL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from mytroupe.database.engine import get_session
from mytroupe.database.models import TroupeLimit

logger = logging.getLogger(__name__)

LIMIT_FIELDS: tuple[str, ...] = (
    "modify_operations_left",
    "manual_syncs_left",
    "event_types_left",
    "events_left",
    "source_folder_uris_left",
    "members_left",
)

DEFAULT_LIMITS: dict[str, int] = {
    "modify_operations_left": 150,
    "manual_syncs_left": 3,
    "event_types_left": 10,
    "events_left": 64,
    "source_folder_uris_left": 20,
    "members_left": 256,
}


@dataclass
class LimitContext:
    """Carries bypass state across a batch of ledger operations."""

    troupe_id: str
    bypass: bool = False
    pending: dict[str, int] = field(default_factory=dict)

    def record(self, delta: dict[str, int]) -> None:
        for key, amount in delta.items():
            self.pending[key] = self.pending.get(key, 0) + amount


def _validate_delta(delta: dict[str, int]) -> None:
    unknown = set(delta) - set(LIMIT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown limit counters: {sorted(unknown)}")


def limits_to_dict(row: TroupeLimit) -> dict[str, int]:
    return {name: getattr(row, name) for name in LIMIT_FIELDS}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_limits(engine: Engine, troupe_id: str) -> dict[str, int] | None:
    """Snapshot of the troupe's remaining counters, or ``None`` if missing."""
    with Session(engine) as session:
        row = session.get(TroupeLimit, troupe_id)
        return limits_to_dict(row) if row is not None else None


def within_limits(
    engine: Engine,
    context: LimitContext | None,
    troupe_id: str,
    delta: dict[str, int],
) -> bool:
    """Would applying *delta* (after any pending bypassed deltas) stay non-negative?"""
    _validate_delta(delta)
    current = get_limits(engine, troupe_id)
    if current is None:
        return False

    pending = context.pending if context is not None else {}
    return all(
        current[name] + pending.get(name, 0) + delta.get(name, 0) >= 0
        for name in LIMIT_FIELDS
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _apply_increment(session: Session, troupe_id: str, delta: dict[str, int]) -> bool:
    row = session.get(TroupeLimit, troupe_id, with_for_update=True)
    if row is None:
        logger.error("No limits document found for troupe %s", troupe_id)
        return False

    updated = {name: getattr(row, name) + delta.get(name, 0) for name in LIMIT_FIELDS}
    exceeded = [name for name, value in updated.items() if value < 0]
    if exceeded:
        logger.info(
            "Limits refused for troupe %s: %s would go negative (delta=%s)",
            troupe_id, exceeded, delta,
        )
        return False

    for name, value in updated.items():
        setattr(row, name, value)
    session.flush()
    return True


def increment_limits(
    engine: Engine,
    context: LimitContext | None,
    troupe_id: str,
    delta: dict[str, int],
    session: Session | None = None,
) -> bool:
    """Apply a signed *delta* to the named counters.

    When *session* is given the write joins that transaction (the caller
    commits); otherwise a dedicated transaction is opened.  A bypassing
    *context* only records the delta and reports success.
    """
    _validate_delta(delta)
    if context is not None and context.bypass:
        context.record(delta)
        return True

    if session is not None:
        return _apply_increment(session, troupe_id, delta)

    with get_session(engine) as own_session:
        return _apply_increment(own_session, troupe_id, delta)


def set_bypass(
    context: LimitContext | None, troupe_id: str, enabled: bool
) -> LimitContext:
    """Turn bypass mode on or off, creating a context if needed.

    Turning bypass off keeps ``pending`` so the batch can still be
    reconciled with :func:`commit_bypass`.
    """
    if context is None:
        context = LimitContext(troupe_id=troupe_id)
    context.bypass = enabled
    return context


def commit_bypass(
    engine: Engine, context: LimitContext, session: Session | None = None
) -> bool:
    """Reconcile every bypassed delta with one checked increment."""
    if not context.pending:
        return True

    delta = dict(context.pending)
    context.bypass = False
    applied = increment_limits(engine, None, context.troupe_id, delta, session)
    if applied:
        context.pending.clear()
    return applied


def create_default_limits(session: Session, troupe_id: str) -> TroupeLimit:
    """Insert the starting counters for a new troupe."""
    row = TroupeLimit(troupe_id=troupe_id, **DEFAULT_LIMITS)
    session.add(row)
    session.flush()
    return row
