"""
mytroupe.engine.buckets — Attendance Paging
=============================================

Splits a member's attendance into fixed-size ``events_attended`` pages
and works out which stored pages to update, create, or delete.  Pure
planning, no I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from mytroupe.constants import MAX_PAGE_SIZE
from mytroupe.database.models import EventsAttendedBucket, new_id
from mytroupe.engine.properties import as_utc
from mytroupe.engine.state import AttendanceRecord


@dataclass
class BucketPlan:
    upserts: list[EventsAttendedBucket] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)


def paginate(
    records: Sequence[AttendanceRecord], page_size: int = MAX_PAGE_SIZE
) -> list[list[AttendanceRecord]]:
    """Order *records* by (start date, event ID) and chunk into pages."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    ordered = sorted(records, key=lambda r: (as_utc(r.start_date), r.event_id))
    return [ordered[i:i + page_size] for i in range(0, len(ordered), page_size)]


def record_to_json(record: AttendanceRecord) -> dict:
    return {
        "type_id": record.type_id,
        "value": record.value,
        "start_date": as_utc(record.start_date).isoformat(),
    }


def plan_buckets(
    troupe_id: str,
    member_id: str,
    records: Sequence[AttendanceRecord],
    existing: Sequence[EventsAttendedBucket],
    page_size: int = MAX_PAGE_SIZE,
) -> BucketPlan:
    """Reuse stored bucket *i* for page *i*, create missing pages, and
    schedule every stored page past the new page count for deletion.

    *existing* must already be ordered by ``page``.
    """
    plan = BucketPlan()
    pages = paginate(records, page_size)

    for page, page_records in enumerate(pages):
        bucket_id = existing[page].id if page < len(existing) else new_id()
        plan.upserts.append(EventsAttendedBucket(
            id=bucket_id,
            troupe_id=troupe_id,
            member_id=member_id,
            page=page,
            events={r.event_id: record_to_json(r) for r in page_records},
        ))

    plan.deletions.extend(bucket.id for bucket in existing[len(pages):])
    return plan
