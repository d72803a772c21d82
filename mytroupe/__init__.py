"""
MyTroupe — Attendance Sync Engine for Organizations
=====================================================
Members earn points by attending events whose sign-up sheets and forms
live in Google Drive.  The sync engine walks each troupe's event-type
folders, reads every event's attendees, and reconciles them into the
canonical member, attendance and dashboard records.

Package layout::

    mytroupe/
    ├── __main__.py        # python -m mytroupe <troupe_id>
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Limits, MIME types, default schemas
    ├── errors.py          # Domain exceptions
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Troupes, events, members, buckets, limits
    ├── engine/
    │   ├── claims.py      # Folder ownership table + tie-break
    │   ├── state.py       # Shared sync accumulator
    │   ├── properties.py  # Property typing + point windows
    │   ├── buckets.py     # Attendance paging
    │   └── dashboard.py   # Dashboard aggregation
    ├── sources/
    │   ├── base.py        # Discovery delegate contract + registry
    │   ├── gforms.py      # Google Forms delegate
    │   └── gsheets.py     # Google Sheets delegate
    ├── integrations/
    │   └── google.py      # Drive / Forms / Sheets clients
    └── services/
        ├── limit_service.py       # Quota ledger
        ├── troupe_service.py      # Troupe provisioning + manual unlock
        ├── event_discovery.py     # Folder traversal → candidate events
        ├── audience_service.py    # Delegate fan-out + validation
        ├── persistence_service.py # Bucketed commit
        ├── log_service.py         # Record publisher contract
        └── sync_service.py        # Orchestrator + lock lease
"""

__version__ = "0.1.0"
