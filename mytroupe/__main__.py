"""
mytroupe.__main__ — Entry point for ``python -m mytroupe``
============================================================

Wiring:
1. Load .env (secrets, ``DATABASE_URL``).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Register the Google Drive / Forms / Sheets client factories.
5. Run one sync of the given troupe and exit non-zero unless it completed.

Run with::

    python -m mytroupe <troupe_id> [--force-unlock] [--config PATH]

The command line commits the sync only.  Publishing the troupe log needs
a :class:`~mytroupe.services.log_service.TroupeLogService`, which callers
embedding the engine pass to :class:`SyncService` themselves.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from functools import partial

from dotenv import load_dotenv

from mytroupe.config import load_config
from mytroupe.database.engine import create_db_engine, init_db
from mytroupe.integrations.google import get_drive, get_forms, get_sheets
from mytroupe.services.sync_service import SyncService
from mytroupe.services.troupe_service import force_unlock
from mytroupe.sources.base import SourceClients

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("mytroupe")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mytroupe", description="Sync one troupe.")
    parser.add_argument("troupe_id", help="ID of the troupe to sync")
    parser.add_argument(
        "--force-unlock", action="store_true",
        help="clear a stuck sync lock before syncing",
    )
    parser.add_argument("--config", default="config.yaml", help="path to config.yaml")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Bootstrap and run one troupe sync."""
    args = _parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config(args.config)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    if args.force_unlock and force_unlock(engine, args.troupe_id):
        logger.info("Cleared stale lock on troupe %s", args.troupe_id)

    # 4. Google client factories (one service per concurrent delegate).
    clients = SourceClients(
        drive=partial(get_drive, cfg),
        forms=partial(get_forms, cfg),
        sheets=partial(get_sheets, cfg),
    )

    # 5. Sync.
    service = SyncService(engine, clients, lease=timedelta(minutes=cfg.sync_lease_minutes))
    result = asyncio.run(service.sync(args.troupe_id))

    if not result.ok:
        logger.error("Sync of troupe %s ended %s: %s", args.troupe_id, result.status, result.error)
        sys.exit(1)
    logger.info("Sync of troupe %s completed: %s", args.troupe_id, result.summary)


if __name__ == "__main__":
    main()
