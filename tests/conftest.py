"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from mytroupe.constants import (
    DRIVE_FOLDER,
    DRIVE_FOLDER_MIME,
    EVENT_DATA_SOURCE_MIME_TYPES,
    GOOGLE_FORMS,
    GOOGLE_SHEETS,
    get_data_source_url,
)
from mytroupe.database.models import Base, TroupeLimit
from mytroupe.services.troupe_service import add_event_type, create_troupe

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all MyTroupe tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def troupe_id(db_engine: Engine) -> str:
    """A freshly provisioned troupe with the default schema and limits."""
    return create_troupe(db_engine, "Test Troupe")


# ---------------------------------------------------------------------------
# Helpers (importable: ``from conftest import run_async``)
# ---------------------------------------------------------------------------
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def run_async(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def folder_uri(folder_id: str) -> str:
    return get_data_source_url(DRIVE_FOLDER, folder_id)


def form_uri(form_id: str) -> str:
    return get_data_source_url(GOOGLE_FORMS, form_id)


def sheet_uri(sheet_id: str) -> str:
    return get_data_source_url(GOOGLE_SHEETS, sheet_id)


def folder_entry(folder_id: str) -> dict:
    return {"id": folder_id, "name": folder_id, "mimeType": DRIVE_FOLDER_MIME}


def form_entry(form_id: str, created: str = "2026-01-10T18:00:00Z") -> dict:
    return {
        "id": form_id,
        "name": f"Form {form_id}",
        "mimeType": EVENT_DATA_SOURCE_MIME_TYPES[GOOGLE_FORMS],
        "createdTime": created,
    }


def sheet_entry(sheet_id: str, created: str = "2026-01-10T18:00:00Z") -> dict:
    return {
        "id": sheet_id,
        "name": f"Sheet {sheet_id}",
        "mimeType": EVENT_DATA_SOURCE_MIME_TYPES[GOOGLE_SHEETS],
        "createdTime": created,
    }


class FakeLister:
    """In-memory Drive: folder ID → children.  Folders in *failing* raise."""

    def __init__(self, tree: dict[str, list[dict]], failing: tuple[str, ...] = ()):
        self.tree = tree
        self.failing = set(failing)
        self.calls: list[str] = []

    async def list_children(self, folder_id: str) -> list[dict]:
        self.calls.append(folder_id)
        if folder_id in self.failing:
            raise RuntimeError(f"listing {folder_id} failed")
        return list(self.tree.get(folder_id, []))


def set_limits(engine: Engine, troupe_id: str, **counters: int) -> None:
    with Session(engine) as session:
        row = session.get(TroupeLimit, troupe_id)
        for name, value in counters.items():
            setattr(row, name, value)
        session.commit()


def add_folder_type(
    engine: Engine, troupe_id: str, title: str, value: int, *folder_ids: str
) -> str:
    return add_event_type(
        engine, troupe_id, title, value, [folder_uri(f) for f in folder_ids]
    )


def member_answers(member_id: str, first: str = "Ada", last: str = "Lovelace",
                   email: str | None = None, birthday: str = "1990-03-05") -> dict:
    """A complete answer set keyed by property title."""
    return {
        "Member ID": member_id,
        "First Name": first,
        "Last Name": last,
        "Email": email if email is not None else f"{member_id}@example.org",
        "Birthday": birthday,
    }


# ---------------------------------------------------------------------------
# Google client doubles
# ---------------------------------------------------------------------------
def forms_client(questions: dict[str, str], responses: list[dict]):
    """A Forms v1 service mock.

    *questions* maps question ID → title; each response maps question
    ID → answer text, plus an optional ``_submitted`` timestamp.
    """
    client = MagicMock()
    api = client.forms.return_value
    api.get.return_value.execute.return_value = {
        "items": [
            {"title": title, "questionItem": {"question": {"questionId": qid}}}
            for qid, title in questions.items()
        ],
    }
    api.responses.return_value.list.return_value.execute.return_value = {
        "responses": [
            {
                "lastSubmittedTime": response.get("_submitted", "2026-01-10T19:00:00Z"),
                "answers": {
                    qid: {"textAnswers": {"answers": [{"value": value}]}}
                    for qid, value in response.items() if qid != "_submitted"
                },
            }
            for response in responses
        ],
    }
    return client


def sheets_client(rows: list[list[str]]):
    """A Sheets v4 service mock whose first sheet holds *rows*."""
    client = MagicMock()
    values = client.spreadsheets.return_value.values.return_value
    values.get.return_value.execute.return_value = {"values": rows}
    return client
