"""
mytroupe.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for soft settings (Google credentials, scopes and
the sync lease length).  Secrets such as ``DATABASE_URL`` stay in ``.env``.

Usage::

    from mytroupe.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.sync_lease_minutes)    # 30
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_GOOGLE_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/forms.body.readonly",
    "https://www.googleapis.com/auth/forms.responses.readonly",
    "https://www.googleapis.com/auth/spreadsheets",
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MyTroupeConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Google
    google_credentials_path: str
    google_scopes: tuple[str, ...] = field(default=DEFAULT_GOOGLE_SCOPES)

    # Sync
    sync_lease_minutes: int = 30  # How long a sync may hold the troupe lock


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MyTroupeConfig:
    """Read *path* and return a :class:`MyTroupeConfig` instance.

    ``google_credentials_path`` falls back to the
    ``GOOGLE_APPLICATION_CREDENTIALS`` environment variable.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If no credentials path is configured anywhere.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    credentials = raw.get("google_credentials_path") or os.getenv(
        "GOOGLE_APPLICATION_CREDENTIALS"
    )
    if not credentials:
        raise KeyError("google_credentials_path")

    scopes = raw.get("google_scopes")
    return MyTroupeConfig(
        google_credentials_path=credentials,
        google_scopes=tuple(scopes) if scopes else DEFAULT_GOOGLE_SCOPES,
        sync_lease_minutes=int(raw.get("sync_lease_minutes", 30)),
    )
