"""Alembic environment for the MyTroupe schema.

Online migrations connect through :func:`mytroupe.database.engine.create_db_engine`,
so ``alembic upgrade head`` and the sync engine read the same ``DATABASE_URL``
and fail with the same hint when it is missing.  Offline mode renders SQL for
the URL in ``DATABASE_URL`` (or ``sqlalchemy.url``) without connecting.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv

from alembic import context
from mytroupe.database.engine import create_db_engine
from mytroupe.database.models import Base

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    # Column type changes count as schema diffs.
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Emit the troupe schema as SQL."""
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate the database the sync engine uses."""
    engine = create_db_engine()
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
