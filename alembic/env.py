"""
Alembic migration environment for the protocol tracker.

The SQLite URL is normally injected by ``ensure_schema()``; for manual CLI
runs it falls back to TRACKER_DB_PATH, then /tmp/tracker.db.
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

# Alembic Config object provides access to alembic.ini values.
config = context.config

# Only configure logging for CLI runs; the app installs its own handlers.
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _get_database_url() -> str:
    """Resolve database URL from Alembic config or environment.

    Priority:
    1. TRACKER_DB_PATH environment variable (SQLite file path)
    2. sqlalchemy.url from the Alembic Config object (set programmatically
       by ensure_schema(), or the alembic.ini default)
    """
    tracker_db_path = os.getenv("TRACKER_DB_PATH")
    if tracker_db_path:
        return f"sqlite:///{tracker_db_path}"

    return config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL without a live connection)."""
    context.configure(
        url=_get_database_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (with a live DB connection)."""
    connectable = create_engine(
        _get_database_url(),
        poolclass=pool.NullPool,
        connect_args={"check_same_thread": False},
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=None,
            # SQLite has no real ALTER TABLE; batch mode emulates it.
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
