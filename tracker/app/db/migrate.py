"""
Database access and migration utilities.

Runtime access goes through plain sqlite3 connections; Alembic (with a
migration-only SQLAlchemy engine) owns the schema.

DB path resolution:
  1. TRACKER_DB_PATH env var  (SQLite file path)
  2. Default: /tmp/tracker.db
"""

import logging
import os
import sqlite3
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from tracker.app.errors import Conflict, InternalError, TrackerError

logger = logging.getLogger(__name__)

# Seconds a writer waits for another writer's lock before failing.
BUSY_TIMEOUT_SECONDS = 30


def get_db_path() -> Path:
    """
    Get the path to the SQLite database file.

    Read on every call so tests can point each case at its own file.
    """
    db_path_env = os.getenv("TRACKER_DB_PATH")
    if db_path_env:
        return Path(db_path_env)

    # Default to /tmp so the DB is never written inside the source tree.
    return Path("/tmp/tracker.db")


def get_database_url() -> str:
    """Return the SQLAlchemy URL Alembic uses for the same SQLite file."""
    return f"sqlite:///{get_db_path()}"


def ensure_db_permissions_secure(db_path: Path):
    """
    Ensure database file has secure permissions (owner read/write only).

    Raises:
        PermissionError: If unable to set secure permissions
    """
    if not db_path.exists():
        return

    try:
        os.chmod(db_path, stat.S_IRUSR | stat.S_IWUSR)
    except OSError as e:
        raise PermissionError(f"Failed to set secure permissions on database: {e}")


def enable_wal_mode(conn: sqlite3.Connection):
    """Switch to WAL so readers are not blocked by the single writer."""
    conn.execute("PRAGMA journal_mode=WAL")
    conn.commit()


def ensure_schema():
    """
    Bring the database to the latest Alembic revision.

    Runs ``alembic upgrade head`` programmatically, then applies WAL mode
    and file permissions. Idempotent, safe to call on every startup.
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # tracker/app/db/migrate.py -> repo root is 4 levels up.
    repo_root = Path(__file__).parent.parent.parent.parent
    alembic_ini = repo_root / "alembic.ini"

    from alembic.config import Config
    from alembic import command as alembic_command

    alembic_cfg = Config(str(alembic_ini))
    alembic_cfg.set_main_option("sqlalchemy.url", get_database_url())
    # Leave the application's logging configuration alone.
    alembic_cfg.attributes["configure_logger"] = False

    alembic_command.upgrade(alembic_cfg, "head")

    conn = sqlite3.connect(db_path)
    try:
        enable_wal_mode(conn)
    finally:
        conn.close()
    ensure_db_permissions_secure(db_path)


def get_connection() -> sqlite3.Connection:
    """
    Get a SQLite database connection.

    Returns:
        Connection with Row factory, foreign keys on and a busy timeout.
    """
    conn = sqlite3.connect(get_db_path(), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _translate(exc: sqlite3.Error, conflict_message: Optional[str]) -> TrackerError:
    if isinstance(exc, sqlite3.IntegrityError) and "UNIQUE constraint failed" in str(exc):
        logger.warning("Unique constraint violation: %s", exc)
        return Conflict(conflict_message or "Duplicate value")
    logger.exception("Database error")
    return InternalError(cause=exc)


@contextmanager
def transaction(conflict_message: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """
    Run a block of statements as one write transaction.

    ``BEGIN IMMEDIATE`` takes the database write lock up front, so the
    reads inside the block see the state the writes are applied to. Any
    exception rolls everything back; sqlite errors are converted to the
    tracker error taxonomy (unique violations become ``Conflict``).
    """
    conn = get_connection()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise _translate(e, conflict_message) from e
    finally:
        conn.close()


@contextmanager
def read_connection() -> Iterator[sqlite3.Connection]:
    """Connection for read-only queries; sqlite errors become InternalError."""
    conn = get_connection()
    try:
        yield conn
    except sqlite3.Error as e:
        raise _translate(e, None) from e
    finally:
        conn.close()


def check_db_security() -> dict:
    """
    Check database security configuration.

    Returns:
        Dictionary with security check results
    """
    db_path = get_db_path()

    results = {
        "db_exists": db_path.exists(),
        "permissions_secure": False,
        "wal_enabled": False,
        "outside_repo": False,
    }

    if not db_path.exists():
        return results

    try:
        mode = stat.S_IMODE(os.stat(db_path).st_mode)
        results["permissions_secure"] = (mode & (stat.S_IRGRP | stat.S_IROTH)) == 0
    except OSError:
        logger.warning("Could not stat database file %s", db_path)

    conn = get_connection()
    try:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        results["wal_enabled"] = mode.upper() == "WAL"
    finally:
        conn.close()

    repo_root = Path(__file__).parent.parent.parent.parent
    results["outside_repo"] = not db_path.resolve().is_relative_to(repo_root.resolve())

    return results
