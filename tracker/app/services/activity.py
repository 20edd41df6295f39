"""
Append-only activity log.

Entries are written on the caller's connection so that an audit row
commits or rolls back together with the change it describes.
"""

import sqlite3
from typing import Any, Dict, List, Optional

from tracker.app.core.config import get_settings
from tracker.app.db.migrate import read_connection, transaction
from tracker.app.models.identity import RequestContext
from tracker.app.services.wib import wib_timestamp


def append_activity(
    conn: sqlite3.Connection,
    actor: RequestContext,
    action: str,
    target_type: Optional[str] = "system",
    target_id: Optional[Any] = None,
    details: Optional[str] = None,
) -> None:
    conn.execute(
        """
        INSERT INTO activity_logs (
            user_id, action, target_type, target_id, details,
            ip_address, user_agent, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """,
        (
            actor.user_id,
            action,
            target_type,
            str(target_id) if target_id is not None else None,
            details,
            actor.ip_address,
            actor.user_agent,
            wib_timestamp(),
        ),
    )


def log_activity(
    actor: RequestContext,
    action: str,
    target_type: Optional[str] = "system",
    target_id: Optional[Any] = None,
    details: Optional[str] = None,
) -> None:
    """Record a standalone event (page views, logins) in its own transaction."""
    with transaction() as conn:
        append_activity(conn, actor, action, target_type, target_id, details)


def recent_activity(limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent entries with the acting username (superuser rows included)."""
    with read_connection() as conn:
        rows = conn.execute(
            """
            SELECT al.*, COALESCE(u.username, ?) AS username
            FROM activity_logs al
            LEFT JOIN users u ON al.user_id = u.id
            ORDER BY al.created_at DESC, al.id DESC
            LIMIT ?
        """,
            (get_settings().SUPERUSER_USERNAME, limit),
        ).fetchall()
        return [dict(row) for row in rows]
