"""
Per-partner stock ledger.

Every change to stock_tracking goes through ``apply_delta``, which runs
an additive upsert on the caller's transaction connection. Counters are
never read, adjusted in Python and written back, so concurrent
transitions against the same partner cannot lose updates.

Invariants (for every partner):
- total_allocated == total_used + total_available
- total_allocated == number of protocols allocated to the partner
- total_used == number of those protocols with status 'terpakai'
"""

import logging
import sqlite3
from typing import Any, Dict, List, Tuple

from tracker.app.db.migrate import read_connection, transaction
from tracker.app.models.protocol import LedgerDrift, ReconcileReport, StockSnapshot
from tracker.app.services.wib import wib_timestamp

logger = logging.getLogger(__name__)

USED = "terpakai"


def status_delta(old_status: str, new_status: str) -> Tuple[int, int]:
    """
    Ledger change for a status transition, as (used, available).

    Only entering or leaving 'terpakai' moves stock; 'delivered' carries no
    ledger weight of its own.
    """
    if old_status != USED and new_status == USED:
        return 1, -1
    if old_status == USED and new_status != USED:
        return -1, 1
    return 0, 0


def ensure_ledger(conn: sqlite3.Connection, partner_id: int) -> None:
    """Create the partner's zeroed ledger row if it does not exist yet."""
    conn.execute(
        """
        INSERT INTO stock_tracking (
            partner_id, total_allocated, total_used, total_available, last_updated
        ) VALUES (?, 0, 0, 0, ?)
        ON CONFLICT(partner_id) DO NOTHING
    """,
        (partner_id, wib_timestamp()),
    )


def apply_delta(
    conn: sqlite3.Connection,
    partner_id: int,
    allocated: int = 0,
    used: int = 0,
    available: int = 0,
) -> None:
    """
    Add deltas to a partner's counters and refresh last_updated.

    Must be called on the same connection (transaction) as the protocol
    write it accounts for.
    """
    conn.execute(
        """
        INSERT INTO stock_tracking (
            partner_id, total_allocated, total_used, total_available, last_updated
        ) VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(partner_id) DO UPDATE SET
            total_allocated = total_allocated + excluded.total_allocated,
            total_used = total_used + excluded.total_used,
            total_available = total_available + excluded.total_available,
            last_updated = excluded.last_updated
    """,
        (partner_id, allocated, used, available, wib_timestamp()),
    )
    logger.debug(
        "Ledger delta partner=%s allocated=%+d used=%+d available=%+d",
        partner_id, allocated, used, available,
    )


def get_ledger(partner_id: int) -> Dict[str, int]:
    """Current counters for one partner (zeros if no row exists)."""
    with read_connection() as conn:
        row = conn.execute(
            """
            SELECT total_allocated, total_used, total_available, last_updated
            FROM stock_tracking WHERE partner_id = ?
        """,
            (partner_id,),
        ).fetchone()
    if not row:
        return {"total_allocated": 0, "total_used": 0, "total_available": 0}
    return {
        "total_allocated": row["total_allocated"],
        "total_used": row["total_used"],
        "total_available": row["total_available"],
    }


def stock_snapshot() -> List[StockSnapshot]:
    """Ledger counters for every active partner, ordered by name."""
    with read_connection() as conn:
        rows = conn.execute(
            """
            SELECT
                p.id, p.name, p.type, p.code, p.province_code,
                COALESCE(st.total_allocated, 0) AS total_allocated,
                COALESCE(st.total_used, 0) AS total_used,
                COALESCE(st.total_available, 0) AS total_available,
                st.last_updated
            FROM partner p
            LEFT JOIN stock_tracking st ON p.id = st.partner_id
            WHERE p.is_active = 1
            ORDER BY p.name
        """
        ).fetchall()
    return [StockSnapshot(**dict(row)) for row in rows]


def stock_summary(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Summed counters over active partners."""
    row = conn.execute(
        """
        SELECT
            COALESCE(SUM(st.total_allocated), 0) AS total_allocated,
            COALESCE(SUM(st.total_used), 0) AS total_used,
            COALESCE(SUM(st.total_available), 0) AS total_available,
            COUNT(*) AS active_partner
        FROM stock_tracking st
        JOIN partner p ON st.partner_id = p.id
        WHERE p.is_active = 1
    """
    ).fetchone()
    return dict(row)


def reconcile(repair: bool = False) -> ReconcileReport:
    """
    Recompute every partner's counters from its protocol rows.

    Reports partners whose ledger row disagrees with the protocols; with
    ``repair=True`` the ledger rows are overwritten with the recomputed
    values in the same transaction that computed them.
    """
    with transaction() as conn:
        rows = conn.execute(
            """
            SELECT
                pt.id AS partner_id,
                pt.code AS partner_code,
                COALESCE(st.total_allocated, 0) AS rec_allocated,
                COALESCE(st.total_used, 0) AS rec_used,
                COALESCE(st.total_available, 0) AS rec_available,
                COUNT(p.id) AS exp_allocated,
                COALESCE(SUM(CASE WHEN p.status = 'terpakai' THEN 1 ELSE 0 END), 0) AS exp_used
            FROM partner pt
            LEFT JOIN stock_tracking st ON st.partner_id = pt.id
            LEFT JOIN protocols p ON p.partner_id = pt.id
            GROUP BY pt.id
            ORDER BY pt.id
        """
        ).fetchall()

        drifted = []
        for row in rows:
            expected = {
                "total_allocated": row["exp_allocated"],
                "total_used": row["exp_used"],
                "total_available": row["exp_allocated"] - row["exp_used"],
            }
            recorded = {
                "total_allocated": row["rec_allocated"],
                "total_used": row["rec_used"],
                "total_available": row["rec_available"],
            }
            if expected == recorded:
                continue
            drifted.append(
                LedgerDrift(
                    partner_id=row["partner_id"],
                    partner_code=row["partner_code"],
                    recorded=recorded,
                    expected=expected,
                )
            )
            if repair:
                conn.execute(
                    """
                    INSERT INTO stock_tracking (
                        partner_id, total_allocated, total_used, total_available, last_updated
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(partner_id) DO UPDATE SET
                        total_allocated = excluded.total_allocated,
                        total_used = excluded.total_used,
                        total_available = excluded.total_available,
                        last_updated = excluded.last_updated
                """,
                    (
                        row["partner_id"],
                        expected["total_allocated"],
                        expected["total_used"],
                        expected["total_available"],
                        wib_timestamp(),
                    ),
                )

    if drifted:
        logger.warning(
            "Ledger drift on %d partner(s)%s",
            len(drifted), " (repaired)" if repair else "",
        )
    return ReconcileReport(checked=len(rows), drifted=drifted, repaired=repair and bool(drifted))
