"""
Stock ledger primitives and reconciliation.
"""

import pytest

from tracker.app.db.migrate import get_connection, transaction
from tracker.app.services import ledger, lifecycle


@pytest.mark.parametrize(
    "old, new, expected",
    [
        ("created", "terpakai", (1, -1)),
        ("delivered", "terpakai", (1, -1)),
        ("terpakai", "created", (-1, 1)),
        ("terpakai", "delivered", (-1, 1)),
        ("created", "delivered", (0, 0)),
        ("delivered", "created", (0, 0)),
        ("terpakai", "terpakai", (0, 0)),
    ],
)
def test_status_delta(old, new, expected):
    assert ledger.status_delta(old, new) == expected


def test_apply_delta_is_additive(partner):
    with transaction() as conn:
        ledger.apply_delta(conn, partner["id"], allocated=5, available=5)
    with transaction() as conn:
        ledger.apply_delta(conn, partner["id"], used=2, available=-2)

    assert ledger.get_ledger(partner["id"]) == {
        "total_allocated": 5,
        "total_used": 2,
        "total_available": 3,
    }


def test_apply_delta_rolls_back_with_transaction(partner):
    with pytest.raises(RuntimeError):
        with transaction() as conn:
            ledger.apply_delta(conn, partner["id"], allocated=4, available=4)
            raise RuntimeError("boom")

    assert ledger.get_ledger(partner["id"])["total_allocated"] == 0


def test_partner_gets_one_zeroed_ledger_row(partner):
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM stock_tracking WHERE partner_id = ?", (partner["id"],)
        ).fetchall()
    finally:
        conn.close()

    assert len(rows) == 1
    assert rows[0]["total_allocated"] == 0
    assert rows[0]["last_updated"] is not None


def test_stock_snapshot_lists_active_partners(partner, admin_ctx, sink):
    lifecycle.create_batch("DKI", partner["id"], 4, admin_ctx, events=sink)

    snapshot = ledger.stock_snapshot()

    assert len(snapshot) == 1
    assert snapshot[0].code == "RS01"
    assert snapshot[0].total_allocated == 4
    assert snapshot[0].total_available == 4


def test_reconcile_reports_and_repairs_drift(partner, admin_ctx, sink):
    codes = lifecycle.create_batch("DKI", partner["id"], 3, admin_ctx, events=sink)
    lifecycle.transition_status(codes[0], "terpakai", admin_ctx, events=sink)

    clean = ledger.reconcile()
    assert clean.checked == 1
    assert clean.drifted == []

    conn = get_connection()
    try:
        conn.execute("UPDATE stock_tracking SET total_used = 7 WHERE partner_id = ?", (partner["id"],))
        conn.commit()
    finally:
        conn.close()

    report = ledger.reconcile()
    assert report.repaired is False
    assert len(report.drifted) == 1
    assert report.drifted[0].recorded["total_used"] == 7
    assert report.drifted[0].expected == {
        "total_allocated": 3,
        "total_used": 1,
        "total_available": 2,
    }

    repaired = ledger.reconcile(repair=True)
    assert repaired.repaired is True
    assert ledger.get_ledger(partner["id"]) == {
        "total_allocated": 3,
        "total_used": 1,
        "total_available": 2,
    }
    assert ledger.reconcile().drifted == []
