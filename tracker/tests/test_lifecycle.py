"""
Protocol lifecycle and stock ledger behaviour.

Covers batch creation, status transitions and their ledger deltas,
rejection without side effects, code collisions, concurrent transitions
and deactivated partners.
"""

import re
import threading

import pytest

from tracker.app.db.migrate import get_connection
from tracker.app.errors import Conflict, InvalidInput, NotFound
from tracker.app.services import lifecycle, wib
from tracker.app.services.activity import recent_activity
from tracker.app.services.events import PROTOCOL_CREATED, STATUS_UPDATED
from tracker.app.services.ledger import get_ledger
from tracker.app.services.partners import toggle_partner_status


def _ledger_tuple(partner_id):
    ledger = get_ledger(partner_id)
    return (ledger["total_allocated"], ledger["total_used"], ledger["total_available"])


def _count_protocols(partner_id):
    conn = get_connection()
    try:
        return conn.execute(
            "SELECT COUNT(*) FROM protocols WHERE partner_id = ?", (partner_id,)
        ).fetchone()[0]
    finally:
        conn.close()


def _status(code):
    conn = get_connection()
    try:
        return conn.execute("SELECT status FROM protocols WHERE code = ?", (code,)).fetchone()[0]
    finally:
        conn.close()


@pytest.mark.parametrize("quantity", [1, 2, 7, 100])
def test_batch_yields_unique_created_codes_and_ledger_delta(partner, admin_ctx, sink, quantity):
    before = _ledger_tuple(partner["id"])

    codes = lifecycle.create_batch("DKI", partner["id"], quantity, admin_ctx, events=sink)

    assert len(codes) == quantity
    assert len(set(codes)) == quantity
    assert all(_status(code) == "created" for code in codes)
    allocated, used, available = _ledger_tuple(partner["id"])
    assert allocated == before[0] + quantity
    assert used == before[1]
    assert available == before[2] + quantity


def test_code_format(partner, admin_ctx, sink, monkeypatch):
    monkeypatch.setattr(wib, "epoch_millis", lambda: 1760771234567)

    single = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)
    assert re.fullmatch(r"\d{8}DKIRS01234567", single[0])

    monkeypatch.setattr(wib, "epoch_millis", lambda: 1760771999888)
    batch = lifecycle.create_batch("DKI", partner["id"], "3", admin_ctx, events=sink)
    assert [c[-4:] for c in batch] == ["_001", "_002", "_003"]
    assert all(c.startswith(batch[0][:-4]) for c in batch)
    assert batch[0][:-4].endswith("RS01999888")


def test_batch_publishes_after_commit(partner, admin_ctx, sink):
    codes = lifecycle.create_batch("DKI", partner["id"], 2, admin_ctx, events=sink)

    assert sink.names() == [PROTOCOL_CREATED]
    payload = sink.events[0][1]
    assert payload["codes"] == codes
    assert payload["quantity"] == 2
    assert payload["partner"] == "RS Sehat"
    assert payload["province"] == "DKI"


def test_batch_writes_one_activity_entry(partner, admin_ctx, sink):
    lifecycle.create_batch("DKI", partner["id"], 5, admin_ctx, events=sink)

    entries = [a for a in recent_activity() if a["action"] == "create_protocol"]
    assert len(entries) == 1
    assert entries[0]["user_id"] == 0
    assert entries[0]["username"] == "admin"


@pytest.mark.parametrize("quantity", [0, 101, -1, "abc", "", "1.5"])
def test_invalid_quantity_has_no_side_effects(partner, admin_ctx, sink, quantity):
    with pytest.raises(InvalidInput):
        lifecycle.create_batch("DKI", partner["id"], quantity, admin_ctx, events=sink)

    assert _count_protocols(partner["id"]) == 0
    assert _ledger_tuple(partner["id"]) == (0, 0, 0)
    assert sink.events == []


def test_missing_quantity_means_one(partner, admin_ctx, sink):
    codes = lifecycle.create_batch("DKI", partner["id"], None, admin_ctx, events=sink)
    assert len(codes) == 1


def test_unknown_province_rejected(partner, admin_ctx, sink):
    with pytest.raises(InvalidInput, match="Invalid province"):
        lifecycle.create_batch("XXX", partner["id"], 1, admin_ctx, events=sink)
    assert _count_protocols(partner["id"]) == 0


def test_missing_or_unknown_partner_rejected(test_db, admin_ctx, sink):
    with pytest.raises(InvalidInput, match="Partner is required"):
        lifecycle.create_batch("DKI", None, 1, admin_ctx, events=sink)
    with pytest.raises(InvalidInput, match="Invalid or inactive partner"):
        lifecycle.create_batch("DKI", 9999, 1, admin_ctx, events=sink)


def test_code_collision_is_conflict_and_rolls_back(partner, admin_ctx, sink, monkeypatch):
    monkeypatch.setattr(wib, "epoch_millis", lambda: 1760771234567)
    lifecycle.create_batch("DKI", partner["id"], 3, admin_ctx, events=sink)
    before = _ledger_tuple(partner["id"])

    with pytest.raises(Conflict):
        lifecycle.create_batch("DKI", partner["id"], 3, admin_ctx, events=sink)

    assert _count_protocols(partner["id"]) == 3
    assert _ledger_tuple(partner["id"]) == before
    assert sink.names() == [PROTOCOL_CREATED]


def test_terpakai_round_trip_restores_ledger(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]
    before = _ledger_tuple(partner["id"])

    lifecycle.transition_status(code, "terpakai", admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == (before[0], before[1] + 1, before[2] - 1)

    lifecycle.transition_status(code, "created", admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == before


def test_created_to_delivered_never_moves_stock(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]
    before = _ledger_tuple(partner["id"])

    protocol = lifecycle.transition_status(code, "delivered", admin_ctx, events=sink)

    assert protocol["status"] == "delivered"
    assert _ledger_tuple(partner["id"]) == before


def test_same_status_is_zero_delta(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]
    lifecycle.transition_status(code, "terpakai", admin_ctx, events=sink)
    before = _ledger_tuple(partner["id"])

    lifecycle.transition_status(code, "terpakai", admin_ctx, events=sink)

    assert _ledger_tuple(partner["id"]) == before


def test_scenario_allocation_use_and_unuse(partner, admin_ctx, sink):
    assert _ledger_tuple(partner["id"]) == (0, 0, 0)

    codes = lifecycle.create_batch("DKI", partner["id"], 3, admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == (3, 0, 3)

    lifecycle.transition_status(codes[0], "terpakai", admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == (3, 1, 2)

    # Leaving terpakai for delivered gives the stock back.
    lifecycle.transition_status(codes[0], "delivered", admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == (3, 0, 3)


def test_transition_by_id_and_event_payload(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]
    conn = get_connection()
    try:
        protocol_id = conn.execute("SELECT id FROM protocols WHERE code = ?", (code,)).fetchone()[0]
    finally:
        conn.close()

    protocol = lifecycle.transition_status(protocol_id, "terpakai", admin_ctx, events=sink)

    assert protocol["code"] == code
    assert protocol["used_date"] is not None
    assert protocol["partner_name"] == "RS Sehat"
    event, payload = sink.events[-1]
    assert event == STATUS_UPDATED
    assert payload["oldStatus"] == "created"
    assert payload["newStatus"] == "terpakai"


def test_invalid_status_and_missing_protocol(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]

    with pytest.raises(InvalidInput, match="Invalid status"):
        lifecycle.transition_status(code, "lost", admin_ctx, events=sink)
    with pytest.raises(NotFound):
        lifecycle.transition_status("NOPE", "terpakai", admin_ctx, events=sink)

    assert sink.names() == [PROTOCOL_CREATED]


def test_concurrent_terpakai_transitions_do_not_lose_updates(partner, admin_ctx, sink):
    codes = lifecycle.create_batch("DKI", partner["id"], 2, admin_ctx, events=sink)
    before = _ledger_tuple(partner["id"])
    barrier = threading.Barrier(2)
    errors = []

    def worker(code):
        try:
            barrier.wait()
            lifecycle.transition_status(code, "terpakai", admin_ctx, events=sink)
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(code,)) for code in codes]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    allocated, used, available = _ledger_tuple(partner["id"])
    assert used == before[1] + 2
    assert available == before[2] - 2
    assert allocated == used + available


def test_deactivated_partner(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]
    assert toggle_partner_status(partner["id"], admin_ctx) is False

    with pytest.raises(InvalidInput, match="Invalid or inactive partner"):
        lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)

    assert lifecycle.lookup_protocol(code)["code"] == code
    lifecycle.transition_status(code, "terpakai", admin_ctx, events=sink)
    assert _ledger_tuple(partner["id"]) == (1, 1, 0)


def test_confirm_usage(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]

    result = lifecycle.confirm_usage(code, "mark_terpakai", admin_ctx, events=sink)

    assert result["success"] is True
    assert result["message"] == "Status updated to terpakai"
    assert result["protocol"]["status"] == "terpakai"
    assert recent_activity()[0]["action"] == "scan_terpakai"

    with pytest.raises(InvalidInput, match="Invalid action"):
        lifecycle.confirm_usage(code, "mark_lost", admin_ctx, events=sink)
    with pytest.raises(NotFound, match="Code not found"):
        lifecycle.confirm_usage("NOPE", "mark_delivered", admin_ctx, events=sink)


def test_lookup_formats_timestamp(partner, admin_ctx, sink):
    code = lifecycle.create_batch("DKI", partner["id"], 1, admin_ctx, events=sink)[0]

    protocol = lifecycle.lookup_protocol(code)

    assert "pukul" in protocol["created_at_formatted"]
    assert protocol["partner_type"] == "rumah_sakit"
