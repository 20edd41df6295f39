"""
Protocol lifecycle: batch creation and status transitions.

Each operation runs as a single transaction covering the protocol rows,
the partner's ledger delta and the activity entry. Events go out only
after the commit succeeds.

Status flow: created -> delivered -> terpakai (any transition between the
three is accepted; only entering or leaving 'terpakai' moves stock).
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Union

from tracker.app.db.migrate import read_connection, transaction
from tracker.app.errors import InvalidInput, NotFound
from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import PROTOCOL_STATUSES, SCAN_ACTIONS
from tracker.app.services import ledger, wib
from tracker.app.services.activity import append_activity
from tracker.app.services.events import (
    EventSink,
    PROTOCOL_CREATED,
    STATUS_UPDATED,
    hub,
)
from tracker.app.services.provinces import is_valid_province

logger = logging.getLogger(__name__)

MIN_BATCH = 1
MAX_BATCH = 100


def parse_quantity(raw: Any) -> int:
    """
    Parse a requested batch size.

    A missing value means a single protocol; anything else must be an
    integer in [MIN_BATCH, MAX_BATCH].
    """
    if raw is None:
        return 1
    if isinstance(raw, bool):
        raise InvalidInput("Quantity must be a number")
    if isinstance(raw, int):
        qty = raw
    else:
        try:
            qty = int(str(raw).strip())
        except ValueError:
            raise InvalidInput("Quantity must be a number")
    if qty < MIN_BATCH or qty > MAX_BATCH:
        raise InvalidInput(f"Quantity must be between {MIN_BATCH} and {MAX_BATCH}")
    return qty


def _parse_partner_id(raw: Any) -> int:
    if raw is None or str(raw).strip() == "":
        raise InvalidInput("Partner is required")
    try:
        return int(str(raw).strip())
    except ValueError:
        raise InvalidInput("Invalid or inactive partner")


def generate_codes(province: str, partner_code: str, quantity: int) -> List[str]:
    """
    Build the codes for one batch.

    Format: ``{YYYYMMDD}{province}{partner code}{last 6 digits of epoch ms}``,
    with ``_001`` .. ``_NNN`` appended when the batch has more than one item.
    """
    date_part = wib.now_wib().strftime("%Y%m%d")
    suffix = str(wib.epoch_millis())[-6:]
    base = f"{date_part}{province}{partner_code}{suffix}"
    if quantity == 1:
        return [base]
    return [f"{base}_{i:03d}" for i in range(1, quantity + 1)]


def create_batch(
    province: Optional[str],
    partner_id: Any,
    quantity: Any,
    actor: RequestContext,
    events: EventSink = hub,
) -> List[str]:
    """
    Create ``quantity`` protocols for an active partner.

    Raises:
        InvalidInput: unknown province, missing/inactive partner, bad quantity
        Conflict: a generated code already exists (nothing is written)

    Returns:
        Generated codes in creation order
    """
    if not is_valid_province(province):
        raise InvalidInput("Invalid province")
    pid = _parse_partner_id(partner_id)
    qty = parse_quantity(quantity)

    with transaction(conflict_message="Protocol code already exists, please retry") as conn:
        partner = conn.execute(
            "SELECT * FROM partner WHERE id = ? AND is_active = 1", (pid,)
        ).fetchone()
        if not partner:
            raise InvalidInput("Invalid or inactive partner")

        codes = generate_codes(province, partner["code"], qty)
        created_at = wib.wib_timestamp()
        conn.executemany(
            """
            INSERT INTO protocols (
                code, province_code, partner_id, created_at, status, created_by
            ) VALUES (?, ?, ?, ?, 'created', ?)
        """,
            [(code, province, pid, created_at, actor.user_id) for code in codes],
        )
        ledger.apply_delta(conn, pid, allocated=qty, available=qty)
        append_activity(
            conn,
            actor,
            "create_protocol",
            target_type="partner",
            target_id=pid,
            details=f"Created {qty} protocol(s) for {partner['name']} ({province})",
        )

    logger.info("Created %d protocol(s) for partner %s in %s", qty, partner["code"], province)
    events.publish(
        PROTOCOL_CREATED,
        {
            "codes": codes,
            "quantity": qty,
            "partner": partner["name"],
            "province": province,
        },
    )
    return codes


def _fetch_protocol(conn: sqlite3.Connection, ref: Union[int, str]) -> Optional[sqlite3.Row]:
    column = "p.id" if isinstance(ref, int) else "p.code"
    return conn.execute(
        f"""
        SELECT p.*, pt.name AS partner_name, pt.type AS partner_type
        FROM protocols p
        LEFT JOIN partner pt ON p.partner_id = pt.id
        WHERE {column} = ?
    """,
        (ref,),
    ).fetchone()


def transition_status(
    ref: Union[int, str],
    new_status: Optional[str],
    actor: RequestContext,
    events: EventSink = hub,
    action: Optional[str] = None,
    details: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Move a protocol (by integer id or by code) to ``new_status``.

    The ledger delta is derived from the stored old status, read inside
    the same write transaction. Same-status transitions are accepted and
    carry a zero delta.

    Raises:
        InvalidInput: status outside created/delivered/terpakai
        NotFound: no protocol with that id/code

    Returns:
        The protocol row (with partner name) after the update
    """
    if new_status not in PROTOCOL_STATUSES:
        raise InvalidInput("Invalid status")

    with transaction() as conn:
        row = _fetch_protocol(conn, ref)
        if not row:
            raise NotFound("Protocol not found")

        old_status = row["status"]
        used, available = ledger.status_delta(old_status, new_status)

        if new_status == ledger.USED and old_status != ledger.USED:
            used_date = wib.wib_timestamp()
        else:
            used_date = row["used_date"]
        conn.execute(
            "UPDATE protocols SET status = ?, updated_by = ?, used_date = ? WHERE id = ?",
            (new_status, actor.user_id, used_date, row["id"]),
        )

        if row["partner_id"] and (used or available):
            ledger.apply_delta(conn, row["partner_id"], used=used, available=available)

        append_activity(
            conn,
            actor,
            action or "update_status",
            target_type="protocol",
            target_id=row["code"],
            details=details or f"Status changed from {old_status} to {new_status}",
        )

    protocol = dict(row)
    protocol["status"] = new_status
    protocol["used_date"] = used_date

    logger.info("Protocol %s: %s -> %s", row["code"], old_status, new_status)
    events.publish(
        STATUS_UPDATED,
        {
            "code": row["code"],
            "oldStatus": old_status,
            "newStatus": new_status,
            "protocol": protocol,
        },
    )
    return protocol


def confirm_usage(
    code: str,
    action: Optional[str],
    actor: RequestContext,
    events: EventSink = hub,
) -> Dict[str, Any]:
    """Scanner confirmation: ``mark_terpakai`` or ``mark_delivered`` by code."""
    if not isinstance(action, str) or action not in SCAN_ACTIONS:
        raise InvalidInput("Invalid action")
    new_status = SCAN_ACTIONS[action]

    try:
        protocol = transition_status(
            code,
            new_status,
            actor,
            events=events,
            action=f"scan_{new_status}",
            details=f"Scanned and marked as {new_status}",
        )
    except NotFound:
        raise NotFound("Code not found")

    return {
        "success": True,
        "message": f"Status updated to {new_status}",
        "protocol": protocol,
    }


def lookup_protocol(code: str) -> Dict[str, Any]:
    """Protocol by code (with partner name/type) plus a long-form WIB timestamp."""
    with read_connection() as conn:
        row = _fetch_protocol(conn, code)
    if not row:
        raise NotFound("Not found")
    protocol = dict(row)
    protocol["created_at_formatted"] = wib.format_long_id(row["created_at"])
    return protocol
