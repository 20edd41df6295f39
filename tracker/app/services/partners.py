"""
Partner (mitra) management.

Partners are soft-deactivated, never deleted. Each partner gets its zeroed
ledger row in the same transaction that creates it.
"""

import logging
import re
from typing import Any, Dict, List

from tracker.app.db.migrate import read_connection, transaction
from tracker.app.errors import InvalidInput, NotFound
from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import PARTNER_TYPES, PartnerCreate
from tracker.app.services import ledger
from tracker.app.services.activity import append_activity
from tracker.app.services.provinces import is_valid_province
from tracker.app.services.wib import wib_timestamp

logger = logging.getLogger(__name__)

_CODE_SEPARATORS = re.compile(r"[-_]")


def _clean(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def validate_partner(data: PartnerCreate) -> PartnerCreate:
    """
    Check required fields, type and code format.

    Returns a copy with the code upper-cased and optional fields normalised
    to None when blank.
    """
    name = _clean(data.name)
    type_ = _clean(data.type)
    code = _clean(data.code)
    province = _clean(data.province_code)

    if not name or not type_ or not code or not province:
        raise InvalidInput("Nama, jenis, kode, dan provinsi harus diisi")
    if type_ not in PARTNER_TYPES:
        raise InvalidInput("Jenis mitra tidak valid")
    stripped = _CODE_SEPARATORS.sub("", code)
    if not stripped.isascii() or not stripped.isalnum():
        raise InvalidInput("Kode harus berupa alfanumerik")
    if not is_valid_province(province):
        raise InvalidInput("Provinsi tidak valid")

    return PartnerCreate(
        name=name,
        type=type_,
        code=code.upper(),
        province_code=province,
        address=_clean(data.address) or None,
        phone=_clean(data.phone) or None,
        email=_clean(data.email) or None,
    )


def create_partner(data: PartnerCreate, actor: RequestContext) -> Dict[str, Any]:
    """
    Create a partner and its ledger row.

    Raises:
        InvalidInput: missing/invalid fields
        Conflict: the (upper-cased) code is already taken
    """
    partner = validate_partner(data)
    now = wib_timestamp()

    with transaction(conflict_message="Kode mitra sudah digunakan") as conn:
        cursor = conn.execute(
            """
            INSERT INTO partner (
                name, type, code, province_code, address, phone, email,
                created_by, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                partner.name,
                partner.type,
                partner.code,
                partner.province_code,
                partner.address,
                partner.phone,
                partner.email,
                actor.user_id,
                now,
                now,
            ),
        )
        partner_id = cursor.lastrowid
        ledger.ensure_ledger(conn, partner_id)
        append_activity(
            conn,
            actor,
            "create_partner",
            target_type="partner",
            target_id=partner_id,
            details=f"Created partner {partner.name} ({partner.code})",
        )

    logger.info("Created partner %s (%s)", partner.code, partner.province_code)
    return {
        "id": partner_id,
        "name": partner.name,
        "type": partner.type,
        "code": partner.code,
        "province_code": partner.province_code,
    }


def toggle_partner_status(partner_id: int, actor: RequestContext) -> bool:
    """Flip ``is_active``; returns the new state."""
    with transaction() as conn:
        row = conn.execute(
            "SELECT is_active, code FROM partner WHERE id = ?", (partner_id,)
        ).fetchone()
        if not row:
            raise NotFound("Mitra tidak ditemukan")

        new_status = 0 if row["is_active"] else 1
        conn.execute(
            "UPDATE partner SET is_active = ?, updated_at = ? WHERE id = ?",
            (new_status, wib_timestamp(), partner_id),
        )
        append_activity(
            conn,
            actor,
            "activate_partner" if new_status else "deactivate_partner",
            target_type="partner",
            target_id=partner_id,
            details=f"Partner {row['code']} {'activated' if new_status else 'deactivated'}",
        )
    return bool(new_status)


def list_partners() -> List[Dict[str, Any]]:
    """All partners, newest first, with creator username and protocol count."""
    with read_connection() as conn:
        rows = conn.execute(
            """
            SELECT p.*, u.username AS created_by_username,
                (SELECT COUNT(*) FROM protocols WHERE partner_id = p.id) AS protocol_count
            FROM partner p
            LEFT JOIN users u ON p.created_by = u.id
            ORDER BY p.created_at DESC, p.id DESC
        """
        ).fetchall()
        return [dict(row) for row in rows]


def partners_by_province(province_code: str) -> List[Dict[str, Any]]:
    with read_connection() as conn:
        rows = conn.execute(
            """
            SELECT id, name, type, code FROM partner
            WHERE province_code = ? AND is_active = 1
            ORDER BY name
        """,
            (province_code,),
        ).fetchall()
        return [dict(row) for row in rows]
