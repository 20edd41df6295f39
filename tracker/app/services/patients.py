"""
Patient data attached to a protocol after it has been used.
"""

from typing import Any, Dict

from tracker.app.db.migrate import read_connection, transaction
from tracker.app.errors import InvalidInput, NotFound
from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import PatientData
from tracker.app.services.activity import append_activity

OPTIONAL_FIELDS = (
    "occupation",
    "marital_status",
    "gpa",
    "address",
    "phone",
    "age",
    "notes",
)


def update_patient_data(code: str, data: PatientData, actor: RequestContext) -> Dict[str, Any]:
    if not data.patient_name or not data.healthcare_facility:
        raise InvalidInput("Patient name and healthcare facility are required")

    values = [data.patient_name, data.healthcare_facility]
    # Blank optional fields are stored as NULL.
    values += [getattr(data, field) or None for field in OPTIONAL_FIELDS]

    with transaction() as conn:
        cursor = conn.execute(
            """
            UPDATE protocols SET
                patient_name = ?, healthcare_facility = ?, occupation = ?,
                marital_status = ?, gpa = ?, address = ?, phone = ?, age = ?,
                notes = ?, updated_by = ?
            WHERE code = ?
        """,
            (*values, actor.user_id, code),
        )
        if cursor.rowcount == 0:
            raise NotFound("Protocol not found")
        append_activity(
            conn,
            actor,
            "update_patient_data",
            target_type="protocol",
            target_id=code,
            details=f"Updated patient data: {data.patient_name} at {data.healthcare_facility}",
        )

    return {"success": True, "message": "Patient data updated successfully"}


def get_patient_data(code: str) -> Dict[str, Any]:
    with read_connection() as conn:
        row = conn.execute(
            """
            SELECT id, code, patient_name, healthcare_facility, occupation,
                marital_status, gpa, address, phone, age, notes, status, created_at
            FROM protocols WHERE code = ?
        """,
            (code,),
        ).fetchone()
    if not row:
        raise NotFound("Protocol not found")
    return {"success": True, "data": dict(row)}
