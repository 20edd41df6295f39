"""
Protocol, partner, user and stock models.

Request bodies arrive either as HTML form posts or as JSON, so the
models keep every field optional and leave the user-facing validation
messages to the services.
"""

from typing import Optional, List, Literal
from pydantic import BaseModel, Field

ProtocolStatus = Literal["created", "delivered", "terpakai"]

PROTOCOL_STATUSES = ("created", "delivered", "terpakai")

PARTNER_TYPES = ("klinik", "puskesmas", "rumah_sakit")

# Scanner actions and the status each one moves a protocol to.
SCAN_ACTIONS = {
    "mark_terpakai": "terpakai",
    "mark_delivered": "delivered",
}


class PatientData(BaseModel):
    """Free-text patient fields filled in after a protocol is used."""
    patient_name: Optional[str] = None
    healthcare_facility: Optional[str] = None
    occupation: Optional[str] = None
    marital_status: Optional[str] = None
    gpa: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[str] = None
    notes: Optional[str] = None


class PartnerCreate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    code: Optional[str] = None
    province_code: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class UserCreate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None


class StockSnapshot(BaseModel):
    """One partner's ledger counters, as served by /api/stock."""
    id: int
    name: str
    type: str
    code: str
    province_code: str
    total_allocated: int = 0
    total_used: int = 0
    total_available: int = 0
    last_updated: Optional[str] = None


class LedgerDrift(BaseModel):
    """Difference between a partner's ledger row and its protocol rows."""
    partner_id: int
    partner_code: str
    recorded: dict = Field(..., description="Counters currently in stock_tracking")
    expected: dict = Field(..., description="Counters recomputed from protocols")


class ReconcileReport(BaseModel):
    checked: int
    drifted: List[LedgerDrift]
    repaired: bool
