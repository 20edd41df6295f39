"""Additive upgrade: patient data columns, ledger/rollup unique keys

Revision ID: 8c41e5a9d2f3
Revises: 3f9a1c2d7b10
Create Date: 2026-10-18 00:10:00.000000

Every step checks what already exists first, so this revision can run
against fresh databases and against ones created by older builds:
- protocols.partner_id and the patient-data columns, if missing
- one stock_tracking row per partner (unique partner_id)
- one analytics_daily row per date (unique date)
- legacy 'viewer' role renamed to 'operator'
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "8c41e5a9d2f3"
down_revision = "3f9a1c2d7b10"
branch_labels = None
depends_on = None

PATIENT_COLUMNS = [
    "patient_name",
    "healthcare_facility",
    "occupation",
    "marital_status",
    "gpa",
    "address",
    "phone",
    "age",
    "notes",
    "used_date",
]


def _columns(table: str) -> set:
    return {col["name"] for col in sa.inspect(op.get_bind()).get_columns(table)}


def _indexes(table: str) -> set:
    return {idx["name"] for idx in sa.inspect(op.get_bind()).get_indexes(table)}


def upgrade() -> None:
    existing = _columns("protocols")
    missing = [name for name in PATIENT_COLUMNS if name not in existing]

    if "partner_id" not in existing or missing:
        with op.batch_alter_table("protocols") as batch:
            if "partner_id" not in existing:
                batch.add_column(sa.Column("partner_id", sa.Integer))
            for name in missing:
                batch.add_column(sa.Column(name, sa.Text))

    if "uq_stock_tracking_partner" not in _indexes("stock_tracking"):
        op.create_index(
            "uq_stock_tracking_partner", "stock_tracking", ["partner_id"], unique=True
        )

    if "uq_analytics_daily_date" not in _indexes("analytics_daily"):
        op.create_index(
            "uq_analytics_daily_date", "analytics_daily", ["date"], unique=True
        )

    op.execute("UPDATE users SET role = 'operator' WHERE role = 'viewer'")


def downgrade() -> None:
    op.drop_index("uq_analytics_daily_date", table_name="analytics_daily")
    op.drop_index("uq_stock_tracking_partner", table_name="stock_tracking")
    with op.batch_alter_table("protocols") as batch:
        for name in reversed(PATIENT_COLUMNS):
            batch.drop_column(name)
