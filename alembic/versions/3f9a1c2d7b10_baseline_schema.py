"""Baseline: protocol tracker schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the core tables: partner, protocols, stock_tracking, users,
activity_logs, analytics_daily.

Tables that already exist (databases created before migrations were
introduced) are left untouched; the follow-up revision adds whatever
columns such databases are missing.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f9a1c2d7b10"
down_revision = None
branch_labels = None
depends_on = None


def _existing_tables() -> set:
    return set(sa.inspect(op.get_bind()).get_table_names())


def upgrade() -> None:
    existing = _existing_tables()

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("username", sa.Text, nullable=False, unique=True),
            sa.Column("email", sa.Text, nullable=False, unique=True),
            sa.Column("password_hash", sa.Text, nullable=False),
            sa.Column("full_name", sa.Text, nullable=False),
            sa.Column("role", sa.Text, nullable=False, server_default="operator"),
            sa.Column("is_active", sa.Integer, server_default="1"),
            sa.Column("created_at", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("last_login", sa.Text),
            sa.Column("created_by", sa.Integer),
        )

    if "partner" not in existing:
        op.create_table(
            "partner",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("name", sa.Text, nullable=False),
            sa.Column("type", sa.Text, nullable=False),
            sa.Column("code", sa.Text, nullable=False, unique=True),
            sa.Column("province_code", sa.Text, nullable=False),
            sa.Column("address", sa.Text),
            sa.Column("phone", sa.Text),
            sa.Column("email", sa.Text),
            sa.Column("is_active", sa.Integer, server_default="1"),
            sa.Column("created_at", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("created_by", sa.Integer),
            sa.CheckConstraint(
                "type IN ('klinik', 'puskesmas', 'rumah_sakit')",
                name="ck_partner_type",
            ),
        )
        op.create_index("idx_partner_province", "partner", ["province_code"])

    if "protocols" not in existing:
        # Patient-data columns are added by the follow-up revision.
        op.create_table(
            "protocols",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("code", sa.Text, unique=True),
            sa.Column("province_code", sa.Text),
            sa.Column("partner_id", sa.Integer, sa.ForeignKey("partner.id")),
            sa.Column("created_at", sa.Text),
            sa.Column("status", sa.Text),
            sa.Column("created_by", sa.Integer),
            sa.Column("updated_by", sa.Integer),
        )
        op.create_index("idx_protocols_partner", "protocols", ["partner_id"])
        op.create_index("idx_protocols_created", "protocols", ["created_at"])
        op.create_index("idx_protocols_status", "protocols", ["status"])

    if "stock_tracking" not in existing:
        op.create_table(
            "stock_tracking",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("partner_id", sa.Integer, sa.ForeignKey("partner.id"), nullable=False),
            sa.Column("total_allocated", sa.Integer, server_default="0"),
            sa.Column("total_used", sa.Integer, server_default="0"),
            sa.Column("total_available", sa.Integer, server_default="0"),
            sa.Column("last_updated", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
        )

    if "activity_logs" not in existing:
        # user_id 0 is the legacy superuser, which has no users row.
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.Integer, nullable=False),
            sa.Column("action", sa.Text, nullable=False),
            sa.Column("target_type", sa.Text),
            sa.Column("target_id", sa.Text),
            sa.Column("details", sa.Text),
            sa.Column("ip_address", sa.Text),
            sa.Column("user_agent", sa.Text),
            sa.Column("created_at", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("idx_activity_logs_created", "activity_logs", ["created_at"])

    if "analytics_daily" not in existing:
        op.create_table(
            "analytics_daily",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("date", sa.Text, nullable=False),
            sa.Column("total_protocols", sa.Integer, server_default="0"),
            sa.Column("created_count", sa.Integer, server_default="0"),
            sa.Column("delivered_count", sa.Integer, server_default="0"),
            sa.Column("terpakai_count", sa.Integer, server_default="0"),
            sa.Column("unique_users", sa.Integer, server_default="0"),
            sa.Column("scan_count", sa.Integer, server_default="0"),
            sa.Column("created_at", sa.Text, server_default=sa.text("CURRENT_TIMESTAMP")),
        )


def downgrade() -> None:
    for table in (
        "analytics_daily",
        "activity_logs",
        "stock_tracking",
        "protocols",
        "partner",
        "users",
    ):
        op.drop_table(table)
