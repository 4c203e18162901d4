"""add damages, damage photos, damage reports and report items

Revision ID: 20261001_0002
Revises: 20261001_0001
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None

SEVERITIES = ("low", "medium", "high", "critical")
CATEGORIES = ("structural", "functional", "aesthetic", "missing")
REJECTION_CATEGORIES = (
    "insufficient_evidence",
    "pre_existing_damage",
    "normal_wear",
    "incorrect_assessment",
    "missing_documentation",
    "policy_violation",
    "duplicate_report",
    "other",
)


def upgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    if "damages" not in tables:
        op.create_table(
            "damages",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_id", sa.String(length=64), nullable=True),
            sa.Column("item_name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("severity", sa.Enum(*SEVERITIES, name="damage_severity_enum"), nullable=False),
            sa.Column("category", sa.Enum(*CATEGORIES, name="damage_category_enum"), nullable=False),
            sa.Column("repair_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("photos", sa.JSON(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("responsible", sa.String(length=20), nullable=True),
            sa.Column(
                "status",
                sa.Enum("pending", "approved", "rejected", "repaired", name="damage_status_enum"),
                nullable=False,
                server_default="pending",
            ),
            sa.Column("reported_by", sa.String(length=64), nullable=False),
            sa.Column("reported_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_damages_rental_id", "damages", ["rental_id"], unique=False)
        op.create_index("ix_damages_status", "damages", ["status"], unique=False)
        op.create_index("ix_damages_reported_at", "damages", ["reported_at"], unique=False)

    if "damage_photos" not in tables:
        op.create_table(
            "damage_photos",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("damage_id", sa.Integer(), nullable=True),
            sa.Column("rental_id", sa.String(length=64), nullable=True),
            sa.Column("url", sa.String(length=500), nullable=False),
            sa.Column("stored_path", sa.String(length=500), nullable=False),
            sa.Column("original_name", sa.String(length=255), nullable=True),
            sa.Column("content_type", sa.String(length=50), nullable=False),
            sa.Column("size_bytes", sa.Integer(), nullable=False),
            sa.Column("uploaded_by", sa.String(length=64), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["damage_id"], ["damages.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("url", name="uq_damage_photos_url"),
        )
        op.create_index("ix_damage_photos_damage_id", "damage_photos", ["damage_id"], unique=False)
        op.create_index("ix_damage_photos_rental_id", "damage_photos", ["rental_id"], unique=False)

    if "damage_reports" not in tables:
        op.create_table(
            "damage_reports",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_id", sa.String(length=64), nullable=False),
            sa.Column("in_flight_rental_id", sa.String(length=64), nullable=True),
            sa.Column(
                "status",
                sa.Enum("draft", "submitted", "approved", "rejected", "billed", name="damage_report_status_enum"),
                nullable=False,
                server_default="draft",
            ),
            sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("submitted_by", sa.String(length=64), nullable=True),
            sa.Column("submission_notes", sa.Text(), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("approved_by", sa.String(length=64), nullable=True),
            sa.Column("approval_notes", sa.Text(), nullable=True),
            sa.Column("adjustments", sa.JSON(), nullable=True),
            sa.Column("rejected_at", sa.DateTime(), nullable=True),
            sa.Column("rejected_by", sa.String(length=64), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("rejection_category", sa.Enum(*REJECTION_CATEGORIES, name="rejection_category_enum"), nullable=True),
            sa.Column("rejection_feedback", sa.Text(), nullable=True),
            sa.Column("suggested_actions", sa.JSON(), nullable=True),
            sa.Column("allow_resubmission", sa.Boolean(), nullable=True),
            sa.Column("requires_inspection", sa.Boolean(), nullable=True),
            sa.Column("billed_at", sa.DateTime(), nullable=True),
            sa.Column("billed_by", sa.String(length=64), nullable=True),
            sa.Column("billing_reference", sa.String(length=64), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            # Enforces one draft/submitted report per rental.
            sa.UniqueConstraint("in_flight_rental_id", name="uq_damage_reports_in_flight_rental_id"),
            sa.UniqueConstraint("billing_reference", name="uq_damage_reports_billing_reference"),
        )
        op.create_index("ix_damage_reports_rental_id", "damage_reports", ["rental_id"], unique=False)
        op.create_index("ix_damage_reports_status", "damage_reports", ["status"], unique=False)
        op.create_index("ix_damage_reports_created_by", "damage_reports", ["created_by"], unique=False)
        op.create_index("ix_damage_reports_created_at", "damage_reports", ["created_at"], unique=False)

    if "damage_report_items" not in tables:
        op.create_table(
            "damage_report_items",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("source_damage_id", sa.Integer(), nullable=True),
            sa.Column("item_name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("severity", sa.Enum(*SEVERITIES, name="report_item_severity_enum"), nullable=False),
            sa.Column("category", sa.Enum(*CATEGORIES, name="report_item_category_enum"), nullable=False),
            sa.Column("repair_cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("photos", sa.JSON(), nullable=False),
            sa.Column("responsible", sa.String(length=20), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("reported_by", sa.String(length=64), nullable=False),
            sa.Column("reported_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("approved", sa.Boolean(), nullable=True),
            sa.Column("original_cost", sa.Numeric(10, 2), nullable=True),
            sa.Column("adjustment_reason", sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["damage_reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["source_damage_id"], ["damages.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_damage_report_items_report_id", "damage_report_items", ["report_id"], unique=False)


def downgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    for table in ("damage_report_items", "damage_reports", "damage_photos", "damages"):
        if table in tables:
            op.drop_table(table)
