"""add damage billings, event outbox, notifications, inspection tasks and deliveries

Revision ID: 20261001_0003
Revises: 20261001_0002
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "20261001_0003"
down_revision = "20261001_0002"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    if "damage_billings" not in tables:
        op.create_table(
            "damage_billings",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("reference", sa.String(length=64), nullable=False),
            sa.Column(
                "billing_method",
                sa.Enum("asaas", "manual", "credit_card", "bank_transfer", name="billing_method_enum"),
                nullable=False,
            ),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
            sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
            sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("additional_fees", sa.JSON(), nullable=True),
            sa.Column("final_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("installments", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column(
                "status",
                sa.Enum("pending", "paid", "overdue", "cancelled", "refunded", name="billing_status_enum"),
                nullable=False,
                server_default="pending",
            ),
            sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
            sa.Column("gateway_status", sa.String(length=40), nullable=True),
            sa.Column("payment_url", sa.String(length=500), nullable=True),
            sa.Column("pix_payload", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["damage_reports.id"], ondelete="RESTRICT"),
            sa.UniqueConstraint("report_id", name="uq_damage_billings_report_id"),
            sa.UniqueConstraint("reference", name="uq_damage_billings_reference"),
        )
        op.create_index("ix_damage_billings_gateway_payment_id", "damage_billings", ["gateway_payment_id"], unique=False)

    if "domain_events" not in tables:
        op.create_table(
            "domain_events",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("aggregate_type", sa.String(length=40), nullable=False),
            sa.Column("aggregate_id", sa.String(length=64), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column(
                "status",
                sa.Enum("pending", "delivered", "failed", name="domain_event_status_enum"),
                nullable=False,
                server_default="pending",
            ),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_error", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("delivered_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_domain_events_event_type", "domain_events", ["event_type"], unique=False)
        op.create_index("ix_domain_events_status", "domain_events", ["status"], unique=False)
        op.create_index("ix_domain_events_created_at", "domain_events", ["created_at"], unique=False)

    if "notifications" not in tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("recipient", sa.String(length=80), nullable=False),
            sa.Column("type", sa.String(length=60), nullable=False),
            sa.Column("message", sa.String(length=300), nullable=False),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("meta_json", sa.Text(), nullable=True),
        )
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"], unique=False)
        op.create_index("ix_notifications_read", "notifications", ["read"], unique=False)
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)

    if "inspection_tasks" not in tables:
        op.create_table(
            "inspection_tasks",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("rental_id", sa.String(length=64), nullable=False),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="high"),
            sa.Column("assigned_to", sa.String(length=64), nullable=False, server_default="inspection_team"),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.Enum("open", "done", name="inspection_status_enum"), nullable=False, server_default="open"),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["damage_reports.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("report_id", name="uq_inspection_tasks_report_id"),
        )

    if "deliveries" not in tables:
        op.create_table(
            "deliveries",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("rental_id", sa.String(length=64), nullable=False),
            sa.Column("kind", sa.Enum("delivery", "pickup", name="delivery_kind_enum"), nullable=False),
            sa.Column("order_id", sa.String(length=64), nullable=False),
            sa.Column("quotation_id", sa.String(length=64), nullable=True),
            sa.Column("service_type", sa.String(length=20), nullable=False, server_default="MOTORCYCLE"),
            sa.Column("status", sa.String(length=40), nullable=False, server_default="aguardando_motorista"),
            sa.Column("substatus", sa.String(length=40), nullable=True),
            sa.Column("provider_status", sa.String(length=40), nullable=True),
            sa.Column("driver", sa.JSON(), nullable=True),
            sa.Column("location", sa.JSON(), nullable=True),
            sa.Column("price_total", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=True),
            sa.Column("tracking_url", sa.String(length=300), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.UniqueConstraint("order_id", name="uq_deliveries_order_id"),
        )
        op.create_index("ix_deliveries_rental_id", "deliveries", ["rental_id"], unique=False)


def downgrade():
    bind = op.get_bind()
    insp = inspect(bind)
    tables = set(insp.get_table_names())

    for table in ("deliveries", "inspection_tasks", "notifications", "domain_events", "damage_billings"):
        if table in tables:
            op.drop_table(table)
