from datetime import datetime

from prorentals.extensions import db

BILLING_METHODS = ("asaas", "manual", "credit_card", "bank_transfer")
BILLING_STATUSES = ("pending", "paid", "overdue", "cancelled", "refunded")


class DamageBilling(db.Model):
    __tablename__ = "damage_billings"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    report_id = db.Column(
        db.Integer,
        db.ForeignKey("damage_reports.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    # DAM-{reportId}-{epoch_ms}; also the gateway externalReference
    reference = db.Column(db.String(64), nullable=False, unique=True)
    billing_method = db.Column(db.Enum(*BILLING_METHODS, name="billing_method_enum"), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    additional_fees = db.Column(db.JSON, nullable=True)
    final_amount = db.Column(db.Numeric(12, 2), nullable=False)

    installments = db.Column(db.Integer, nullable=False, default=1)
    due_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(
        db.Enum(*BILLING_STATUSES, name="billing_status_enum"),
        nullable=False,
        default="pending",
    )
    gateway_payment_id = db.Column(db.String(64), nullable=True, index=True)
    gateway_status = db.Column(db.String(40), nullable=True)
    payment_url = db.Column(db.String(500), nullable=True)
    pix_payload = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True)

    report = db.relationship("DamageReport", lazy="joined")
