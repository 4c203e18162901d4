from datetime import datetime

from prorentals.extensions import db
from prorentals.models.damage import CATEGORIES, SEVERITIES

REPORT_STATUSES = ("draft", "submitted", "approved", "rejected", "billed")
IN_FLIGHT_STATUSES = ("draft", "submitted")

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


class DamageReport(db.Model):
    __tablename__ = "damage_reports"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    rental_id = db.Column(db.String(64), nullable=False, index=True)

    # Mirrors rental_id while the report is draft/submitted, NULL otherwise.
    # The unique index is what keeps one in-flight report per rental.
    in_flight_rental_id = db.Column(db.String(64), nullable=True, unique=True)

    status = db.Column(
        db.Enum(*REPORT_STATUSES, name="damage_report_status_enum"),
        nullable=False,
        default="draft",
        index=True,
    )
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    submitted_by = db.Column(db.String(64), nullable=True)
    submission_notes = db.Column(db.Text, nullable=True)

    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by = db.Column(db.String(64), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    # [{damageId, newCost, originalCost, reason}]
    adjustments = db.Column(db.JSON, nullable=True)

    rejected_at = db.Column(db.DateTime, nullable=True)
    rejected_by = db.Column(db.String(64), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    rejection_category = db.Column(db.Enum(*REJECTION_CATEGORIES, name="rejection_category_enum"), nullable=True)
    rejection_feedback = db.Column(db.Text, nullable=True)
    suggested_actions = db.Column(db.JSON, nullable=True)
    allow_resubmission = db.Column(db.Boolean, nullable=True)
    requires_inspection = db.Column(db.Boolean, nullable=True)

    billed_at = db.Column(db.DateTime, nullable=True)
    billed_by = db.Column(db.String(64), nullable=True)
    billing_reference = db.Column(db.String(64), nullable=True, unique=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    damages = db.relationship(
        "DamageReportItem",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="DamageReportItem.position",
    )

    # Version is bumped by the service, the ORM only adds it to the UPDATE's WHERE.
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def set_status(self, status: str) -> None:
        self.status = status
        self.in_flight_rental_id = self.rental_id if status in IN_FLIGHT_STATUSES else None

    def __repr__(self) -> str:
        return f"<DamageReport id={self.id} rental={self.rental_id} status={self.status} v={self.version}>"


class DamageReportItem(db.Model):
    __tablename__ = "damage_report_items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    report_id = db.Column(
        db.Integer,
        db.ForeignKey("damage_reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    source_damage_id = db.Column(
        db.Integer,
        db.ForeignKey("damages.id", ondelete="SET NULL"),
        nullable=True,
    )

    item_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.Enum(*SEVERITIES, name="report_item_severity_enum"), nullable=False)
    category = db.Column(db.Enum(*CATEGORIES, name="report_item_category_enum"), nullable=False)
    repair_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    photos = db.Column(db.JSON, nullable=False, default=list)
    responsible = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    reported_by = db.Column(db.String(64), nullable=False)
    reported_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Set by the approver
    approved = db.Column(db.Boolean, nullable=True)
    original_cost = db.Column(db.Numeric(10, 2), nullable=True)
    adjustment_reason = db.Column(db.String(500), nullable=True)

    report = db.relationship("DamageReport", back_populates="damages")
