from datetime import datetime

from prorentals.extensions import db

SEVERITIES = ("low", "medium", "high", "critical")
CATEGORIES = ("structural", "functional", "aesthetic", "missing")
RESPONSIBLE_PARTIES = ("tenant", "company", "third_party", "unknown")
DAMAGE_STATUSES = ("pending", "approved", "rejected", "repaired")


class Damage(db.Model):
    """Damage record registered before it is assembled into a report."""

    __tablename__ = "damages"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    rental_id = db.Column(db.String(64), nullable=True, index=True)

    item_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.Enum(*SEVERITIES, name="damage_severity_enum"), nullable=False)
    category = db.Column(db.Enum(*CATEGORIES, name="damage_category_enum"), nullable=False)
    repair_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # ordered list of public URLs
    photos = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)
    responsible = db.Column(db.String(20), nullable=True)

    status = db.Column(
        db.Enum(*DAMAGE_STATUSES, name="damage_status_enum"),
        nullable=False,
        default="pending",
        index=True,
    )

    reported_by = db.Column(db.String(64), nullable=False)
    reported_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Damage id={self.id} rental={self.rental_id} status={self.status}>"
