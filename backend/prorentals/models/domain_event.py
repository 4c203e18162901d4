from datetime import datetime

from prorentals.extensions import db

EVENT_STATUSES = ("pending", "delivered", "failed")


class DomainEvent(db.Model):
    """Outbox row written in the same transaction as the change it describes."""

    __tablename__ = "domain_events"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    event_type = db.Column(db.String(80), nullable=False, index=True)
    aggregate_type = db.Column(db.String(40), nullable=False)
    aggregate_id = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(
        db.Enum(*EVENT_STATUSES, name="domain_event_status_enum"),
        nullable=False,
        default="pending",
        index=True,
    )
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    delivered_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<DomainEvent id={self.id} type={self.event_type} status={self.status}>"
