from datetime import datetime

from prorentals.extensions import db


class InspectionTask(db.Model):
    __tablename__ = "inspection_tasks"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    report_id = db.Column(
        db.Integer,
        db.ForeignKey("damage_reports.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    rental_id = db.Column(db.String(64), nullable=False)
    priority = db.Column(db.String(10), nullable=False, default="high")
    assigned_to = db.Column(db.String(64), nullable=False, default="inspection_team")
    due_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.Enum("open", "done", name="inspection_status_enum"), nullable=False, default="open")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
