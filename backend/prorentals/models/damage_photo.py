from datetime import datetime

from prorentals.extensions import db


class DamagePhoto(db.Model):
    __tablename__ = "damage_photos"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    damage_id = db.Column(
        db.Integer,
        db.ForeignKey("damages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rental_id = db.Column(db.String(64), nullable=True, index=True)

    url = db.Column(db.String(500), nullable=False, unique=True)
    stored_path = db.Column(db.String(500), nullable=False)
    original_name = db.Column(db.String(255), nullable=True)
    content_type = db.Column(db.String(50), nullable=False)
    size_bytes = db.Column(db.Integer, nullable=False)
    uploaded_by = db.Column(db.String(64), nullable=True)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
