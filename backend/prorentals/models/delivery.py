from datetime import datetime

from prorentals.extensions import db


class Delivery(db.Model):
    """Lalamove order placed for a rental (outbound delivery or return pickup)."""

    __tablename__ = "deliveries"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    rental_id = db.Column(db.String(64), nullable=False, index=True)
    kind = db.Column(db.Enum("delivery", "pickup", name="delivery_kind_enum"), nullable=False)

    order_id = db.Column(db.String(64), nullable=False, unique=True)
    quotation_id = db.Column(db.String(64), nullable=True)
    service_type = db.Column(db.String(20), nullable=False, default="MOTORCYCLE")

    status = db.Column(db.String(40), nullable=False, default="aguardando_motorista")
    substatus = db.Column(db.String(40), nullable=True)
    provider_status = db.Column(db.String(40), nullable=True)
    driver = db.Column(db.JSON, nullable=True)
    location = db.Column(db.JSON, nullable=True)

    price_total = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=True)
    tracking_url = db.Column(db.String(300), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True)
