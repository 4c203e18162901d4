import hashlib
import hmac
from typing import Any, Dict, Optional

from flask import current_app

from prorentals.extensions import db
from prorentals.services import delivery_service
from prorentals.services.notification_service import create_notification
from prorentals.utils.errors import ApiError


def verify_signature(body: bytes, signature: Optional[str]) -> None:
    secret = current_app.config.get("LALAMOVE_WEBHOOK_SECRET") or ""
    if not secret:
        current_app.logger.error("[webhooks] lalamove secret not configured, rejecting")
        raise ApiError("Invalid signature", 401, payload={"code": "INVALID_SIGNATURE"})
    if not signature:
        raise ApiError("Missing signature", 401, payload={"code": "INVALID_SIGNATURE"})
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip().lower()):
        current_app.logger.warning("[webhooks] lalamove signature mismatch")
        raise ApiError("Invalid signature", 401, payload={"code": "INVALID_SIGNATURE"})


def _flatten(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Accepts both the flat shape and ``{"eventType", "data": {"order": {...}}}``."""
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    order = data.get("order") if isinstance(data.get("order"), dict) else {}
    return {
        "eventType": payload.get("eventType"),
        "orderId": payload.get("orderId") or order.get("orderId") or data.get("orderId"),
        "status": payload.get("status") or order.get("status"),
        "driver": payload.get("driverInfo") or data.get("driver"),
        "location": payload.get("driverLocation") or data.get("location"),
    }


def handle_event(payload: Dict[str, Any]) -> Dict[str, Any]:
    event = _flatten(payload)
    event_type = event["eventType"]
    order_id = event["orderId"]

    delivery = delivery_service.find_by_order_id(order_id) if order_id else None
    if delivery is None:
        current_app.logger.warning("[webhooks] lalamove %s for unknown order=%s", event_type, order_id)
        return {"handled": False}

    if event_type == "ORDER_STATUS_CHANGED":
        delivery_service.apply_provider_status(delivery, event["status"])
        db.session.commit()
        current_app.logger.info(
            "[webhooks] lalamove order=%s status=%s -> %s", order_id, event["status"], delivery.status
        )
        if (event["status"] or "").upper() == "COMPLETED":
            create_notification(
                f"customer:{delivery.rental_id}",
                "DELIVERY_COMPLETED",
                "Entrega concluída" if delivery.kind == "delivery" else "Coleta concluída",
                {"rentalId": delivery.rental_id, "orderId": order_id},
                event_key=f"lalamove:{order_id}:COMPLETED",
            )
    elif event_type == "DRIVER_ASSIGNED":
        delivery.driver = event["driver"]
        db.session.commit()
        current_app.logger.info("[webhooks] lalamove order=%s driver assigned", order_id)
    elif event_type == "DRIVER_LOCATION_UPDATED":
        delivery.location = event["location"]
        db.session.commit()
    else:
        current_app.logger.info("[webhooks] lalamove unhandled event=%s order=%s", event_type, order_id)
        return {"handled": False}

    return {"handled": True}
