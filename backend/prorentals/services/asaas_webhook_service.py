import hmac
from typing import Any, Dict, Optional

from flask import current_app

from prorentals.extensions import db
from prorentals.services import billing_service
from prorentals.services.asaas_client import sign_webhook_body
from prorentals.utils.errors import ApiError

# event -> local billing status; None means "derive from payment.status"
EVENT_STATUS = {
    "PAYMENT_CREATED": None,
    "PAYMENT_UPDATED": None,
    "PAYMENT_CONFIRMED": "paid",
    "PAYMENT_RECEIVED": "paid",
    "PAYMENT_OVERDUE": "overdue",
    "PAYMENT_DELETED": "cancelled",
    "PAYMENT_RESTORED": "pending",
    "PAYMENT_REFUNDED": "refunded",
    "PAYMENT_RECEIVED_IN_CASH_UNDONE": "pending",
}

# Tracked on the billing row without changing its status.
INFORMATIONAL_EVENTS = {
    "PAYMENT_CHARGEBACK_REQUESTED",
    "PAYMENT_CHARGEBACK_DISPUTE",
    "PAYMENT_AWAITING_CHARGEBACK_REVERSAL",
    "PAYMENT_DUNNING_REQUESTED",
    "PAYMENT_DUNNING_RECEIVED",
    "PAYMENT_BANK_SLIP_VIEWED",
    "PAYMENT_CHECKOUT_VIEWED",
}


def verify_signature(body: bytes, signature: Optional[str]) -> None:
    token = current_app.config.get("ASAAS_WEBHOOK_TOKEN") or ""
    if not token:
        current_app.logger.error("[webhooks] ASAAS_WEBHOOK_TOKEN not set, refusing asaas event")
        raise ApiError("Webhook token not configured", 401, payload={"code": "INVALID_SIGNATURE"})
    expected = sign_webhook_body(body, token)
    if not signature or not hmac.compare_digest(expected, signature.strip()):
        current_app.logger.warning("[webhooks] asaas signature mismatch")
        raise ApiError("Invalid signature", 401, payload={"code": "INVALID_SIGNATURE"})


def handle_event(payload: Dict[str, Any]) -> Dict[str, Any]:
    event = payload.get("event")
    payment = payload.get("payment") or {}
    reference = payment.get("externalReference")

    if event not in EVENT_STATUS and event not in INFORMATIONAL_EVENTS:
        current_app.logger.info("[webhooks] asaas unknown event=%s payment=%s", event, payment.get("id"))
        return {"handled": False}

    billing = billing_service.find_by_reference(reference) if reference else None
    if billing is None:
        current_app.logger.info(
            "[webhooks] asaas event=%s for payment=%s without local billing ref=%s", event, payment.get("id"), reference
        )
        return {"handled": False}

    if billing.billing_method != "asaas":
        current_app.logger.warning(
            "[webhooks] asaas event=%s ignored for %s billing ref=%s", event, billing.billing_method, reference
        )
        return {"handled": False}

    if billing.gateway_payment_id and payment.get("id") and payment["id"] != billing.gateway_payment_id:
        current_app.logger.warning(
            "[webhooks] asaas event=%s payment=%s does not match billing ref=%s", event, payment["id"], reference
        )
        return {"handled": False}
    if billing.gateway_payment_id is None and payment.get("id"):
        billing.gateway_payment_id = payment["id"]

    if event in INFORMATIONAL_EVENTS:
        billing.gateway_status = payment.get("status") or billing.gateway_status
        db.session.commit()
        current_app.logger.info("[webhooks] asaas event=%s ref=%s", event, reference)
        return {"handled": True}

    changed = billing_service.apply_gateway_status(billing, payment.get("status"), EVENT_STATUS[event])
    db.session.commit()
    current_app.logger.info(
        "[webhooks] asaas event=%s ref=%s status=%s changed=%s", event, reference, billing.status, changed
    )
    return {"handled": True}
