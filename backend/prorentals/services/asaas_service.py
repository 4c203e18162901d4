"""
Rules the back-office enforces on top of the Asaas proxy: which payments
may be edited, paid by card, refunded, or exposed as PIX/boleto.
"""
from datetime import date, datetime
from typing import Any, Dict, Optional

from flask import current_app

from prorentals.services import asaas_client
from prorentals.utils.errors import ApiError, ConflictError, UpstreamError, ValidationError

REFUNDABLE_STATUSES = ("RECEIVED", "CONFIRMED", "RECEIVED_IN_CASH")
REFUND_WINDOW_DAYS = 180


def clean_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in (data or {}).items():
        if value is None:
            continue
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = clean_payload(value)
        out[key] = value
    return out


def _payment(payment_id: str) -> Dict[str, Any]:
    try:
        return asaas_client.get_client().get_payment(payment_id)
    except UpstreamError as e:
        if e.status_code == 404:
            raise ApiError("Payment not found", 404, payload={"code": "NOT_FOUND", "paymentId": payment_id})
        raise


def _require_pending(payment: Dict[str, Any], action: str) -> None:
    if payment.get("status") != "PENDING":
        raise ConflictError(
            f"Only pending payments can be {action}",
            payload={"currentStatus": payment.get("status")},
        )


def _require_billing_type(payment: Dict[str, Any], billing_type: str) -> None:
    if payment.get("billingType") != billing_type:
        raise ConflictError(
            f"Payment is not of type {billing_type}",
            payload={"billingType": payment.get("billingType")},
        )


def update_payment(payment_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _require_pending(_payment(payment_id), "updated")
    return asaas_client.get_client().update_payment(payment_id, clean_payload(data))


def delete_payment(payment_id: str) -> Dict[str, Any]:
    _require_pending(_payment(payment_id), "deleted")
    return asaas_client.get_client().delete_payment(payment_id)


def get_pix(payment_id: str, regenerate: bool = False) -> Dict[str, Any]:
    payment = _payment(payment_id)
    _require_billing_type(payment, "PIX")
    _require_pending(payment, "regenerated" if regenerate else "paid by PIX")
    qr = asaas_client.get_client().get_pix_qr_code(payment_id)
    return {
        "paymentId": payment_id,
        "value": payment.get("value"),
        "dueDate": payment.get("dueDate"),
        "encodedImage": qr.get("encodedImage"),
        "payload": qr.get("payload"),
        "expirationDate": qr.get("expirationDate"),
        "regenerated": regenerate,
    }


def get_boleto(payment_id: str) -> Dict[str, Any]:
    payment = _payment(payment_id)
    _require_billing_type(payment, "BOLETO")
    slip = asaas_client.get_client().get_identification_field(payment_id)
    return {
        "paymentId": payment_id,
        "value": payment.get("value"),
        "dueDate": payment.get("dueDate"),
        "status": payment.get("status"),
        "identificationField": slip.get("identificationField"),
        "nossoNumero": slip.get("nossoNumero"),
        "barCode": slip.get("barCode"),
        "bankSlipUrl": payment.get("bankSlipUrl") or slip.get("bankSlipUrl"),
    }


def _card_expired(card: Dict[str, Any], today: Optional[date] = None) -> bool:
    today = today or date.today()
    year, month = int(card["expiryYear"]), int(card["expiryMonth"])
    return year < today.year or (year == today.year and month < today.month)


def mask_card(card: Dict[str, Any]) -> Dict[str, Any]:
    masked = dict(card)
    masked["number"] = f"****-****-****-{str(card.get('number', ''))[-4:]}"
    masked["ccv"] = "***"
    return masked


def pay_with_credit_card(payment_id: str, data: Dict[str, Any], remote_ip: Optional[str] = None) -> Dict[str, Any]:
    payment = _payment(payment_id)
    _require_pending(payment, "paid")
    _require_billing_type(payment, "CREDIT_CARD")

    card = data["creditCard"]
    if _card_expired(card):
        raise ValidationError("Credit card expired", errors={"creditCard": ["Card is expired"]})

    result = asaas_client.get_client().pay_with_credit_card(
        payment_id,
        card,
        clean_payload(data.get("holderInfo") or {}) or None,
        data.get("remoteIp") or remote_ip,
    )
    current_app.logger.info("[asaas] card payment processed payment=%s status=%s", payment_id, result.get("status"))
    response = dict(result)
    response["creditCard"] = mask_card(card)
    return response


def refund(payment_id: str, value: Optional[float] = None, description: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    payment = _payment(payment_id)
    status = payment.get("status")
    if status == "REFUNDED":
        raise ConflictError("Payment was already refunded", payload={"currentStatus": status})
    if status not in REFUNDABLE_STATUSES:
        raise ConflictError(
            "Only received or confirmed payments can be refunded",
            payload={"currentStatus": status, "refundableStatuses": list(REFUNDABLE_STATUSES)},
        )

    original = float(payment.get("value") or 0)
    refund_value = float(value) if value else original
    if refund_value > original:
        raise ValidationError(
            "Refund cannot exceed the payment value",
            errors={"value": [f"Payment value is {original:.2f}"]},
        )

    partial = refund_value < original
    if partial and payment.get("billingType") == "BOLETO":
        raise ConflictError("Partial refunds are not allowed for boleto payments")

    paid_on = payment.get("paymentDate") or payment.get("dateCreated")
    if paid_on:
        days = ((now or datetime.utcnow()).date() - date.fromisoformat(str(paid_on)[:10])).days
        if days > REFUND_WINDOW_DAYS:
            raise ConflictError(
                f"Refund window expired (maximum {REFUND_WINDOW_DAYS} days)",
                payload={"paymentDate": str(paid_on), "daysSincePayment": days},
            )

    client = asaas_client.get_client()
    result = client.refund_payment(payment_id, refund_value, description)
    current_app.logger.info("[asaas] refund payment=%s value=%.2f partial=%s", payment_id, refund_value, partial)
    return {
        "refund": result,
        "payment": client.get_payment(payment_id),
        "isPartialRefund": partial,
        "refundValue": refund_value,
        "originalValue": original,
        "processedAt": datetime.utcnow().isoformat(),
    }
