"""
Billing of approved damage reports.

Lives outside the lifecycle engine: it computes the final amount, talks
to Asaas when the method asks for it, stores a DamageBilling row and only
then asks the engine for the approved -> billed transition.
"""
import time
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from flask import current_app

from prorentals.extensions import db
from prorentals.models.damage_billing import DamageBilling
from prorentals.services import asaas_client, billing_policy, damage_report_service, event_service
from prorentals.utils.errors import AuthorizationError, InvalidStateError, NotFoundError, UpstreamError, ValidationError

SYSTEM_ACTOR = "system"
FINE_PERCENT = 2
INTEREST_PERCENT = 1


def _money(value) -> float:
    return round(float(value or 0), 2)


def make_reference(report_id: int) -> str:
    return f"DAM-{report_id}-{int(time.time() * 1000)}"


def compute_amounts(subtotal, discount_percent=0, additional_fees=None) -> Dict[str, float]:
    subtotal = _money(subtotal)
    discount_amount = _money(subtotal * float(discount_percent or 0) / 100)
    fees = _money(sum(float(f.get("amount") or 0) for f in additional_fees or []))
    return {
        "subtotal": subtotal,
        "discountAmount": discount_amount,
        "feesTotal": fees,
        "finalAmount": _money(subtotal - discount_amount + fees),
    }


def billing_to_dict(billing: DamageBilling) -> Dict[str, Any]:
    return {
        "id": billing.id,
        "reportId": billing.report_id,
        "reference": billing.reference,
        "billingMethod": billing.billing_method,
        "subtotal": _money(billing.subtotal),
        "discountPercent": float(billing.discount_percent or 0),
        "discountAmount": _money(billing.discount_amount),
        "additionalFees": billing.additional_fees or [],
        "finalAmount": _money(billing.final_amount),
        "installments": billing.installments,
        "dueDate": billing.due_date.isoformat() if billing.due_date else None,
        "description": billing.description,
        "notes": billing.notes,
        "status": billing.status,
        "gatewayPaymentId": billing.gateway_payment_id,
        "gatewayStatus": billing.gateway_status,
        "paymentUrl": billing.payment_url,
        "pixPayload": billing.pix_payload,
        "createdBy": billing.created_by,
        "createdAt": billing.created_at.isoformat() if billing.created_at else None,
        "updatedAt": billing.updated_at.isoformat() if billing.updated_at else None,
    }


def _create_gateway_charge(report, data: Dict[str, Any], amounts: Dict[str, float], reference: str) -> Dict[str, Any]:
    client = asaas_client.get_client()
    installments = int(data.get("installments") or 1)
    payment_data = {
        "customer": data["customer"],
        "billingType": "CREDIT_CARD" if installments > 1 else "PIX",
        "value": amounts["finalAmount"],
        "dueDate": data["due_date"].isoformat(),
        "description": data.get("description") or f"Danos na locação {report.rental_id} (relatório #{report.id})",
        "externalReference": reference,
        "fine": {"value": FINE_PERCENT},
        "interest": {"value": INTEREST_PERCENT},
    }
    if installments > 1:
        payment_data["installmentCount"] = installments
        payment_data["installmentValue"] = _money(amounts["finalAmount"] / installments)

    payment = client.create_payment(payment_data, idempotency_key=reference)

    pix_payload = None
    if payment_data["billingType"] == "PIX" and payment.get("id"):
        try:
            pix_payload = client.get_pix_qr_code(payment["id"]).get("payload")
        except UpstreamError as e:
            current_app.logger.warning("[billing] pix qr code unavailable payment=%s: %s", payment.get("id"), e.message)

    return {
        "gateway_payment_id": payment.get("id"),
        "gateway_status": payment.get("status"),
        "status": asaas_client.map_payment_status(payment.get("status")),
        "payment_url": payment.get("invoiceUrl") or payment.get("bankSlipUrl"),
        "pix_payload": pix_payload,
    }


def bill_report(report_id: int, billed_by: str, data: Dict[str, Any], roles=None) -> DamageBilling:
    """``roles=None`` means an internal caller (auto-billing)."""
    report = damage_report_service.get_report(report_id)
    damage_report_service.repository.check_version(report, data.get("expected_version"))

    if report.status == "billed" or DamageBilling.query.filter_by(report_id=report.id).first() is not None:
        raise InvalidStateError("This report was already billed", payload={"currentStatus": report.status})
    if report.status != "approved":
        raise InvalidStateError("Only approved reports can be billed", payload={"currentStatus": report.status})
    if roles is not None and not damage_report_service.has_role(roles, damage_report_service.BILLER_ROLES):
        raise AuthorizationError("You are not allowed to bill damage reports")

    method = data["billing_method"]
    fees = list(data.get("additional_fees") or [])
    amounts = compute_amounts(report.total_cost, data.get("discount"), fees)
    if amounts["finalAmount"] <= 0:
        raise ValidationError(
            "The final amount must be greater than zero",
            errors={"finalAmount": [f"Computed {amounts['finalAmount']:.2f}"]},
        )
    if method == "asaas" and not data.get("customer"):
        raise ValidationError("customer is required when billing through Asaas", errors={"customer": ["Required"]})

    reference = make_reference(report.id)
    gateway = {"status": "pending"}
    if method == "asaas":
        gateway = _create_gateway_charge(report, data, amounts, reference)

    billing = DamageBilling(
        report_id=report.id,
        reference=reference,
        billing_method=method,
        subtotal=amounts["subtotal"],
        discount_percent=float(data.get("discount") or 0),
        discount_amount=amounts["discountAmount"],
        additional_fees=fees,
        final_amount=amounts["finalAmount"],
        installments=int(data.get("installments") or 1),
        due_date=data["due_date"],
        description=data.get("description"),
        notes=data.get("notes"),
        created_by=str(billed_by),
        **gateway,
    )
    db.session.add(billing)

    damage_report_service.mark_billed(
        report,
        billed_by,
        reference,
        event_extra={
            "finalAmount": amounts["finalAmount"],
            "dueDate": data["due_date"].isoformat(),
            "sendNotification": bool(data.get("send_notification", True)),
            "paymentUrl": billing.payment_url,
            "billingMethod": method,
        },
    )
    current_app.logger.info(
        "[billing] report=%s ref=%s method=%s final=%.2f by=%s",
        report.id,
        reference,
        method,
        amounts["finalAmount"],
        billed_by,
    )
    return billing


def apply_gateway_status(billing: DamageBilling, gateway_status: Optional[str], local_status: Optional[str] = None) -> bool:
    new_status = local_status or asaas_client.map_payment_status(gateway_status)
    changed = billing.status != new_status or billing.gateway_status != gateway_status
    if changed:
        billing.status = new_status
        billing.gateway_status = gateway_status
        billing.updated_at = datetime.utcnow()
    return changed


def get_billing(report_id: int) -> DamageBilling:
    billing = DamageBilling.query.filter_by(report_id=report_id).first()
    if billing is None:
        raise NotFoundError("This report has no billing", payload={"reportId": report_id})

    if billing.billing_method == "asaas" and billing.gateway_payment_id:
        try:
            payment = asaas_client.get_client().get_payment(billing.gateway_payment_id)
        except UpstreamError as e:
            current_app.logger.warning("[billing] status refresh failed ref=%s: %s", billing.reference, e.message)
            return billing
        if apply_gateway_status(billing, payment.get("status")):
            db.session.commit()
    return billing


def find_by_reference(reference: str) -> Optional[DamageBilling]:
    return DamageBilling.query.filter_by(reference=reference).first()


@event_service.subscribe("damage_report.approved")
def auto_bill_on_approval(event) -> None:
    config = current_app.config
    if not config.get("AUTO_BILLING_ENABLED"):
        return

    report = damage_report_service.repository.find(event.payload.get("reportId"))
    if report is None or report.status != "approved":
        return
    if not billing_policy.is_eligible_for_auto_billing(report):
        current_app.logger.info("[billing] report=%s needs manual billing review", report.id)
        return

    method = config.get("AUTO_BILLING_METHOD") or "manual"
    customer = None
    if method == "asaas":
        found = asaas_client.get_client().find_customer_by_reference(report.rental_id)
        if not found:
            current_app.logger.warning(
                "[billing] auto-billing skipped report=%s: no Asaas customer for rental=%s", report.id, report.rental_id
            )
            return
        customer = found["id"]

    due = date.today() + timedelta(days=int(config.get("AUTO_BILLING_DUE_DAYS", 7)))
    bill_report(
        report.id,
        SYSTEM_ACTOR,
        {
            "billing_method": method,
            "due_date": due,
            "customer": customer,
            "installments": 1,
            "discount": 0,
            "send_notification": billing_policy.should_notify_customer(report),
        },
    )
