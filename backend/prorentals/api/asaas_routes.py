from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from prorentals.schemas.asaas_schemas import (
    CustomerSchema,
    CustomerUpdateSchema,
    GatewayListQuerySchema,
    PaymentSchema,
    PaymentUpdateSchema,
    PayWithCreditCardSchema,
    RefundSchema,
    WebhookConfigSchema,
    WebhookUpdateSchema,
)
from prorentals.services import asaas_client, asaas_service, asaas_webhook_service
from prorentals.services.asaas_service import clean_payload
from prorentals.utils.responses import success_response

bp = Blueprint("asaas", __name__)


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _query() -> dict:
    return clean_payload(GatewayListQuerySchema().load(request.args.to_dict()))


# Customers

@bp.get("/customers")
@jwt_required()
def list_customers():
    return success_response(data=asaas_client.get_client().list_customers(**_query()))


@bp.post("/customers")
@jwt_required()
def create_customer():
    data = clean_payload(CustomerSchema().load(_json()))
    customer = asaas_client.get_client().create_customer(data)
    return success_response(data=customer, message="Customer created", status_code=201)


@bp.get("/customers/<customer_id>")
@jwt_required()
def get_customer(customer_id: str):
    return success_response(data=asaas_client.get_client().get_customer(customer_id))


@bp.put("/customers/<customer_id>")
@jwt_required()
def update_customer(customer_id: str):
    data = clean_payload(CustomerUpdateSchema().load(_json()))
    return success_response(data=asaas_client.get_client().update_customer(customer_id, data), message="Customer updated")


@bp.delete("/customers/<customer_id>")
@jwt_required()
def delete_customer(customer_id: str):
    return success_response(data=asaas_client.get_client().delete_customer(customer_id), message="Customer removed")


# Payments

@bp.get("/payments")
@jwt_required()
def list_payments():
    return success_response(data=asaas_client.get_client().list_payments(**_query()))


@bp.post("/payments")
@jwt_required()
def create_payment():
    data = clean_payload(PaymentSchema().load(_json()))
    payment = asaas_client.get_client().create_payment(data, idempotency_key=data.get("externalReference"))
    return success_response(data=payment, message="Payment created", status_code=201)


@bp.get("/payments/<payment_id>")
@jwt_required()
def get_payment(payment_id: str):
    return success_response(data=asaas_client.get_client().get_payment(payment_id))


@bp.put("/payments/<payment_id>")
@jwt_required()
def update_payment(payment_id: str):
    data = PaymentUpdateSchema().load(_json())
    return success_response(data=asaas_service.update_payment(payment_id, data), message="Payment updated")


@bp.delete("/payments/<payment_id>")
@jwt_required()
def delete_payment(payment_id: str):
    return success_response(data=asaas_service.delete_payment(payment_id), message="Payment removed")


@bp.get("/payments/<payment_id>/pix")
@jwt_required()
def get_pix(payment_id: str):
    return success_response(data=asaas_service.get_pix(payment_id))


@bp.post("/payments/<payment_id>/pix")
@jwt_required()
def regenerate_pix(payment_id: str):
    return success_response(data=asaas_service.get_pix(payment_id, regenerate=True), message="PIX QR code regenerated")


@bp.get("/payments/<payment_id>/boleto")
@jwt_required()
def get_boleto(payment_id: str):
    return success_response(data=asaas_service.get_boleto(payment_id))


@bp.post("/payments/<payment_id>/credit-card")
@jwt_required()
def pay_with_credit_card(payment_id: str):
    data = PayWithCreditCardSchema().load(_json())
    remote_ip = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip() or request.remote_addr
    result = asaas_service.pay_with_credit_card(payment_id, data, remote_ip=remote_ip)
    return success_response(data=result, message="Card payment processed")


@bp.post("/payments/<payment_id>/refund")
@jwt_required()
def refund_payment(payment_id: str):
    data = RefundSchema().load(_json())
    result = asaas_service.refund(payment_id, data.get("value"), data.get("description"))
    return success_response(data=result, message="Payment refunded")


# Webhooks

@bp.get("/webhooks")
@jwt_required()
def list_webhooks():
    return success_response(data=asaas_client.get_client().list_webhooks())


@bp.put("/webhooks")
@jwt_required()
def create_webhook():
    data = clean_payload(WebhookConfigSchema().load(_json()))
    return success_response(data=asaas_client.get_client().create_webhook(data), message="Webhook created", status_code=201)


@bp.post("/webhooks")
def receive_webhook():
    body = request.get_data() or b""
    asaas_webhook_service.verify_signature(body, request.headers.get("asaas-access-token"))
    asaas_webhook_service.handle_event(request.get_json(silent=True) or {})
    return jsonify({"received": True}), 200


@bp.get("/webhooks/<webhook_id>")
@jwt_required()
def get_webhook(webhook_id: str):
    return success_response(data=asaas_client.get_client().get_webhook(webhook_id))


@bp.put("/webhooks/<webhook_id>")
@jwt_required()
def update_webhook(webhook_id: str):
    data = clean_payload(WebhookUpdateSchema().load(_json()))
    return success_response(data=asaas_client.get_client().update_webhook(webhook_id, data), message="Webhook updated")


@bp.delete("/webhooks/<webhook_id>")
@jwt_required()
def delete_webhook(webhook_id: str):
    return success_response(data=asaas_client.get_client().delete_webhook(webhook_id), message="Webhook removed")
