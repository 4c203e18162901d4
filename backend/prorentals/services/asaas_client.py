"""
Asaas payment gateway client.

Thin wrapper over the REST API (customers, payments, PIX, boleto,
credit card, refunds, webhooks). Every failure surfaces as UpstreamError
with the provider status mapped to ours.
"""

import hashlib
import hmac
import logging
import re
from typing import Any, Dict, Optional

import requests
from flask import current_app

from prorentals.utils.errors import UpstreamError
from prorentals.utils.http import build_session, upstream_status

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://sandbox.asaas.com/api/v3"
PRODUCTION_URL = "https://api.asaas.com/v3"

PAYMENT_STATUS_MAP = {
    "PENDING": "pending",
    "CONFIRMED": "paid",
    "RECEIVED": "paid",
    "RECEIVED_IN_CASH": "paid",
    "OVERDUE": "overdue",
    "REFUNDED": "refunded",
    "CANCELLED": "cancelled",
    "DELETED": "cancelled",
}

STATUS_LABELS = {
    "PENDING": "Pendente",
    "RECEIVED": "Recebido",
    "CONFIRMED": "Confirmado",
    "OVERDUE": "Vencido",
    "REFUNDED": "Estornado",
    "RECEIVED_IN_CASH": "Recebido em Dinheiro",
    "REFUND_REQUESTED": "Estorno Solicitado",
    "REFUND_IN_PROGRESS": "Estorno em Andamento",
    "CHARGEBACK_REQUESTED": "Chargeback Solicitado",
    "CHARGEBACK_DISPUTE": "Chargeback em Disputa",
    "AWAITING_CHARGEBACK_REVERSAL": "Aguardando Reversão de Chargeback",
    "DUNNING_REQUESTED": "Cobrança Solicitada",
    "DUNNING_RECEIVED": "Cobrança Recebida",
    "AWAITING_RISK_ANALYSIS": "Aguardando Análise de Risco",
}

BILLING_TYPE_LABELS = {
    "BOLETO": "Boleto Bancário",
    "CREDIT_CARD": "Cartão de Crédito",
    "PIX": "PIX",
    "UNDEFINED": "Não Definido",
}


def map_payment_status(status: Optional[str]) -> str:
    return PAYMENT_STATUS_MAP.get((status or "").upper(), "pending")


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def billing_type_label(billing_type: str) -> str:
    return BILLING_TYPE_LABELS.get(billing_type, billing_type)


def format_currency(value) -> str:
    formatted = f"{float(value or 0):,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def _cpf_is_valid(digits: str) -> bool:
    if len(set(digits)) == 1:
        return False
    for size in (9, 10):
        total = sum(int(digits[i]) * (size + 1 - i) for i in range(size))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(digits[size]):
            return False
    return True


def _cnpj_is_valid(digits: str) -> bool:
    if len(set(digits)) == 1:
        return False
    for size in (12, 13):
        total = 0
        weight = 2
        for i in range(size - 1, -1, -1):
            total += int(digits[i]) * weight
            weight = 2 if weight == 9 else weight + 1
        remainder = total % 11
        check = 0 if remainder < 2 else 11 - remainder
        if check != int(digits[size]):
            return False
    return True


def validate_cpf_cnpj(value: Optional[str]) -> bool:
    digits = re.sub(r"\D", "", value or "")
    if len(digits) == 11:
        return _cpf_is_valid(digits)
    if len(digits) == 14:
        return _cnpj_is_valid(digits)
    return False


def sign_webhook_body(body: bytes, token: str) -> str:
    return hmac.new(token.encode("utf-8"), body, hashlib.sha256).hexdigest()


class AsaasClient:
    def __init__(
        self,
        api_key: str,
        environment: str = "sandbox",
        timeout: float = 30,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        self.api_key = api_key
        self.base_url = PRODUCTION_URL if (environment or "").lower() == "production" else SANDBOX_URL
        self.timeout = timeout
        self.session = build_session(max_retries, backoff_factor)
        self.idempotent_session = build_session(max_retries, backoff_factor, retry_post=True)

    @classmethod
    def from_config(cls, config) -> "AsaasClient":
        return cls(
            api_key=config.get("ASAAS_API_KEY", ""),
            environment=config.get("ASAAS_ENVIRONMENT", "sandbox"),
            timeout=config.get("GATEWAY_TIMEOUT_SECONDS", 30),
            max_retries=config.get("GATEWAY_MAX_RETRIES", 3),
            backoff_factor=config.get("GATEWAY_BACKOFF_FACTOR", 0.5),
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamError("Asaas API key is not configured", status_code=500)

        headers = {
            "access_token": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        session = self.session
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
            session = self.idempotent_session

        url = f"{self.base_url}{endpoint}"
        try:
            response = session.request(method, url, headers=headers, json=json, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Asaas request failed: %s %s - %s", method, endpoint, e)
            raise UpstreamError("Payment gateway unavailable", status_code=500, payload={"provider": "asaas"})

        if response.status_code >= 400:
            raise self._error_from_response(method, endpoint, response)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.error("Asaas returned invalid JSON: %s %s", method, endpoint)
            raise UpstreamError("Invalid response from payment gateway", status_code=500)

    @staticmethod
    def _error_from_response(method: str, endpoint: str, response) -> UpstreamError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        errors = body.get("errors") if isinstance(body, dict) else None
        descriptions = [e.get("description") for e in errors or [] if isinstance(e, dict) and e.get("description")]
        message = "; ".join(descriptions) or f"Asaas error {response.status_code}"
        logger.error("Asaas request failed: %s %s - status=%s %s", method, endpoint, response.status_code, message)
        return UpstreamError(
            message,
            status_code=upstream_status(response.status_code),
            errors={"gateway": errors} if errors else None,
            payload={"provider": "asaas", "providerStatus": response.status_code},
        )

    # Customers

    def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/customers", json=data)

    def get_customer(self, customer_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/customers/{customer_id}")

    def update_customer(self, customer_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/customers/{customer_id}", json=data)

    def delete_customer(self, customer_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/customers/{customer_id}")

    def list_customers(self, **params) -> Dict[str, Any]:
        return self._request("GET", "/customers", params={k: v for k, v in params.items() if v is not None})

    def find_customer_by_reference(self, external_reference: str) -> Optional[Dict[str, Any]]:
        data = self.list_customers(externalReference=external_reference, limit=1).get("data") or []
        return data[0] if data else None

    # Payments

    def create_payment(self, data: Dict[str, Any], idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/payments", json=data, idempotency_key=idempotency_key)

    def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{payment_id}")

    def update_payment(self, payment_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/payments/{payment_id}", json=data)

    def delete_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/payments/{payment_id}")

    def list_payments(self, **params) -> Dict[str, Any]:
        return self._request("GET", "/payments", params={k: v for k, v in params.items() if v is not None})

    def pay_with_credit_card(
        self,
        payment_id: str,
        credit_card: Dict[str, Any],
        holder_info: Optional[Dict[str, Any]] = None,
        remote_ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"creditCard": credit_card}
        if holder_info:
            payload["creditCardHolderInfo"] = holder_info
        if remote_ip:
            payload["remoteIp"] = remote_ip
        return self._request("POST", f"/payments/{payment_id}/payWithCreditCard", json=payload)

    def get_pix_qr_code(self, payment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{payment_id}/pixQrCode")

    def get_identification_field(self, payment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{payment_id}/identificationField")

    def refund_payment(self, payment_id: str, value: Optional[float] = None, description: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if value:
            payload["value"] = value
        if description:
            payload["description"] = description
        return self._request("POST", f"/payments/{payment_id}/refund", json=payload)

    # Webhooks

    def list_webhooks(self) -> Dict[str, Any]:
        return self._request("GET", "/webhooks")

    def create_webhook(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/webhooks", json=data)

    def get_webhook(self, webhook_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/webhooks/{webhook_id}")

    def update_webhook(self, webhook_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/webhooks/{webhook_id}", json=data)

    def delete_webhook(self, webhook_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/webhooks/{webhook_id}")


def get_client() -> AsaasClient:
    return AsaasClient.from_config(current_app.config)
