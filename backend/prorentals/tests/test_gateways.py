import hashlib
import hmac
import json

import pytest
import requests

from prorentals.models.notification import Notification
from prorentals.services import asaas_client, delivery_service, lalamove_client
from prorentals.services.asaas_client import AsaasClient
from prorentals.services.lalamove_client import LalamoveClient
from prorentals.utils.errors import UpstreamError

WEBHOOK_SECRET = "lalamove-test-secret"


class FakeResponse:
	def __init__(self, status_code=200, payload=None):
		self.status_code = status_code
		self._payload = payload
		self.content = json.dumps(payload).encode("utf-8") if payload is not None else b""
		self.text = self.content.decode("utf-8")

	def json(self):
		if self._payload is None:
			raise ValueError("no json")
		return self._payload


class FakeLalamove:
	def __init__(self):
		self.orders = []
		self.cancelled = []
		self.order_status = "ON_GOING"

	def get_quotation(self, stops, service_type="MOTORCYCLE"):
		self.stops = stops
		return {
			"quotationId": "Q-1",
			"stops": [{"stopId": "S-1"}, {"stopId": "S-2"}],
			"priceBreakdown": {"total": "32.50", "currency": "BRL"},
		}

	def create_order(self, order):
		self.orders.append(order)
		return {"orderId": f"ORD-{len(self.orders)}-{order['metadata']['rentalId']}", "status": "ASSIGNING"}

	def get_order(self, order_id):
		return {"orderId": order_id, "status": self.order_status}

	def cancel_order(self, order_id):
		self.cancelled.append(order_id)
		return {}


def _sign(body: bytes) -> str:
	return hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _delivery_body(rental_id: str) -> dict:
	return {
		"rentalId": rental_id,
		"customer": {"address": "Rua Augusta 100, São Paulo", "lat": -23.55, "lng": -46.65, "name": "Cliente", "phone": "11999990000"},
		"store": {"address": "Av. Paulista 1000, São Paulo", "lat": -23.56, "lng": -46.66},
	}


@pytest.fixture()
def fake_lalamove(monkeypatch):
	fake = FakeLalamove()
	monkeypatch.setattr(lalamove_client, "get_client", lambda: fake)
	return fake


# Status vocabulary

@pytest.mark.parametrize(
	"provider, expected",
	[
		("ASSIGNING", ("aguardando_motorista", None)),
		("ON_GOING", ("indo_cliente", "on_the_way")),
		("PICKED_UP", ("em_transporte", "picked_up")),
		("completed", ("entregue", None)),
		("CANCELLED", ("cancelado", None)),
		("EXPIRED", ("expirado", None)),
		("SOMETHING_NEW", ("desconhecido", None)),
	],
)
def test_lalamove_status_mapping(provider, expected):
	assert delivery_service.map_order_status(provider) == expected


def test_asaas_status_mapping():
	assert asaas_client.map_payment_status("RECEIVED") == "paid"
	assert asaas_client.map_payment_status("CONFIRMED") == "paid"
	assert asaas_client.map_payment_status("OVERDUE") == "overdue"
	assert asaas_client.map_payment_status("REFUNDED") == "refunded"


# Deliveries

def test_request_delivery_and_pickup(client, auth_header, fake_lalamove):
	resp = client.post("/api/deliveries/delivery", json=_delivery_body("RENT-DLV-1"), headers=auth_header(4))
	assert resp.status_code == 201, resp.get_json()
	data = resp.get_json()["data"]
	assert data["kind"] == "delivery"
	assert data["status"] == "aguardando_motorista"
	assert data["priceTotal"] == 32.5
	assert data["trackingUrl"].endswith(data["orderId"])

	order = fake_lalamove.orders[0]
	assert order["quotationId"] == "Q-1"
	assert order["recipients"][0]["stopId"] == "S-2"
	assert "RENT-DLV-1" in order["recipients"][0]["remarks"]
	# Store first for deliveries
	assert fake_lalamove.stops[0]["address"].startswith("Av. Paulista")

	resp = client.post("/api/deliveries/pickup", json=_delivery_body("RENT-DLV-1"), headers=auth_header(4))
	assert resp.status_code == 201
	assert fake_lalamove.stops[0]["address"].startswith("Rua Augusta")

	resp = client.get("/api/deliveries?rentalId=RENT-DLV-1", headers=auth_header(4))
	assert len(resp.get_json()["data"]) == 2


def test_delivery_needs_store_location(client, auth_header, fake_lalamove):
	body = _delivery_body("RENT-DLV-NOSTORE")
	body.pop("store")

	resp = client.post("/api/deliveries/delivery", json=body, headers=auth_header(4))
	assert resp.status_code == 400
	assert "store" in resp.get_json()["errors"]


def test_get_delivery_refreshes_and_cancel(client, auth_header, fake_lalamove):
	resp = client.post("/api/deliveries/delivery", json=_delivery_body("RENT-DLV-2"), headers=auth_header(4))
	delivery_id = resp.get_json()["data"]["id"]

	resp = client.get(f"/api/deliveries/{delivery_id}", headers=auth_header(4))
	assert resp.get_json()["data"]["status"] == "indo_cliente"

	resp = client.delete(f"/api/deliveries/{delivery_id}", headers=auth_header(4))
	assert resp.status_code == 200
	assert resp.get_json()["data"]["status"] == "cancelado"
	assert len(fake_lalamove.cancelled) == 1

	resp = client.delete(f"/api/deliveries/{delivery_id}", headers=auth_header(4))
	assert resp.status_code == 400


# Lalamove webhook

def test_lalamove_webhook_health(client):
	resp = client.get("/api/webhooks/lalamove")
	assert resp.status_code == 200


def test_lalamove_webhook_rejects_bad_signature(client):
	body = json.dumps({"eventType": "ORDER_STATUS_CHANGED", "orderId": "X"}).encode("utf-8")

	resp = client.post("/api/webhooks/lalamove", data=body, content_type="application/json")
	assert resp.status_code == 401

	resp = client.post(
		"/api/webhooks/lalamove",
		data=body,
		content_type="application/json",
		headers={"x-lalamove-signature": "deadbeef"},
	)
	assert resp.status_code == 401


def test_lalamove_webhook_updates_delivery_and_notifies_once(client, auth_header, fake_lalamove):
	resp = client.post("/api/deliveries/delivery", json=_delivery_body("RENT-DLV-HOOK"), headers=auth_header(4))
	order_id = resp.get_json()["data"]["orderId"]
	delivery_id = resp.get_json()["data"]["id"]

	driver_body = json.dumps(
		{"eventType": "DRIVER_ASSIGNED", "data": {"order": {"orderId": order_id}, "driver": {"name": "João", "plate": "ABC1D23"}}}
	).encode("utf-8")
	resp = client.post(
		"/api/webhooks/lalamove", data=driver_body, content_type="application/json", headers={"x-lalamove-signature": _sign(driver_body)}
	)
	assert resp.status_code == 200
	assert resp.get_json() == {"success": True}

	done_body = json.dumps({"eventType": "ORDER_STATUS_CHANGED", "orderId": order_id, "status": "COMPLETED"}).encode("utf-8")
	for _ in range(2):
		resp = client.post(
			"/api/webhooks/lalamove", data=done_body, content_type="application/json", headers={"x-lalamove-signature": _sign(done_body)}
		)
		assert resp.status_code == 200

	delivery = delivery_service.find_by_order_id(order_id)
	assert delivery.id == delivery_id
	assert delivery.status == "entregue"
	assert delivery.driver["plate"] == "ABC1D23"
	assert Notification.query.filter_by(recipient="customer:RENT-DLV-HOOK", type="DELIVERY_COMPLETED").count() == 1


def test_lalamove_webhook_invalid_payload(client):
	body = b"[1, 2, 3]"
	resp = client.post("/api/webhooks/lalamove", data=body, content_type="application/json", headers={"x-lalamove-signature": _sign(body)})
	assert resp.status_code == 400


# Client error handling

@pytest.mark.parametrize(
	"provider_status, expected",
	[(400, 400), (401, 401), (403, 401), (404, 404), (409, 409), (410, 410), (422, 500), (503, 500)],
)
def test_asaas_client_maps_provider_errors(monkeypatch, provider_status, expected):
	client = AsaasClient("key", max_retries=0)
	response = FakeResponse(provider_status, {"errors": [{"code": "invalid", "description": "CPF inválido"}]})
	monkeypatch.setattr(client.session, "request", lambda *args, **kwargs: response)

	with pytest.raises(UpstreamError) as exc:
		client.get_customer("cus_1")
	assert exc.value.status_code == expected
	assert exc.value.message == "CPF inválido"


def test_asaas_client_network_failure(monkeypatch):
	client = AsaasClient("key", max_retries=0)

	def boom(*args, **kwargs):
		raise requests.ConnectionError("down")

	monkeypatch.setattr(client.session, "request", boom)
	with pytest.raises(UpstreamError) as exc:
		client.list_payments()
	assert exc.value.status_code == 500


def test_asaas_client_without_key():
	with pytest.raises(UpstreamError):
		AsaasClient("").get_payment("pay_1")


def test_asaas_payment_creation_uses_idempotent_session(monkeypatch):
	client = AsaasClient("key", max_retries=0)
	calls = []

	def record(method, url, headers=None, **kwargs):
		calls.append((method, url, headers))
		return FakeResponse(200, {"id": "pay_1", "status": "PENDING"})

	monkeypatch.setattr(client.idempotent_session, "request", record)
	assert client.create_payment({"value": 10}, idempotency_key="DAM-1-1")["id"] == "pay_1"
	method, url, headers = calls[0]
	assert method == "POST"
	assert url.endswith("/payments")
	assert headers["Idempotency-Key"] == "DAM-1-1"
	assert headers["access_token"] == "key"


def test_lalamove_client_signs_and_unwraps(monkeypatch):
	client = LalamoveClient("api-key", "secret", max_retries=0)
	captured = {}

	def record(method, url, headers=None, data=None, timeout=None):
		captured.update(method=method, url=url, headers=headers, data=data)
		return FakeResponse(200, {"data": {"quotationId": "Q-9"}})

	monkeypatch.setattr(client.session, "request", record)
	assert client.get_quotation([{"address": "x"}]) == {"quotationId": "Q-9"}

	scheme, credentials = captured["headers"]["Authorization"].split(" ")
	key, timestamp, signature = credentials.split(":")
	assert scheme == "hmac"
	assert key == "api-key"
	body = captured["data"].decode("utf-8")
	assert json.loads(body)["data"]["language"] == "pt_BR"
	assert signature == lalamove_client.sign_request("secret", timestamp, "POST", "/v3/quotations", body)
	assert captured["headers"]["Market"] == "BR"


def test_asaas_cpf_cnpj_validation():
	assert asaas_client.validate_cpf_cnpj("529.982.247-25") is True
	assert asaas_client.validate_cpf_cnpj("111.111.111-11") is False
	assert asaas_client.validate_cpf_cnpj("11.222.333/0001-81") is True
	assert asaas_client.validate_cpf_cnpj("123") is False
