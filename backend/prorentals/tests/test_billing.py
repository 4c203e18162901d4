import json
from types import SimpleNamespace

import pytest

from prorentals.models.damage_billing import DamageBilling
from prorentals.models.notification import Notification
from prorentals.services import asaas_client, billing_policy, billing_service, damage_report_service


def _report(total, adjustments=None, approved_flags=(None,), severities=("medium",)):
	items = [SimpleNamespace(approved=flag, severity=sev) for flag, sev in zip(approved_flags, severities)]
	return SimpleNamespace(total_cost=total, adjustments=adjustments or [], damages=items)


class FakeAsaas:
	def __init__(self, status="PENDING"):
		self.status = status
		self.payments = []
		self.idempotency_keys = []

	def create_payment(self, data, idempotency_key=None):
		self.payments.append(data)
		self.idempotency_keys.append(idempotency_key)
		return {"id": "pay_123", "status": "PENDING", "invoiceUrl": "https://sandbox.asaas.com/i/pay_123"}

	def get_pix_qr_code(self, payment_id):
		return {"payload": "00020126PIX", "encodedImage": "iVBOR"}

	def get_payment(self, payment_id):
		return {"id": payment_id, "status": self.status}

	def find_customer_by_reference(self, reference):
		return {"id": "cus_999"}


# Policy

def test_report_over_cap_is_not_eligible_for_auto_billing():
	assert billing_policy.is_eligible_for_auto_billing(_report(12000)) is False
	assert billing_policy.is_eligible_for_auto_billing(_report(10000)) is True


@pytest.mark.parametrize(
	"new_cost, eligible",
	[(550, True), (700, False)],
)
def test_adjustment_delta_limits_auto_billing(new_cost, eligible):
	report = _report(800, adjustments=[{"damageId": 1, "originalCost": 100, "newCost": new_cost}])
	assert billing_policy.is_eligible_for_auto_billing(report) is eligible


def test_partial_approval_is_not_eligible():
	report = _report(100, approved_flags=(True, False), severities=("low", "low"))
	assert billing_policy.is_eligible_for_auto_billing(report) is False


def test_customer_notification_threshold():
	assert billing_policy.should_notify_customer(_report(100)) is False
	assert billing_policy.should_notify_customer(_report(100.01)) is True


def test_approval_priority():
	assert billing_policy.approval_priority(_report(6000)) == "urgent"
	assert billing_policy.approval_priority(_report(50, severities=("critical",))) == "urgent"
	assert billing_policy.approval_priority(_report(1500)) == "high"
	assert billing_policy.approval_priority(_report(300)) == "normal"
	assert billing_policy.approval_priority(_report(50)) == "low"


def test_compute_amounts():
	amounts = billing_service.compute_amounts(150, 10, [{"name": "Frete", "amount": 20}])
	assert amounts == {"subtotal": 150.0, "discountAmount": 15.0, "feesTotal": 20.0, "finalAmount": 155.0}


# Manual billing

def test_bill_approved_report_manually(client, auth_header, approved_report):
	report = approved_report("RENT-BILL-MANUAL")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={
			"billingMethod": "manual",
			"dueDate": "2026-11-30",
			"discount": 10,
			"additionalFees": [{"name": "Frete", "amount": 20}],
		},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 201, resp.get_json()
	data = resp.get_json()["data"]
	assert data["billing"]["finalAmount"] == 155
	assert data["billing"]["reference"].startswith(f"DAM-{report['id']}-")
	assert data["report"]["status"] == "billed"
	assert data["report"]["billingReference"] == data["billing"]["reference"]
	assert data["report"]["version"] == report["version"] + 1

	customer_notices = Notification.query.filter_by(
		recipient="customer:RENT-BILL-MANUAL", type="DAMAGE_CHARGE_ISSUED"
	).count()
	assert customer_notices == 1

	resp = client.get(f"/api/damage-reports/{report['id']}/billing", headers=auth_header(3, ["financial"]))
	assert resp.status_code == 200
	assert resp.get_json()["data"]["status"] == "pending"

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-11-30"},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 400
	assert resp.get_json()["payload"]["code"] == "INVALID_STATE"


def test_only_approved_reports_can_be_billed(client, auth_header, submitted_report):
	report = submitted_report("RENT-BILL-SUBMITTED")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-11-30"},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 400


def test_billing_requires_finance_role(client, auth_header, approved_report):
	report = approved_report("RENT-BILL-ROLE")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-11-30"},
		headers=auth_header(3, ["agent"]),
	)
	assert resp.status_code == 403


def test_billing_rejects_zero_final_amount(client, auth_header, approved_report):
	report = approved_report("RENT-BILL-ZERO")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-11-30", "discount": 100},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 400
	assert "finalAmount" in resp.get_json()["errors"]


def test_asaas_billing_requires_customer(client, auth_header, approved_report):
	report = approved_report("RENT-BILL-NO-CUSTOMER")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "asaas", "dueDate": "2026-11-30"},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 400
	assert "customer" in resp.get_json()["errors"]


# Gateway billing

def test_asaas_billing_creates_pix_charge_with_idempotency_key(client, auth_header, approved_report, monkeypatch):
	fake = FakeAsaas()
	monkeypatch.setattr(asaas_client, "get_client", lambda: fake)
	report = approved_report("RENT-BILL-ASAAS")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "asaas", "dueDate": "2026-12-01", "customer": "cus_001"},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 201, resp.get_json()
	billing = resp.get_json()["data"]["billing"]
	assert billing["gatewayPaymentId"] == "pay_123"
	assert billing["pixPayload"] == "00020126PIX"
	assert billing["paymentUrl"] == "https://sandbox.asaas.com/i/pay_123"

	sent = fake.payments[0]
	assert sent["billingType"] == "PIX"
	assert sent["externalReference"] == billing["reference"]
	assert sent["fine"] == {"value": 2}
	assert fake.idempotency_keys == [billing["reference"]]

	# Status refresh on read
	fake.status = "RECEIVED"
	resp = client.get(f"/api/damage-reports/{report['id']}/billing", headers=auth_header(3, ["financial"]))
	assert resp.get_json()["data"]["status"] == "paid"


def test_installments_use_credit_card(client, auth_header, approved_report, monkeypatch):
	fake = FakeAsaas()
	monkeypatch.setattr(asaas_client, "get_client", lambda: fake)
	report = approved_report("RENT-BILL-INSTALLMENTS")

	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "asaas", "dueDate": "2026-12-01", "customer": "cus_001", "installments": 3},
		headers=auth_header(3, ["financial"]),
	)
	assert resp.status_code == 201
	assert fake.payments[0]["billingType"] == "CREDIT_CARD"
	assert fake.payments[0]["installmentCount"] == 3
	assert fake.payments[0]["installmentValue"] == 50


def _post_asaas_event(client, payload: dict, token: str | None = "asaas-test-token"):
	body = json.dumps(payload).encode("utf-8")
	headers = {"asaas-access-token": asaas_client.sign_webhook_body(body, token)} if token else {}
	return client.post("/api/asaas/webhooks", data=body, content_type="application/json", headers=headers)


def test_asaas_webhook_updates_billing_status(client, auth_header, approved_report, monkeypatch):
	fake = FakeAsaas()
	monkeypatch.setattr(asaas_client, "get_client", lambda: fake)
	report = approved_report("RENT-BILL-WEBHOOK")
	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "asaas", "dueDate": "2026-12-01", "customer": "cus_001"},
		headers=auth_header(3, ["financial"]),
	)
	reference = resp.get_json()["data"]["billing"]["reference"]

	resp = _post_asaas_event(
		client,
		{"event": "PAYMENT_OVERDUE", "payment": {"id": "pay_123", "status": "OVERDUE", "externalReference": reference}},
	)
	assert resp.status_code == 200
	assert resp.get_json() == {"received": True}
	assert billing_service.find_by_reference(reference).status == "overdue"

	# An event for some other payment id does not touch the billing.
	resp = _post_asaas_event(
		client,
		{"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_other", "status": "RECEIVED", "externalReference": reference}},
	)
	assert resp.status_code == 200
	billing = billing_service.find_by_reference(reference)
	assert billing.status == "overdue"
	assert billing.gateway_payment_id == "pay_123"


def test_asaas_webhook_ignores_manual_billings(client, auth_header, approved_report):
	report = approved_report("RENT-BILL-WEBHOOK-MANUAL")
	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-12-01"},
		headers=auth_header(3, ["financial"]),
	)
	reference = resp.get_json()["data"]["billing"]["reference"]

	resp = _post_asaas_event(
		client,
		{"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_forged", "status": "RECEIVED", "externalReference": reference}},
	)
	assert resp.status_code == 200
	billing = billing_service.find_by_reference(reference)
	assert billing.status == "pending"
	assert billing.gateway_payment_id is None


def test_asaas_webhook_rejects_unsigned_events(client, auth_header, approved_report, app, monkeypatch):
	report = approved_report("RENT-BILL-WEBHOOK-UNSIGNED")
	resp = client.post(
		f"/api/damage-reports/{report['id']}/billing",
		json={"billingMethod": "manual", "dueDate": "2026-12-01"},
		headers=auth_header(3, ["financial"]),
	)
	reference = resp.get_json()["data"]["billing"]["reference"]
	event = {"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_x", "status": "RECEIVED", "externalReference": reference}}

	resp = _post_asaas_event(client, event, token=None)
	assert resp.status_code == 401

	resp = client.post(
		"/api/asaas/webhooks",
		data=b'{"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_x"}}',
		content_type="application/json",
		headers={"asaas-access-token": "errado"},
	)
	assert resp.status_code == 401

	# Without a configured token every event is refused.
	monkeypatch.setitem(app.config, "ASAAS_WEBHOOK_TOKEN", "")
	resp = _post_asaas_event(client, event, token="asaas-test-token")
	assert resp.status_code == 401
	assert resp.get_json()["payload"]["code"] == "INVALID_SIGNATURE"

	assert billing_service.find_by_reference(reference).status == "pending"


# Auto-billing

def test_eligible_approval_is_billed_automatically(client, auth_header, app, approved_report, monkeypatch):
	monkeypatch.setitem(app.config, "AUTO_BILLING_ENABLED", True)
	monkeypatch.setitem(app.config, "AUTO_BILLING_METHOD", "manual")

	report = approved_report("RENT-AUTO-BILL")
	# The approval response shows the report as it was approved.
	assert report["status"] == "approved"
	assert report["billedAt"] is None

	stored = damage_report_service.get_report(report["id"])
	assert stored.status == "billed"
	assert stored.billed_by == billing_service.SYSTEM_ACTOR
	billing = DamageBilling.query.filter_by(report_id=report["id"]).one()
	assert billing.billing_method == "manual"


def test_ineligible_approval_waits_for_manual_billing(client, auth_header, app, approved_report, damage_item, monkeypatch):
	monkeypatch.setitem(app.config, "AUTO_BILLING_ENABLED", True)

	report = approved_report("RENT-AUTO-BILL-CAP", damages=[damage_item(cost=12000)])

	assert damage_report_service.get_report(report["id"]).status == "approved"
	assert DamageBilling.query.filter_by(report_id=report["id"]).count() == 0
