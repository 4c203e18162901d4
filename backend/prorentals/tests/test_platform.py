from prorentals.extensions import db
from prorentals.models.domain_event import DomainEvent
from prorentals.models.user import User
from prorentals.services import event_service


def test_health(client):
	resp = client.get("/api/health")
	assert resp.status_code == 200
	assert resp.get_json()["status"] == "ok"


# Auth

def test_login_returns_tokens_with_roles(client, make_user):
	make_user("gerente@test.com", roles=["manager"], password="Passw0rd!")

	resp = client.post("/api/auth/login", json={"email": "Gerente@test.com", "password": "Passw0rd!"})
	assert resp.status_code == 200
	data = resp.get_json()["data"]
	assert data["access_token"]
	assert data["user"]["roles"] == ["manager"]

	me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
	assert me.status_code == 200
	assert me.get_json()["data"]["email"] == "gerente@test.com"
	assert me.get_json()["data"]["lastLoginAt"] is not None


def test_login_wrong_password(client, make_user):
	make_user("errado@test.com")

	resp = client.post("/api/auth/login", json={"email": "errado@test.com", "password": "nope-nope"})
	assert resp.status_code == 401

	resp = client.post("/api/auth/login", json={"email": "not-an-email"})
	assert resp.status_code == 400


def test_me_with_token_for_deleted_user(client, auth_header):
	resp = client.get("/api/auth/me", headers=auth_header(424242))
	assert resp.status_code == 404


# Outbox

def test_failing_subscriber_does_not_fail_transition(client, auth_header, app, monkeypatch):
	calls = []

	def broken(event):
		calls.append(event.id)
		raise RuntimeError("smtp down")

	monkeypatch.setitem(event_service._subscribers, "damage_report.created", [broken])

	resp = client.post(
		"/api/damage-reports",
		json={"rentalId": "RENT-OUTBOX", "damages": []},
		headers=auth_header(1),
	)
	assert resp.status_code == 201
	report_id = resp.get_json()["data"]["id"]

	event = DomainEvent.query.filter_by(event_type="damage_report.created", aggregate_id=str(report_id)).one()
	assert calls == [event.id]
	assert event.status == "pending"
	assert event.attempts == 1
	assert "smtp down" in event.last_error


def test_event_marked_failed_after_max_attempts(app, monkeypatch):
	monkeypatch.setitem(app.config, "EVENT_MAX_ATTEMPTS", 2)

	def broken(event):
		raise RuntimeError("still down")

	monkeypatch.setitem(event_service._subscribers, "test.always_fails", [broken])
	event = event_service.publish("test.always_fails", "test", 1, {"n": 1})
	db.session.commit()
	event_id = event.id

	first = event_service.dispatch_pending(limit=1000)
	assert first["retrying"] >= 1
	second = event_service.dispatch_pending(limit=1000)
	assert second["failed"] >= 1

	stored = db.session.get(DomainEvent, event_id)
	assert stored.status == "failed"
	assert stored.attempts == 2

	# Failed events are not picked up again.
	event_service.dispatch_pending(limit=1000)
	assert db.session.get(DomainEvent, event_id).attempts == 2


def test_subscribers_receive_each_event(app, monkeypatch):
	seen = []
	monkeypatch.setitem(event_service._subscribers, "test.delivered", [lambda e: seen.append(e.payload["n"])])

	event_service.publish("test.delivered", "test", 1, {"n": 1})
	event_service.publish("test.delivered", "test", 2, {"n": 2})
	db.session.commit()

	result = event_service.dispatch_pending(limit=1000)
	assert result["delivered"] >= 2
	assert seen == [1, 2]


# Notifications

def test_notifications_follow_report_workflow(client, auth_header, submitted_report):
	report = submitted_report("RENT-NOTIFY", creator_id=55)

	resp = client.get("/api/notifications", headers=auth_header(56, ["manager"]))
	assert resp.status_code == 200
	items = resp.get_json()["data"]["items"]
	mine = [n for n in items if n["meta"] and n["meta"].get("reportId") == report["id"]]
	assert [n["type"] for n in mine] == ["DAMAGE_REPORT_SUBMITTED"]
	assert mine[0]["meta"]["link"] == f"/damage-reports/{report['id']}"

	client.post(
		f"/api/damage-reports/{report['id']}/approve",
		json={},
		headers=auth_header(56, ["manager"]),
	)

	resp = client.get("/api/notifications", headers=auth_header(55))
	data = resp.get_json()["data"]
	approved = [n for n in data["items"] if n["type"] == "DAMAGE_REPORT_APPROVED"]
	assert len(approved) == 1
	unread_before = data["unreadCount"]

	resp = client.post(f"/api/notifications/{approved[0]['id']}/read", headers=auth_header(55))
	assert resp.status_code == 200
	assert client.get("/api/notifications", headers=auth_header(55)).get_json()["data"]["unreadCount"] == unread_before - 1

	resp = client.post(f"/api/notifications/{approved[0]['id']}/read", headers=auth_header(99))
	assert resp.status_code == 404


# CLI

def test_cli_users_and_events(app):
	runner = app.test_cli_runner()

	result = runner.invoke(args=["users", "seed-roles"])
	assert result.exit_code == 0

	result = runner.invoke(
		args=["users", "create", "--email", "cli@test.com", "--name", "Financeiro", "--password", "Passw0rd!", "--role", "financial"]
	)
	assert result.exit_code == 0, result.output
	assert "financial" in result.output
	assert User.query.filter_by(email="cli@test.com").one().role_names() == ["financial"]

	result = runner.invoke(
		args=["users", "create", "--email", "cli@test.com", "--name", "Outro", "--password", "Passw0rd!"]
	)
	assert result.exit_code != 0

	result = runner.invoke(args=["events", "dispatch", "--limit", "50"])
	assert result.exit_code == 0
	assert "delivered=" in result.output
