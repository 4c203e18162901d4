
import pytest

from sqlalchemy.pool import StaticPool
from flask_jwt_extended import create_access_token

from prorentals import create_app
from prorentals.config import TestConfig as BaseTestConfig
from prorentals.extensions import db

# Importar modelos para que SQLAlchemy registre mappers/tablas
import prorentals.models  # noqa: F401
from prorentals.services import user_service


class PytestConfig(BaseTestConfig):
	SQLALCHEMY_DATABASE_URI = "sqlite://"
	SQLALCHEMY_ENGINE_OPTIONS = {
		"connect_args": {"check_same_thread": False},
		"poolclass": StaticPool,
	}
	JWT_SECRET_KEY = "test-secret"
	AUTO_BILLING_ENABLED = False
	ASAAS_API_KEY = ""
	ASAAS_WEBHOOK_TOKEN = "asaas-test-token"
	LALAMOVE_API_KEY = ""
	LALAMOVE_SECRET = ""
	LALAMOVE_WEBHOOK_SECRET = "lalamove-test-secret"
	APPROVER_EMAILS = ["gerencia@test.com"]


@pytest.fixture(scope="session")
def app(tmp_path_factory):
	base = tmp_path_factory.mktemp("prorentals")

	class _Config(PytestConfig):
		UPLOADS_DIR = str(base / "uploads")
		EMAIL_OUTBOX_DIR = str(base / "tmp")

	app = create_app(_Config)
	with app.app_context():
		db.create_all()
		yield app
		db.session.remove()
		db.drop_all()


@pytest.fixture()
def client(app):
	return app.test_client()


@pytest.fixture()
def db_session(app):
	with app.app_context():
		yield db.session
		db.session.rollback()


@pytest.fixture()
def make_user(db_session):
	def _make_user(email: str, roles: list[str] | None = None, name: str = "Test User", password: str = "Passw0rd!"):
		return user_service.create_user({"email": email, "name": name, "password": password, "roles": roles or ["agent"]})

	return _make_user


@pytest.fixture()
def make_token(app):
	def _make_token(user_id: int, roles: list[str] | None = None) -> str:
		roles = roles or []
		with app.app_context():
			return create_access_token(identity=str(user_id), additional_claims={"roles": roles})

	return _make_token


@pytest.fixture()
def auth_header(make_token):
	def _auth_header(user_id: int, roles: list[str] | None = None) -> dict:
		token = make_token(user_id, roles=roles)
		return {"Authorization": f"Bearer {token}"}

	return _auth_header


def _damage_item(
	name: str = "Furadeira Bosch",
	cost: float = 150.0,
	severity: str = "medium",
	category: str = "functional",
	reporter: str = "inspector-1",
) -> dict:
	return {
		"itemName": name,
		"description": "Mandril quebrado na devolução",
		"severity": severity,
		"category": category,
		"repairCost": cost,
		"photos": ["https://cdn.test/p1.jpg"],
		"reportedBy": reporter,
	}


@pytest.fixture()
def damage_item():
	return _damage_item


@pytest.fixture()
def make_report(client, auth_header):
	"""Creates a report through the API and returns its JSON representation."""

	def _make_report(rental_id: str, creator_id: int = 1, damages: list[dict] | None = None, **extra):
		body = {"rentalId": rental_id, "damages": damages if damages is not None else [_damage_item()]}
		body.update(extra)
		resp = client.post("/api/damage-reports", json=body, headers=auth_header(creator_id, ["agent"]))
		assert resp.status_code == 201, resp.get_json()
		return resp.get_json()["data"]

	return _make_report


@pytest.fixture()
def submitted_report(client, auth_header, make_report):
	def _submitted(rental_id: str, creator_id: int = 1, damages: list[dict] | None = None):
		report = make_report(rental_id, creator_id=creator_id, damages=damages)
		resp = client.post(f"/api/damage-reports/{report['id']}/submit", json={}, headers=auth_header(creator_id, ["agent"]))
		assert resp.status_code == 200, resp.get_json()
		return resp.get_json()["data"]

	return _submitted


@pytest.fixture()
def approved_report(client, auth_header, submitted_report):
	def _approved(rental_id: str, creator_id: int = 1, approver_id: int = 2, damages: list[dict] | None = None):
		report = submitted_report(rental_id, creator_id=creator_id, damages=damages)
		resp = client.post(
			f"/api/damage-reports/{report['id']}/approve",
			json={},
			headers=auth_header(approver_id, ["manager"]),
		)
		assert resp.status_code == 200, resp.get_json()
		return resp.get_json()["data"]["report"]

	return _approved
