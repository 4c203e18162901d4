import io
import os

from prorentals.models.damage_photo import DamagePhoto
from prorentals.services import photo_service


def _damage_body(**overrides) -> dict:
	body = {
		"rentalId": "RENT-DMG",
		"itemName": "Andaime tubular",
		"description": "Travessa entortada na lateral",
		"severity": "medium",
		"category": "structural",
		"repairCost": 220.5,
	}
	body.update(overrides)
	return body


def _jpeg(name: str = "foto.jpg", size: int = 128):
	return (io.BytesIO(b"\xff\xd8" + b"0" * size), name, "image/jpeg")


def _create(client, auth_header, **overrides) -> dict:
	resp = client.post("/api/damages", json=_damage_body(**overrides), headers=auth_header(10, ["agent"]))
	assert resp.status_code == 201, resp.get_json()
	return resp.get_json()["data"]


def test_create_damage_starts_pending(client, auth_header):
	data = _create(client, auth_header, rentalId="RENT-DMG-1")
	assert data["status"] == "pending"
	assert data["reportedBy"] == "10"
	assert data["repairCost"] == 220.5


def test_critical_damage_needs_photo(client, auth_header):
	resp = client.post("/api/damages", json=_damage_body(severity="critical"), headers=auth_header(10))
	assert resp.status_code == 400
	assert "photos" in resp.get_json()["errors"]

	data = _create(client, auth_header, severity="critical", photos=["https://cdn.test/x.jpg"])
	assert data["severity"] == "critical"


def test_detail_aggregates_rental_costs(client, auth_header):
	a = _create(client, auth_header, rentalId="RENT-DMG-AGG", repairCost=100)
	_create(client, auth_header, rentalId="RENT-DMG-AGG", repairCost=50)

	resp = client.get(f"/api/damages/{a['id']}", headers=auth_header(10))
	assert resp.status_code == 200
	data = resp.get_json()["data"]
	assert data["damageCountForRental"] == 2
	assert data["totalCostForRental"] == 150
	assert len(data["relatedDamages"]) == 1


def test_list_damages_filters(client, auth_header):
	_create(client, auth_header, rentalId="RENT-DMG-LIST", severity="high")
	_create(client, auth_header, rentalId="RENT-DMG-LIST", severity="low")

	resp = client.get("/api/damages?rentalId=RENT-DMG-LIST&severity=high", headers=auth_header(10))
	assert resp.status_code == 200
	data = resp.get_json()["data"]
	assert data["pagination"]["total"] == 1
	assert data["stats"]["bySeverity"] == {"high": 1}


def test_status_transitions_follow_damage_lifecycle(client, auth_header):
	damage = _create(client, auth_header, rentalId="RENT-DMG-FSM")
	url = f"/api/damages/{damage['id']}"

	resp = client.patch(url, json={"status": "repaired"}, headers=auth_header(10, ["manager"]))
	assert resp.status_code == 400

	resp = client.patch(url, json={"status": "approved"}, headers=auth_header(10, ["manager"]))
	assert resp.status_code == 200
	assert resp.get_json()["data"]["status"] == "approved"


def test_approved_damage_only_allows_notes_for_regular_roles(client, auth_header):
	damage = _create(client, auth_header, rentalId="RENT-DMG-APPROVED")
	url = f"/api/damages/{damage['id']}"
	client.patch(url, json={"status": "approved"}, headers=auth_header(10, ["manager"]))

	resp = client.patch(url, json={"repairCost": 999}, headers=auth_header(10, ["agent"]))
	assert resp.status_code == 403

	resp = client.patch(url, json={"notes": "peça encomendada"}, headers=auth_header(10, ["agent"]))
	assert resp.status_code == 200

	resp = client.put(url, json={"repairCost": 300}, headers=auth_header(10, ["admin"]))
	assert resp.status_code == 200
	assert resp.get_json()["data"]["repairCost"] == 300

	resp = client.delete(url, headers=auth_header(10, ["admin"]))
	assert resp.status_code == 400


def test_repaired_damage_is_frozen(client, auth_header):
	damage = _create(client, auth_header, rentalId="RENT-DMG-REPAIRED")
	url = f"/api/damages/{damage['id']}"
	client.patch(url, json={"status": "approved"}, headers=auth_header(10, ["manager"]))
	client.patch(url, json={"status": "repaired"}, headers=auth_header(10, ["manager"]))

	resp = client.patch(url, json={"notes": "x"}, headers=auth_header(10, ["admin"]))
	assert resp.status_code == 400


def test_upload_photos_to_damage_and_delete_damage_removes_files(client, auth_header):
	damage = _create(client, auth_header, rentalId="RENT-DMG-PHOTO")

	resp = client.post(
		"/api/damages/upload-photos",
		data={"damageId": str(damage["id"]), "photos": [_jpeg("frente.jpg"), _jpeg("lado.jpg")]},
		headers=auth_header(10),
		content_type="multipart/form-data",
	)
	assert resp.status_code == 200
	data = resp.get_json()["data"]
	assert data["totalUploaded"] == 2
	for url in data["urls"]:
		assert "/uploads/damages/RENT-DMG-PHOTO/" in url

	stored = [p.stored_path for p in DamagePhoto.query.filter_by(damage_id=damage["id"]).all()]
	assert len(stored) == 2
	assert all(os.path.isfile(p) for p in stored)

	detail = client.get(f"/api/damages/{damage['id']}", headers=auth_header(10)).get_json()["data"]
	assert detail["photos"] == data["urls"]

	resp = client.get(f"/api/damages/upload-photos?damageId={damage['id']}", headers=auth_header(10))
	assert resp.get_json()["data"]["total"] == 2

	resp = client.delete(f"/api/damages/{damage['id']}", headers=auth_header(10))
	assert resp.status_code == 200
	assert not any(os.path.isfile(p) for p in stored)
	assert DamagePhoto.query.filter(DamagePhoto.stored_path.in_(stored)).count() == 0


def test_upload_rejects_invalid_batch(client, auth_header):
	resp = client.post(
		"/api/damages/upload-photos",
		data={"photos": [(io.BytesIO(b"GIF89a"), "anim.gif", "image/gif"), _jpeg()]},
		headers=auth_header(10),
		content_type="multipart/form-data",
	)
	assert resp.status_code == 400
	problems = resp.get_json()["errors"]["files"]
	assert [p["file"] for p in problems] == ["anim.gif"]

	resp = client.post(
		"/api/damages/upload-photos",
		data={"photos": [_jpeg(f"f{i}.jpg") for i in range(6)]},
		headers=auth_header(10),
		content_type="multipart/form-data",
	)
	assert resp.status_code == 400


def test_upload_reports_partial_failure_as_multi_status(client, auth_header, monkeypatch):
	real_write = photo_service._write_file

	def flaky_write(storage, path):
		if storage.filename == "ruim.jpg":
			raise OSError("disk full")
		real_write(storage, path)

	monkeypatch.setattr(photo_service, "_write_file", flaky_write)

	resp = client.post(
		"/api/damages/upload-photos",
		data={"rentalId": "RENT-DMG-207", "photos": [_jpeg("boa.jpg"), _jpeg("ruim.jpg")]},
		headers=auth_header(10),
		content_type="multipart/form-data",
	)
	assert resp.status_code == 207
	data = resp.get_json()["data"]
	assert data["totalUploaded"] == 1
	assert data["failed"][0]["file"] == "ruim.jpg"


def test_delete_photo_requires_url_and_damage(client, auth_header):
	resp = client.delete("/api/damages/upload-photos", json={}, headers=auth_header(10))
	assert resp.status_code == 400

	resp = client.delete(
		"/api/damages/upload-photos",
		json={"photoUrl": "http://localhost/uploads/damages/x/nada.jpg", "damageId": 1},
		headers=auth_header(10),
	)
	assert resp.status_code == 404


def test_delete_photo_checks_owning_damage(client, auth_header):
	owner = _create(client, auth_header, rentalId="RENT-DMG-OWNER")
	other = _create(client, auth_header, rentalId="RENT-DMG-OTHER")

	resp = client.post(
		"/api/damages/upload-photos",
		data={"damageId": str(owner["id"]), "photos": [_jpeg("frente.jpg")]},
		headers=auth_header(10),
		content_type="multipart/form-data",
	)
	url = resp.get_json()["data"]["urls"][0]
	stored = DamagePhoto.query.filter_by(url=url).one().stored_path

	resp = client.delete(
		"/api/damages/upload-photos",
		json={"photoUrl": url, "damageId": other["id"]},
		headers=auth_header(10),
	)
	assert resp.status_code == 404
	assert os.path.isfile(stored)
	detail = client.get(f"/api/damages/{owner['id']}", headers=auth_header(10)).get_json()["data"]
	assert detail["photos"] == [url]

	resp = client.delete(
		"/api/damages/upload-photos",
		json={"photoUrl": url, "damageId": owner["id"]},
		headers=auth_header(10),
	)
	assert resp.status_code == 200
	assert not os.path.isfile(stored)
	detail = client.get(f"/api/damages/{owner['id']}", headers=auth_header(10)).get_json()["data"]
	assert detail["photos"] == []
