from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from prorentals.schemas.damage_schemas import DamageCreateSchema, DamageListQuerySchema, DamageUpdateSchema
from prorentals.services import damage_service, photo_service
from prorentals.utils.errors import ApiError
from prorentals.utils.responses import success_response
from prorentals.utils.security import current_actor, current_roles

bp = Blueprint("damages", __name__)


def _optional_int(value, field: str):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ApiError("Invalid data", 400, errors={field: ["Not a valid integer."]}, payload={"code": "VALIDATION_ERROR"})


@bp.get("")
@jwt_required()
def list_damages():
    filters = DamageListQuerySchema().load(request.args.to_dict())
    return success_response(data=damage_service.list_damages(filters))


@bp.post("")
@jwt_required()
def create_damage():
    data = DamageCreateSchema().load(request.get_json(silent=True) or {})
    damage = damage_service.create_damage(data, current_actor())
    return success_response(data=damage_service.damage_to_dict(damage), message="Damage registered", status_code=201)


@bp.post("/upload-photos")
@jwt_required()
def upload_photos():
    files = request.files.getlist("photos")
    files += [f for key in request.files if key.startswith("photo_") for f in request.files.getlist(key)]
    files = [f for f in files if f and f.filename]

    result, status = photo_service.save_photos(
        files,
        base_url=request.host_url,
        rental_id=(request.form.get("rentalId") or None),
        damage_id=_optional_int(request.form.get("damageId"), "damageId"),
        uploaded_by=current_actor(),
    )
    if status == 500:
        raise ApiError("No photo could be saved", 500, errors={"files": result["failed"]}, payload={"code": "INTERNAL_ERROR"})
    message = "Photos uploaded" if status == 200 else "Some photos could not be saved"
    return success_response(data=result, message=message, status_code=status)


@bp.get("/upload-photos")
@jwt_required()
def list_photos():
    photos = photo_service.list_photos(
        damage_id=_optional_int(request.args.get("damageId"), "damageId"),
        rental_id=request.args.get("rentalId") or None,
    )
    return success_response(data={"photos": photos, "total": len(photos)})


@bp.delete("/upload-photos")
@jwt_required()
def delete_photo():
    body = request.get_json(silent=True) or {}
    photo_url = body.get("photoUrl") or request.args.get("photoUrl")
    damage_id = _optional_int(body.get("damageId") or request.args.get("damageId"), "damageId")
    photo_service.delete_photo(photo_url, damage_id)
    return success_response(data={"deleted": True, "photoUrl": photo_url}, message="Photo removed")


@bp.get("/<int:damage_id>")
@jwt_required()
def get_damage(damage_id: int):
    return success_response(data=damage_service.get_damage_detail(damage_id))


@bp.patch("/<int:damage_id>")
@bp.put("/<int:damage_id>")
@jwt_required()
def update_damage(damage_id: int):
    changes = DamageUpdateSchema().load(request.get_json(silent=True) or {})
    damage = damage_service.update_damage(damage_id, changes, current_actor(), current_roles())
    return success_response(data=damage_service.damage_to_dict(damage), message="Damage updated")


@bp.delete("/<int:damage_id>")
@jwt_required()
def delete_damage(damage_id: int):
    damage_service.delete_damage(damage_id, current_actor())
    return success_response(data={"deleted": True, "id": damage_id}, message="Damage removed")
