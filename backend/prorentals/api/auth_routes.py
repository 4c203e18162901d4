from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from prorentals.schemas.auth_schemas import LoginSchema
from prorentals.services import auth_service, user_service
from prorentals.utils.errors import ApiError
from prorentals.utils.responses import success_response
from prorentals.utils.security import current_user_id

bp = Blueprint("auth", __name__)


@bp.get("/ping")
def ping():
    return success_response(message="auth ok")


@bp.post("/login")
def login():
    data = LoginSchema().load(request.get_json(silent=True) or {})
    result = auth_service.authenticate(data["email"], data["password"])
    return success_response(data=result, message="Login successful")


@bp.get("/me")
@jwt_required()
def me():
    user = user_service.get_user(current_user_id())
    if not user:
        raise ApiError("User not found", 404)

    return success_response(data=user_service.user_to_dict(user), message="Current user")
