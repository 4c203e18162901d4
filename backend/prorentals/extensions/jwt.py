from flask import jsonify
from flask_jwt_extended import JWTManager

jwt = JWTManager()


def _auth_error(message: str, reason: str | None = None):
    body = {"success": False, "message": message, "payload": {"code": "UNAUTHORIZED"}}
    if reason:
        body["errors"] = {"auth": reason}
    return jsonify(body), 401


@jwt.unauthorized_loader
def _missing_token(reason: str):
    return _auth_error("Missing authorization header", reason)


@jwt.invalid_token_loader
def _invalid_token(reason: str):
    return _auth_error("Invalid token", reason)


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return _auth_error("Token expired")
