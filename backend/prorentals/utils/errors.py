from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError as SchemaValidationError


class ApiError(Exception):
    """
    Base business error. Subclasses fix the HTTP status and the
    machine-readable ``payload.code`` the dashboard switches on.
    """
    status_code = 400
    code = None

    def __init__(self, message, status_code=None, errors=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or {}
        self.payload = dict(payload or {})
        if self.code and "code" not in self.payload:
            self.payload["code"] = self.code


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(ApiError):
    status_code = 400
    code = "INVALID_STATE"


class AuthorizationError(ApiError):
    status_code = 403
    code = "FORBIDDEN"


class SelfApprovalError(AuthorizationError):
    status_code = 400
    code = "SELF_APPROVAL"


class ConflictError(ApiError):
    status_code = 409
    code = "CONFLICT"


class StaleVersionError(ConflictError):
    code = "STALE_VERSION"


class UpstreamError(ApiError):
    status_code = 500
    code = "UPSTREAM_ERROR"


class InternalError(ApiError):
    status_code = 500
    code = "INTERNAL_ERROR"


def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        response = {
            "success": False,
            "message": err.message,
        }
        if err.errors:
            response["errors"] = err.errors
        if getattr(err, "payload", None):
            response["payload"] = err.payload

        return jsonify(response), err.status_code

    @app.errorhandler(SchemaValidationError)
    def handle_marshmallow_validation(err: SchemaValidationError):
        response = {
            "success": False,
            "message": "Invalid data",
            "errors": err.messages if hasattr(err, "messages") else str(err),
            "payload": {"code": ValidationError.code},
        }
        return jsonify(response), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        response = {
            "success": False,
            "message": err.description or "HTTP error",
        }
        return jsonify(response), err.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        app.logger.exception(err)

        response = {
            "success": False,
            "message": "Internal server error",
            "payload": {"code": InternalError.code},
        }
        return jsonify(response), 500
