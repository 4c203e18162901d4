from flask import Blueprint, current_app, jsonify, request

from prorentals.extensions import db
from prorentals.services import lalamove_webhook_service

bp = Blueprint("webhooks", __name__)


@bp.get("/lalamove")
def lalamove_health():
    return jsonify({"status": "ok", "service": "lalamove-webhook"}), 200


@bp.post("/lalamove")
def lalamove_webhook():
    body = request.get_data() or b""
    lalamove_webhook_service.verify_signature(body, request.headers.get("x-lalamove-signature"))

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"success": False, "message": "Invalid payload"}), 400

    try:
        lalamove_webhook_service.handle_event(payload)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[webhooks] lalamove processing failed")
        return jsonify({"success": False, "message": "Processing failed"}), 500

    return jsonify({"success": True}), 200
