from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from prorentals.services import notification_service
from prorentals.utils.responses import success_response
from prorentals.utils.security import current_roles, current_user_id

bp = Blueprint("notifications", __name__)


@bp.get("")
@jwt_required()
def list_notifications():
    user_id = current_user_id()
    recipients = notification_service.recipients_for(user_id, current_roles())
    data = notification_service.list_notifications(recipients, request.args.get("limit", 50))

    if current_app.config.get("NOTIFICATIONS_DEBUG"):
        current_app.logger.info(
            "[notifications] GET /api/notifications user=%s -> items=%s unread=%s",
            user_id,
            len(data.get("items") or []),
            data.get("unreadCount"),
        )
    return success_response(data=data)


@bp.post("/<int:notification_id>/read")
@jwt_required()
def mark_read(notification_id: int):
    recipients = notification_service.recipients_for(current_user_id(), current_roles())
    notification_service.mark_read(notification_id, recipients)
    return success_response(message="OK")
