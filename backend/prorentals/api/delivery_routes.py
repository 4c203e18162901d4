from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from prorentals.schemas.delivery_schemas import DeliveryRequestSchema
from prorentals.services import delivery_service
from prorentals.utils.responses import success_response
from prorentals.utils.security import current_actor

bp = Blueprint("deliveries", __name__)


@bp.get("")
@jwt_required()
def list_deliveries():
    deliveries = delivery_service.list_deliveries(request.args.get("rentalId") or None)
    return success_response(data=[delivery_service.delivery_to_dict(d) for d in deliveries])


@bp.post("/delivery")
@jwt_required()
def request_delivery():
    data = DeliveryRequestSchema().load(request.get_json(silent=True) or {})
    delivery = delivery_service.request_delivery(data, current_actor())
    return success_response(data=delivery_service.delivery_to_dict(delivery), message="Delivery requested", status_code=201)


@bp.post("/pickup")
@jwt_required()
def request_pickup():
    data = DeliveryRequestSchema().load(request.get_json(silent=True) or {})
    delivery = delivery_service.request_pickup(data, current_actor())
    return success_response(data=delivery_service.delivery_to_dict(delivery), message="Pickup requested", status_code=201)


@bp.get("/<int:delivery_id>")
@jwt_required()
def get_delivery(delivery_id: int):
    delivery = delivery_service.get_delivery(delivery_id)
    return success_response(data=delivery_service.delivery_to_dict(delivery))


@bp.delete("/<int:delivery_id>")
@jwt_required()
def cancel_delivery(delivery_id: int):
    delivery = delivery_service.cancel_delivery(delivery_id, current_actor())
    return success_response(data=delivery_service.delivery_to_dict(delivery), message="Delivery cancelled")
