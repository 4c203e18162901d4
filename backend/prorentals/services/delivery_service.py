from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app

from prorentals.extensions import db
from prorentals.models.delivery import Delivery
from prorentals.services import lalamove_client
from prorentals.utils.errors import InvalidStateError, NotFoundError, UpstreamError, ValidationError

STORE_NAME = "ProRentals - Loja"

# provider status -> (status, substatus)
STATUS_MAP = {
    "ASSIGNING": ("aguardando_motorista", None),
    "ON_GOING": ("indo_cliente", "on_the_way"),
    "PICKED_UP": ("em_transporte", "picked_up"),
    "COMPLETED": ("entregue", None),
    "CANCELLED": ("cancelado", None),
    "EXPIRED": ("expirado", None),
}


def map_order_status(provider_status: Optional[str]) -> tuple:
    return STATUS_MAP.get((provider_status or "").upper(), ("desconhecido", None))


def delivery_to_dict(delivery: Delivery) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "rentalId": delivery.rental_id,
        "kind": delivery.kind,
        "orderId": delivery.order_id,
        "quotationId": delivery.quotation_id,
        "serviceType": delivery.service_type,
        "status": delivery.status,
        "substatus": delivery.substatus,
        "providerStatus": delivery.provider_status,
        "driver": delivery.driver,
        "location": delivery.location,
        "priceTotal": float(delivery.price_total) if delivery.price_total is not None else None,
        "currency": delivery.currency,
        "trackingUrl": delivery.tracking_url,
        "createdAt": delivery.created_at.isoformat() if delivery.created_at else None,
        "updatedAt": delivery.updated_at.isoformat() if delivery.updated_at else None,
    }


def _store_stop(data: Dict[str, Any]) -> Dict[str, Any]:
    store = data.get("store") or {}
    cfg = current_app.config
    stop = {
        "address": store.get("address") or cfg.get("STORE_ADDRESS"),
        "lat": store.get("lat") or cfg.get("STORE_LAT"),
        "lng": store.get("lng") or cfg.get("STORE_LNG"),
        "name": store.get("name") or STORE_NAME,
        "phone": store.get("phone") or cfg.get("STORE_PHONE"),
    }
    missing = [k for k in ("address", "lat", "lng") if not stop[k]]
    if missing:
        raise ValidationError(
            "Store location is not configured",
            errors={"store": [f"Missing {', '.join(missing)}"]},
        )
    return stop


def _provider_stop(stop: Dict[str, Any]) -> Dict[str, Any]:
    return {"coordinates": {"lat": str(stop["lat"]), "lng": str(stop["lng"])}, "address": stop["address"]}


def _contact(stop: Dict[str, Any], quoted: List[Dict[str, Any]], index: int) -> Dict[str, Any]:
    stop_id = quoted[index].get("stopId") if index < len(quoted) else None
    return {"stopId": stop_id, "name": stop.get("name") or "", "phone": stop.get("phone") or ""}


def _place_order(kind: str, data: Dict[str, Any], created_by: str) -> Delivery:
    rental_id = data["rental_id"]
    store = _store_stop(data)
    customer = data["customer"]
    stops = [store, customer] if kind == "delivery" else [customer, store]
    service_type = data.get("service_type") or lalamove_client.DEFAULT_SERVICE_TYPE

    client = lalamove_client.get_client()
    quotation = client.get_quotation([_provider_stop(s) for s in stops], service_type=service_type)
    quotation_id = quotation.get("quotationId")
    if not quotation_id:
        raise UpstreamError("Lalamove did not return a quotation", status_code=500)

    quoted_stops = quotation.get("stops") or []
    instructions = data.get("instructions") or (
        f"Entrega de equipamento alugado. Pedido: {rental_id}"
        if kind == "delivery"
        else f"Coleta de equipamento alugado para devolução. Pedido: {rental_id}"
    )
    recipient = _contact(stops[1], quoted_stops, 1)
    recipient["remarks"] = instructions
    order = client.create_order(
        {
            "quotationId": quotation_id,
            "sender": _contact(stops[0], quoted_stops, 0),
            "recipients": [recipient],
            "metadata": {"rentalId": rental_id, "type": kind},
        }
    )
    order_id = order.get("orderId")
    if not order_id:
        raise UpstreamError("Lalamove did not return an order id", status_code=500)

    price = quotation.get("priceBreakdown") or {}
    status, substatus = map_order_status(order.get("status") or "ASSIGNING")
    delivery = Delivery(
        rental_id=rental_id,
        kind=kind,
        order_id=order_id,
        quotation_id=quotation_id,
        service_type=service_type,
        status=status,
        substatus=substatus,
        provider_status=order.get("status") or "ASSIGNING",
        price_total=price.get("total") or quotation.get("totalFee"),
        currency=price.get("currency") or quotation.get("totalFeeCurrency"),
        tracking_url=order.get("shareLink") or lalamove_client.tracking_url(order_id),
        created_by=str(created_by),
    )
    db.session.add(delivery)
    db.session.commit()
    current_app.logger.info("[deliveries] %s ordered rental=%s order=%s", kind, rental_id, order_id)
    return delivery


def request_delivery(data: Dict[str, Any], created_by: str) -> Delivery:
    return _place_order("delivery", data, created_by)


def request_pickup(data: Dict[str, Any], created_by: str) -> Delivery:
    return _place_order("pickup", data, created_by)


def _get(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFoundError("Delivery not found", payload={"deliveryId": delivery_id})
    return delivery


def apply_provider_status(delivery: Delivery, provider_status: str) -> None:
    delivery.status, delivery.substatus = map_order_status(provider_status)
    delivery.provider_status = provider_status
    delivery.updated_at = datetime.utcnow()


def get_delivery(delivery_id: int, refresh: bool = True) -> Delivery:
    delivery = _get(delivery_id)
    if not refresh or delivery.status in ("entregue", "cancelado", "expirado"):
        return delivery
    try:
        order = lalamove_client.get_client().get_order(delivery.order_id)
    except UpstreamError as e:
        current_app.logger.warning("[deliveries] refresh failed order=%s: %s", delivery.order_id, e.message)
        return delivery

    if order.get("status") and order["status"] != delivery.provider_status:
        apply_provider_status(delivery, order["status"])
    if order.get("driverId") or order.get("driver"):
        delivery.driver = order.get("driver") or {"driverId": order.get("driverId")}
    db.session.commit()
    return delivery


def cancel_delivery(delivery_id: int, cancelled_by: str) -> Delivery:
    delivery = _get(delivery_id)
    if delivery.status in ("entregue", "cancelado", "expirado"):
        raise InvalidStateError(
            f"Delivery is already {delivery.status}",
            payload={"currentStatus": delivery.status},
        )
    lalamove_client.get_client().cancel_order(delivery.order_id)
    apply_provider_status(delivery, "CANCELLED")
    db.session.commit()
    current_app.logger.info("[deliveries] cancelled order=%s by=%s", delivery.order_id, cancelled_by)
    return delivery


def list_deliveries(rental_id: Optional[str] = None) -> List[Delivery]:
    query = Delivery.query
    if rental_id:
        query = query.filter(Delivery.rental_id == rental_id)
    return query.order_by(Delivery.created_at.desc(), Delivery.id.desc()).all()


def find_by_order_id(order_id: str) -> Optional[Delivery]:
    return Delivery.query.filter_by(order_id=order_id).first()
