from collections import Counter
from datetime import datetime
from typing import Any, Dict, List

from flask import current_app

from prorentals.extensions import db
from prorentals.models.damage import Damage
from prorentals.services import photo_service
from prorentals.utils.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from prorentals.utils.fsm import TransitionValidator
from prorentals.utils.responses import paginate_meta

DAMAGE_FSM = TransitionValidator(
    {
        "pending": {"approved", "rejected"},
        "rejected": {"pending"},
        "approved": {"repaired"},
        "repaired": set(),
    },
    label="damage",
)

APPROVED_EDITABLE_FIELDS = {"notes", "status"}
APPROVED_EDITOR_ROLES = {"admin", "manager"}
UPDATABLE_FIELDS = (
    "item_name",
    "description",
    "severity",
    "category",
    "repair_cost",
    "photos",
    "notes",
    "responsible",
    "rental_id",
)


def _money(value) -> float:
    return round(float(value or 0), 2)


def damage_to_dict(damage: Damage) -> Dict[str, Any]:
    return {
        "id": damage.id,
        "rentalId": damage.rental_id,
        "itemName": damage.item_name,
        "description": damage.description,
        "severity": damage.severity,
        "category": damage.category,
        "repairCost": _money(damage.repair_cost),
        "photos": list(damage.photos or []),
        "notes": damage.notes,
        "responsible": damage.responsible,
        "status": damage.status,
        "reportedBy": damage.reported_by,
        "reportedAt": damage.reported_at.isoformat() if damage.reported_at else None,
        "updatedBy": damage.updated_by,
        "updatedAt": damage.updated_at.isoformat() if damage.updated_at else None,
    }


def _get(damage_id: int) -> Damage:
    damage = db.session.get(Damage, damage_id)
    if damage is None:
        raise NotFoundError("Damage not found", payload={"damageId": damage_id})
    return damage


def create_damage(data: Dict[str, Any], reported_by: str) -> Damage:
    photos = list(data.get("photos") or [])
    if data["severity"] == "critical" and not photos:
        raise ValidationError(
            "Critical damages need at least one photo",
            errors={"photos": ["At least one photo is required for critical damages"]},
        )

    damage = Damage(
        rental_id=(data.get("rental_id") or None),
        item_name=data["item_name"].strip(),
        description=data["description"].strip(),
        severity=data["severity"],
        category=data["category"],
        repair_cost=_money(data.get("repair_cost")),
        photos=photos,
        notes=data.get("notes"),
        responsible=data.get("responsible"),
        status="pending",
        reported_by=(data.get("reported_by") or str(reported_by)).strip(),
        reported_at=datetime.utcnow(),
    )
    db.session.add(damage)
    db.session.commit()

    if damage.severity in ("high", "critical"):
        current_app.logger.warning(
            "[damages] %s severity damage id=%s rental=%s item=%s",
            damage.severity,
            damage.id,
            damage.rental_id,
            damage.item_name,
        )
    current_app.logger.info("[damages] created id=%s by=%s", damage.id, damage.reported_by)
    return damage


def list_damages(filters: Dict[str, Any]) -> Dict[str, Any]:
    query = Damage.query
    for field in ("rental_id", "status", "severity", "category"):
        if filters.get(field):
            query = query.filter(getattr(Damage, field) == filters[field])

    page = filters.get("page") or 1
    limit = filters.get("limit") or 10
    total = query.count()
    items: List[Damage] = (
        query.order_by(Damage.reported_at.desc(), Damage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    everything = query.all()
    total_cost = _money(sum(float(d.repair_cost or 0) for d in everything))
    stats = {
        "total": len(everything),
        "totalCost": total_cost,
        "bySeverity": dict(Counter(d.severity for d in everything)),
        "byStatus": dict(Counter(d.status for d in everything)),
        "byCategory": dict(Counter(d.category for d in everything)),
        "averageCost": _money(total_cost / len(everything)) if everything else 0,
    }

    return {
        "damages": [damage_to_dict(d) for d in items],
        "pagination": paginate_meta(page, limit, total),
        "stats": stats,
    }


def get_damage_detail(damage_id: int) -> Dict[str, Any]:
    damage = _get(damage_id)
    data = damage_to_dict(damage)

    related: List[Damage] = []
    if damage.rental_id:
        related = (
            Damage.query.filter(Damage.rental_id == damage.rental_id, Damage.id != damage.id)
            .order_by(Damage.reported_at.desc())
            .all()
        )
    data["relatedDamages"] = [damage_to_dict(d) for d in related]
    data["totalCostForRental"] = _money(sum(float(d.repair_cost or 0) for d in [damage, *related]))
    data["damageCountForRental"] = len(related) + 1
    return data


def update_damage(damage_id: int, changes: Dict[str, Any], updated_by: str, roles) -> Damage:
    damage = _get(damage_id)

    if damage.status == "repaired":
        raise InvalidStateError("Repaired damages cannot be changed", payload={"currentStatus": damage.status})

    if damage.status == "approved":
        restricted = sorted(set(changes) - APPROVED_EDITABLE_FIELDS)
        privileged = any(str(r).lower() in APPROVED_EDITOR_ROLES for r in (roles or []))
        if restricted and not privileged:
            raise AuthorizationError(
                "Approved damages can only change notes and status",
                payload={"fields": restricted},
            )

    new_status = changes.get("status")
    if new_status and new_status != damage.status:
        DAMAGE_FSM.assert_can_transition(damage.status, new_status)

    if changes.get("severity") == "critical":
        photos = changes.get("photos", damage.photos) or []
        if not photos:
            raise ValidationError(
                "Critical damages need at least one photo",
                errors={"photos": ["At least one photo is required for critical damages"]},
            )

    escalated = changes.get("severity") == "critical" and damage.severity != "critical"

    for field in UPDATABLE_FIELDS:
        if field in changes:
            value = changes[field]
            if field in ("item_name", "description") and isinstance(value, str):
                value = value.strip()
            if field == "repair_cost":
                value = _money(value)
            setattr(damage, field, value)
    if new_status:
        damage.status = new_status

    damage.updated_by = str(updated_by)
    damage.updated_at = datetime.utcnow()
    db.session.commit()

    if escalated:
        current_app.logger.warning("[damages] id=%s escalated to critical by=%s", damage.id, updated_by)
    current_app.logger.info("[damages] updated id=%s by=%s fields=%s", damage.id, updated_by, sorted(changes))
    return damage


def delete_damage(damage_id: int, deleted_by: str) -> None:
    damage = _get(damage_id)
    if damage.status in ("approved", "repaired"):
        raise InvalidStateError(
            f"Damages in status {damage.status} cannot be deleted",
            payload={"currentStatus": damage.status},
        )

    photo_service.remove_damage_photos(damage)
    db.session.delete(damage)
    db.session.commit()
    current_app.logger.info("[damages] deleted id=%s by=%s", damage_id, deleted_by)
