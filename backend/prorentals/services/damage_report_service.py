from collections import Counter, defaultdict
from datetime import datetime, timedelta

from flask import current_app

from prorentals.extensions import db
from prorentals.models.damage import Damage
from prorentals.models.damage_report import DamageReport, DamageReportItem
from prorentals.repositories import DamageReportRepository, ReportFilter
from prorentals.services import billing_policy, event_service
from prorentals.utils.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SelfApprovalError,
    ValidationError,
)
from prorentals.utils.fsm import TransitionValidator
from prorentals.utils.responses import paginate_meta

REPORT_FSM = TransitionValidator(
    {
        "draft": {"submitted"},
        "submitted": {"approved", "rejected"},
        "approved": {"billed"},
        "rejected": set(),
        "billed": set(),
    },
    label="damage report",
)

APPROVER_ROLES = {"manager", "supervisor", "admin"}
HIGH_VALUE_APPROVER_ROLES = {"manager", "admin"}
REJECTOR_ROLES = {"manager", "supervisor", "reviewer", "admin"}
BILLER_ROLES = {"financial", "manager", "admin"}
ADMIN_ROLES = {"admin"}

HIGH_VALUE_APPROVAL_THRESHOLD = 5000
HIGH_VALUE_LOG_THRESHOLD = 1000
COST_TOLERANCE = 0.01

REJECTION_DESCRIPTIONS = {
    "insufficient_evidence": "Insufficient evidence to support the reported damages",
    "pre_existing_damage": "Damage existed before the rental started",
    "normal_wear": "Normal wear from regular use",
    "incorrect_assessment": "Incorrect assessment of damage or costs",
    "missing_documentation": "Required documentation is missing",
    "policy_violation": "The report violates company policy",
    "duplicate_report": "The damages were already reported",
    "other": "Other reason",
}

repository = DamageReportRepository()


def has_role(roles, allowed: set[str]) -> bool:
    return any(str(r).lower() in allowed for r in (roles or []))


def _money(value) -> float:
    return round(float(value or 0), 2)


def _sum_costs(items) -> float:
    return _money(sum(float(i.repair_cost or 0) for i in items))


def _included_items(report: DamageReport) -> list[DamageReportItem]:
    if any(i.approved is not None for i in report.damages):
        return [i for i in report.damages if i.approved]
    return list(report.damages)


def _iso(dt):
    return dt.isoformat() if dt else None


def _build_item(data: dict, position: int) -> DamageReportItem:
    return DamageReportItem(
        position=position,
        item_name=(data.get("item_name") or "").strip(),
        description=(data.get("description") or "").strip(),
        severity=data["severity"],
        category=data["category"],
        repair_cost=_money(data.get("repair_cost")),
        photos=list(data.get("photos") or []),
        reported_by=(data.get("reported_by") or "").strip(),
        reported_at=data.get("reported_at") or datetime.utcnow(),
        responsible=data.get("responsible"),
        notes=data.get("notes"),
    )


def _item_from_damage(damage: Damage, position: int) -> DamageReportItem:
    return DamageReportItem(
        position=position,
        source_damage_id=damage.id,
        item_name=damage.item_name,
        description=damage.description,
        severity=damage.severity,
        category=damage.category,
        repair_cost=_money(damage.repair_cost),
        photos=list(damage.photos or []),
        reported_by=damage.reported_by,
        reported_at=damage.reported_at,
        responsible=damage.responsible,
        notes=damage.notes,
    )


def _event_payload(report: DamageReport, **extra) -> dict:
    payload = {
        "reportId": report.id,
        "rentalId": report.rental_id,
        "createdBy": report.created_by,
        "status": report.status,
        "totalCost": _money(report.total_cost),
        "damagesCount": len(report.damages),
    }
    payload.update(extra)
    return payload


def _require_creator_or_admin(report: DamageReport, actor: str, roles) -> None:
    if str(actor) != str(report.created_by) and not has_role(roles, ADMIN_ROLES):
        raise AuthorizationError("Only the report creator or an admin can change this report")


# Serialization

def item_to_dict(item: DamageReportItem) -> dict:
    return {
        "id": item.id,
        "itemName": item.item_name,
        "description": item.description,
        "severity": item.severity,
        "category": item.category,
        "repairCost": _money(item.repair_cost),
        "photos": list(item.photos or []),
        "reportedBy": item.reported_by,
        "reportedAt": _iso(item.reported_at),
        "responsible": item.responsible,
        "notes": item.notes,
        "approved": item.approved,
        "originalCost": _money(item.original_cost) if item.original_cost is not None else None,
        "adjustmentReason": item.adjustment_reason,
        "sourceDamageId": item.source_damage_id,
    }


def report_to_dict(report: DamageReport) -> dict:
    return {
        "id": report.id,
        "rentalId": report.rental_id,
        "status": report.status,
        "damages": [item_to_dict(i) for i in report.damages],
        "totalCost": _money(report.total_cost),
        "notes": report.notes,
        "createdBy": report.created_by,
        "createdAt": _iso(report.created_at),
        "updatedAt": _iso(report.updated_at),
        "submittedAt": _iso(report.submitted_at),
        "submittedBy": report.submitted_by,
        "submissionNotes": report.submission_notes,
        "approvedAt": _iso(report.approved_at),
        "approvedBy": report.approved_by,
        "approvalNotes": report.approval_notes,
        "adjustments": report.adjustments or [],
        "rejectedAt": _iso(report.rejected_at),
        "rejectedBy": report.rejected_by,
        "rejectionReason": report.rejection_reason,
        "rejectionCategory": report.rejection_category,
        "rejectionFeedback": report.rejection_feedback,
        "suggestedActions": report.suggested_actions or [],
        "allowResubmission": report.allow_resubmission,
        "requiresInspection": report.requires_inspection,
        "billedAt": _iso(report.billed_at),
        "billedBy": report.billed_by,
        "billingReference": report.billing_reference,
        "version": report.version,
    }


def _damages_summary(report: DamageReport) -> dict:
    items = report.damages
    return {
        "bySeverity": dict(Counter(i.severity for i in items)),
        "byCategory": dict(Counter(i.category for i in items)),
        "averageCost": _money(_sum_costs(items) / len(items)) if items else 0,
        "photosCount": sum(len(i.photos or []) for i in items),
    }


def _timeline(report: DamageReport) -> list[dict]:
    steps = [
        ("created", report.created_at, report.created_by, None),
        ("submitted", report.submitted_at, report.submitted_by, report.submission_notes),
        ("approved", report.approved_at, report.approved_by, report.approval_notes),
        ("rejected", report.rejected_at, report.rejected_by, report.rejection_reason),
        ("billed", report.billed_at, report.billed_by, report.billing_reference),
    ]
    return [
        {"event": name, "at": _iso(at), "by": by, "details": details}
        for name, at, by, details in steps
        if at is not None
    ]


def permissions_for(report: DamageReport, actor: str, roles) -> dict:
    is_owner_or_admin = str(actor) == str(report.created_by) or has_role(roles, ADMIN_ROLES)
    not_creator = str(actor) != str(report.created_by)
    return {
        "canEdit": report.status == "draft" and is_owner_or_admin,
        "canDelete": report.status == "draft" and is_owner_or_admin,
        "canSubmit": report.status == "draft",
        "canApprove": report.status == "submitted" and not_creator and has_role(roles, APPROVER_ROLES),
        "canReject": report.status == "submitted" and not_creator and has_role(roles, REJECTOR_ROLES),
        "canBill": report.status == "approved" and has_role(roles, BILLER_ROLES),
    }


def report_detail(report: DamageReport, actor: str, roles) -> dict:
    data = report_to_dict(report)
    data["damagesSummary"] = _damages_summary(report)
    data["timeline"] = _timeline(report)
    data["permissions"] = permissions_for(report, actor, roles)
    data["approvalPriority"] = billing_policy.approval_priority(report)
    return data


# Queries

def get_report(report_id: int) -> DamageReport:
    return repository.get(report_id)


def _list_stats(flt: ReportFilter) -> dict:
    reports = repository.query_by_filter(flt).all()
    total_value = _money(sum(float(r.total_cost or 0) for r in reports))
    by_status = Counter(r.status for r in reports)
    return {
        "total": len(reports),
        "byStatus": dict(by_status),
        "totalValue": total_value,
        "averageValue": _money(total_value / len(reports)) if reports else 0,
        "pendingApproval": by_status.get("submitted", 0),
        "awaitingBilling": by_status.get("approved", 0),
    }


def list_reports(filters: dict) -> dict:
    flt = ReportFilter(
        rental_id=filters.get("rental_id"),
        status=filters.get("status"),
        created_by=filters.get("created_by"),
    )
    page = filters.get("page") or 1
    limit = filters.get("limit") or 10
    items, total = repository.list_by_filter(flt, page=page, limit=limit)

    return {
        "reports": [report_to_dict(r) for r in items],
        "pagination": paginate_meta(page, limit, total),
        "stats": _list_stats(flt),
    }


def report_statistics(now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    reports = DamageReport.query.all()
    total_value = _money(sum(float(r.total_cost or 0) for r in reports))

    decided = [r for r in reports if r.submitted_at and (r.approved_at or r.rejected_at)]
    hours = [((r.approved_at or r.rejected_at) - r.submitted_at).total_seconds() / 3600 for r in decided]
    approved_like = [r for r in reports if r.status in ("approved", "billed")]
    rejected = [r for r in reports if r.status == "rejected"]
    reviewed = len(approved_like) + len(rejected)

    by_category = defaultdict(lambda: {"count": 0, "totalCost": 0.0})
    for r in reports:
        for item in r.damages:
            by_category[item.category]["count"] += 1
            by_category[item.category]["totalCost"] += float(item.repair_cost or 0)
    top_categories = sorted(
        ({"category": c, "count": v["count"], "totalCost": _money(v["totalCost"])} for c, v in by_category.items()),
        key=lambda x: x["totalCost"],
        reverse=True,
    )[:5]

    months = []
    year, month = now.year, now.month
    for _ in range(12):
        months.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    trend = {m: {"month": m, "count": 0, "totalValue": 0.0} for m in reversed(months)}
    for r in reports:
        key = r.created_at.strftime("%Y-%m") if r.created_at else None
        if key in trend:
            trend[key]["count"] += 1
            trend[key]["totalValue"] = _money(trend[key]["totalValue"] + float(r.total_cost or 0))

    return {
        "total": len(reports),
        "recent": sum(1 for r in reports if r.created_at and r.created_at >= now - timedelta(days=30)),
        "totalValue": total_value,
        "averageValue": _money(total_value / len(reports)) if reports else 0,
        "averageProcessingHours": round(sum(hours) / len(hours), 1) if hours else 0,
        "approvalRate": round(len(approved_like) * 100 / reviewed, 1) if reviewed else 0,
        "topDamageCategories": top_categories,
        "monthlyTrend": list(trend.values()),
    }


# Lifecycle

def create_report(data: dict, created_by: str) -> DamageReport:
    rental_id = data["rental_id"].strip()

    existing = repository.find_in_flight(rental_id)
    if existing is not None:
        raise ConflictError(
            "A damage report is already in progress for this rental",
            payload={"existingReportId": existing.id, "rentalId": rental_id},
        )

    items = [_build_item(d, pos) for pos, d in enumerate(data.get("damages") or [])]

    for damage_id in data.get("damage_ids") or []:
        damage = db.session.get(Damage, damage_id)
        if damage is None:
            raise NotFoundError(f"Damage {damage_id} not found", payload={"damageId": damage_id})
        if damage.rental_id and damage.rental_id != rental_id:
            raise ValidationError(
                "Damage belongs to another rental",
                errors={"damageIds": [f"Damage {damage_id} belongs to rental {damage.rental_id}"]},
            )
        items.append(_item_from_damage(damage, len(items)))

    total = _sum_costs(items)
    supplied = data.get("total_cost")
    if supplied is not None and abs(float(supplied) - total) > COST_TOLERANCE:
        raise ValidationError(
            "totalCost does not match the sum of the damages",
            errors={"totalCost": [f"Expected {total:.2f}, got {float(supplied):.2f}"]},
        )

    report = DamageReport(
        rental_id=rental_id,
        damages=items,
        total_cost=total,
        notes=data.get("notes"),
        created_by=str(created_by),
        created_at=datetime.utcnow(),
    )
    report.set_status("draft")
    repository.add(report)

    event_service.publish("damage_report.created", "damage_report", report.id, _event_payload(report))
    repository.commit(report)

    if total > HIGH_VALUE_LOG_THRESHOLD:
        current_app.logger.warning(
            "[damage-reports] high value report id=%s rental=%s total=%.2f", report.id, rental_id, total
        )
    current_app.logger.info("[damage-reports] created id=%s rental=%s by=%s", report.id, rental_id, created_by)
    return report


def update_draft(report_id: int, actor: str, roles, changes: dict) -> DamageReport:
    report = repository.get(report_id)
    repository.check_version(report, changes.get("expected_version"))
    if report.status != "draft":
        raise InvalidStateError("Only draft reports can be edited", payload={"currentStatus": report.status})
    _require_creator_or_admin(report, actor, roles)

    if "notes" in changes:
        report.notes = changes["notes"]
    if "damages" in changes:
        report.damages = [_build_item(d, pos) for pos, d in enumerate(changes["damages"] or [])]
        report.total_cost = _sum_costs(report.damages)

    repository.save(report)
    current_app.logger.info("[damage-reports] draft updated id=%s v=%s", report.id, report.version)
    return report


def delete_draft(report_id: int, actor: str, roles, expected_version: int | None = None) -> None:
    report = repository.get(report_id)
    if report.status != "draft":
        raise InvalidStateError("Only draft reports can be deleted", payload={"currentStatus": report.status})
    _require_creator_or_admin(report, actor, roles)
    repository.delete(report, expected_version)
    current_app.logger.info("[damage-reports] draft deleted id=%s by=%s", report_id, actor)


def _incomplete_items(report: DamageReport) -> list[dict]:
    incomplete = []
    for index, item in enumerate(report.damages):
        missing = [
            field
            for field, value in (
                ("itemName", item.item_name),
                ("description", item.description),
                ("reportedBy", item.reported_by),
            )
            if not (value or "").strip()
        ]
        if missing:
            incomplete.append({"index": index, "id": item.id, "missing": missing})
    return incomplete


def submit_report(report_id: int, submitted_by: str, notes: str | None = None, expected_version: int | None = None) -> DamageReport:
    report = repository.get(report_id)
    repository.check_version(report, expected_version)
    REPORT_FSM.assert_can_transition(report.status, "submitted", "Only draft reports can be submitted")

    if not report.damages:
        raise ValidationError(
            "The report must have at least one damage",
            errors={"damages": ["At least one damage is required"]},
        )
    incomplete = _incomplete_items(report)
    if incomplete:
        raise ValidationError(
            f"{len(incomplete)} damage(s) are missing required information",
            errors={"damages": incomplete},
        )

    report.set_status("submitted")
    report.submitted_at = datetime.utcnow()
    report.submitted_by = str(submitted_by)
    report.submission_notes = notes

    event_service.publish(
        "damage_report.submitted",
        "damage_report",
        report.id,
        _event_payload(
            report,
            submittedBy=report.submitted_by,
            criticalCount=sum(1 for i in report.damages if i.severity == "critical"),
            priority=billing_policy.approval_priority(report),
        ),
    )
    repository.save(report)
    current_app.logger.info("[damage-reports] submitted id=%s by=%s", report.id, submitted_by)
    return report


def _check_reviewer(report: DamageReport, actor: str, action: str) -> None:
    if str(actor) == str(report.created_by):
        raise SelfApprovalError(f"The report creator cannot {action} their own report")


def approve_report(report_id: int, approved_by: str, roles, data: dict) -> tuple[DamageReport, dict]:
    report = repository.get(report_id)
    repository.check_version(report, data.get("expected_version"))
    REPORT_FSM.assert_can_transition(report.status, "approved", "Only submitted reports can be approved")
    _check_reviewer(report, approved_by, "approve")
    if not has_role(roles, APPROVER_ROLES):
        raise AuthorizationError("You are not allowed to approve damage reports")
    original_total = _money(report.total_cost)
    if original_total > HIGH_VALUE_APPROVAL_THRESHOLD and not has_role(roles, HIGH_VALUE_APPROVER_ROLES):
        raise AuthorizationError(
            "Reports above R$ 5,000.00 require a manager",
            payload={"totalCost": original_total},
        )

    items_by_id = {item.id: item for item in report.damages}
    adjustments = data.get("adjustments") or []
    partial = bool(data.get("partial_approval"))
    approved_ids = set(data.get("approved_damages") or [])

    unknown = sorted({a["damage_id"] for a in adjustments if a["damage_id"] not in items_by_id})
    if partial:
        unknown_subset = sorted(i for i in approved_ids if i not in items_by_id)
    else:
        unknown_subset = []
    if unknown or unknown_subset:
        errors = {}
        if unknown:
            errors["adjustments"] = [f"Unknown damage ids: {unknown}"]
        if unknown_subset:
            errors["approvedDamages"] = [f"Unknown damage ids: {unknown_subset}"]
        raise ValidationError("Approval references damages that are not in this report", errors=errors)

    # Adjustments first, then the partial filter.
    total = original_total
    applied = []
    for adj in adjustments:
        item = items_by_id[adj["damage_id"]]
        old_cost = _money(item.repair_cost)
        new_cost = _money(adj["new_cost"])
        if item.original_cost is None:
            item.original_cost = old_cost
        item.repair_cost = new_cost
        item.adjustment_reason = adj["reason"]
        total = _money(total - old_cost + new_cost)
        applied.append({"damageId": item.id, "newCost": new_cost, "originalCost": old_cost, "reason": adj["reason"]})

    if partial:
        for item in report.damages:
            item.approved = item.id in approved_ids
        total = _sum_costs([i for i in report.damages if i.approved])

    report.total_cost = total
    report.adjustments = applied
    report.set_status("approved")
    report.approved_at = datetime.utcnow()
    report.approved_by = str(approved_by)
    report.approval_notes = data.get("notes")

    eligible = billing_policy.is_eligible_for_auto_billing(report)
    notify_customer = billing_policy.should_notify_customer(report)
    summary = {
        "originalCost": original_total,
        "approvedCost": total,
        "savings": _money(original_total - total),
        "adjustmentsCount": len(applied),
        "approvedDamagesCount": sum(1 for i in report.damages if i.approved) if partial else len(report.damages),
        "autoBillingEligible": eligible,
        "customerNotification": notify_customer,
    }

    event_service.publish(
        "damage_report.approved",
        "damage_report",
        report.id,
        _event_payload(
            report,
            approvedBy=report.approved_by,
            originalCost=original_total,
            autoBillingEligible=eligible,
            notifyCustomer=notify_customer,
        ),
    )
    repository.save(report)
    current_app.logger.info(
        "[damage-reports] approved id=%s by=%s total=%.2f partial=%s adjustments=%s",
        report.id,
        approved_by,
        total,
        partial,
        len(applied),
    )
    return report, summary


def reject_report(report_id: int, rejected_by: str, roles, data: dict) -> tuple[DamageReport, dict]:
    report = repository.get(report_id)
    repository.check_version(report, data.get("expected_version"))
    REPORT_FSM.assert_can_transition(report.status, "rejected", "Only submitted reports can be rejected")
    _check_reviewer(report, rejected_by, "reject")
    if not has_role(roles, REJECTOR_ROLES):
        raise AuthorizationError("You are not allowed to reject damage reports")

    report.set_status("rejected")
    report.rejected_at = datetime.utcnow()
    report.rejected_by = str(rejected_by)
    report.rejection_reason = data["reason"].strip()
    report.rejection_category = data["category"]
    report.rejection_feedback = data.get("feedback")
    report.suggested_actions = list(data.get("suggested_actions") or [])
    report.allow_resubmission = bool(data.get("allow_resubmission", True))
    report.requires_inspection = bool(data.get("requires_inspection", False))

    event_service.publish(
        "damage_report.rejected",
        "damage_report",
        report.id,
        _event_payload(
            report,
            rejectedBy=report.rejected_by,
            reason=report.rejection_reason,
            category=report.rejection_category,
            allowResubmission=report.allow_resubmission,
            requiresInspection=report.requires_inspection,
        ),
    )
    repository.save(report)
    current_app.logger.info(
        "[damage-reports] rejected id=%s by=%s category=%s", report.id, rejected_by, report.rejection_category
    )

    summary = {
        "category": report.rejection_category,
        "categoryDescription": REJECTION_DESCRIPTIONS.get(report.rejection_category),
        "allowResubmission": report.allow_resubmission,
        "requiresInspection": report.requires_inspection,
        "nextSteps": _rejection_next_steps(report),
    }
    return report, summary


def _rejection_next_steps(report: DamageReport) -> list[str]:
    steps = []
    if report.allow_resubmission:
        steps.append("Review the feedback and create a new report for the rental")
        steps.extend(report.suggested_actions or [])
    else:
        steps.append("The rejection is final; contact a supervisor to contest it")
    if report.requires_inspection:
        steps.append("A physical inspection will be scheduled")
    return steps


def mark_billed(report: DamageReport, billed_by: str, reference: str, event_extra: dict | None = None) -> DamageReport:
    """Record the approved -> billed transition. The caller owns the external billing."""
    REPORT_FSM.assert_can_transition(report.status, "billed", "Only approved reports can be billed")
    report.set_status("billed")
    report.billed_at = datetime.utcnow()
    report.billed_by = str(billed_by)
    report.billing_reference = reference
    event_service.publish(
        "damage_report.billed",
        "damage_report",
        report.id,
        _event_payload(report, billedBy=report.billed_by, reference=reference, **(event_extra or {})),
    )
    repository.save(report)
    current_app.logger.info("[damage-reports] billed id=%s ref=%s", report.id, reference)
    return report
