from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from prorentals.schemas.damage_report_schemas import (
    ReportApprovalSchema,
    ReportBillingSchema,
    ReportCreateSchema,
    ReportListQuerySchema,
    ReportRejectionSchema,
    ReportSubmitSchema,
    ReportUpdateSchema,
)
from prorentals.services import billing_service, damage_report_service, event_service
from prorentals.utils.responses import success_response
from prorentals.utils.security import current_actor, current_roles, expected_version

bp = Blueprint("damage_reports", __name__)


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _load_versioned(schema, body: dict) -> dict:
    data = schema.load(body)
    data["expected_version"] = expected_version(data.get("expected_version"))
    return data


@bp.get("")
@jwt_required()
def list_reports():
    filters = ReportListQuerySchema().load(request.args.to_dict())
    return success_response(data=damage_report_service.list_reports(filters))


@bp.post("")
@jwt_required()
def create_report():
    data = ReportCreateSchema().load(_body())
    report = damage_report_service.create_report(data, current_actor())
    event_service.dispatch_after_commit()
    return success_response(
        data=damage_report_service.report_to_dict(report),
        message="Damage report created",
        status_code=201,
    )


@bp.get("/statistics")
@jwt_required()
def statistics():
    return success_response(data=damage_report_service.report_statistics())


@bp.get("/<int:report_id>")
@jwt_required()
def get_report(report_id: int):
    report = damage_report_service.get_report(report_id)
    return success_response(data=damage_report_service.report_detail(report, current_actor(), current_roles()))


@bp.patch("/<int:report_id>")
@jwt_required()
def update_report(report_id: int):
    body = _body()
    changes = _load_versioned(ReportUpdateSchema(), body)
    report = damage_report_service.update_draft(report_id, current_actor(), current_roles(), changes)
    return success_response(data=damage_report_service.report_to_dict(report), message="Draft updated")


@bp.delete("/<int:report_id>")
@jwt_required()
def delete_report(report_id: int):
    damage_report_service.delete_draft(
        report_id,
        current_actor(),
        current_roles(),
        expected_version(_body().get("expectedVersion")),
    )
    return success_response(data={"deleted": True, "id": report_id}, message="Draft deleted")


@bp.post("/<int:report_id>/submit")
@jwt_required()
def submit_report(report_id: int):
    data = _load_versioned(ReportSubmitSchema(), _body())
    report = damage_report_service.submit_report(report_id, current_actor(), data.get("notes"), data["expected_version"])
    submitted = damage_report_service.report_to_dict(report)
    event_service.dispatch_after_commit()
    return success_response(data=submitted, message="Report submitted for approval")


@bp.post("/<int:report_id>/approve")
@jwt_required()
def approve_report(report_id: int):
    data = _load_versioned(ReportApprovalSchema(), _body())
    report, summary = damage_report_service.approve_report(report_id, current_actor(), current_roles(), data)
    # Serialized before dispatch; auto-billing may move the report on to billed.
    approved = damage_report_service.report_to_dict(report)
    event_service.dispatch_after_commit()
    return success_response(
        data={"report": approved, "approvalSummary": summary},
        message="Report approved",
    )


@bp.post("/<int:report_id>/reject")
@jwt_required()
def reject_report(report_id: int):
    data = _load_versioned(ReportRejectionSchema(), _body())
    report, summary = damage_report_service.reject_report(report_id, current_actor(), current_roles(), data)
    rejected = damage_report_service.report_to_dict(report)
    event_service.dispatch_after_commit()
    return success_response(
        data={"report": rejected, "rejectionSummary": summary},
        message="Report rejected",
    )


@bp.get("/<int:report_id>/billing")
@jwt_required()
def get_billing(report_id: int):
    billing = billing_service.get_billing(report_id)
    return success_response(data=billing_service.billing_to_dict(billing))


@bp.post("/<int:report_id>/billing")
@jwt_required()
def bill_report(report_id: int):
    data = _load_versioned(ReportBillingSchema(), _body())
    billing = billing_service.bill_report(report_id, current_actor(), data, roles=current_roles())
    event_service.dispatch_after_commit()
    report = damage_report_service.get_report(report_id)
    return success_response(
        data={
            "billing": billing_service.billing_to_dict(billing),
            "report": damage_report_service.report_to_dict(report),
        },
        message="Report billed",
        status_code=201,
    )
