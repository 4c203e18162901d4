from datetime import date, timedelta

from flask import current_app

from prorentals.extensions import db
from prorentals.models.inspection_task import InspectionTask
from prorentals.services import event_service

INSPECTION_DUE_DAYS = 3
INSPECTION_TEAM = "inspection_team"


def task_to_dict(task: InspectionTask) -> dict:
    return {
        "id": task.id,
        "reportId": task.report_id,
        "rentalId": task.rental_id,
        "priority": task.priority,
        "assignedTo": task.assigned_to,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "description": task.description,
        "status": task.status,
        "createdAt": task.created_at.isoformat() if task.created_at else None,
    }


def schedule_inspection(report_id: int, rental_id: str, reason: str | None = None, today: date | None = None) -> InspectionTask:
    """One open task per report; calling again returns the existing one."""
    existing = InspectionTask.query.filter_by(report_id=report_id).first()
    if existing is not None:
        return existing

    task = InspectionTask(
        report_id=report_id,
        rental_id=rental_id,
        priority="high",
        assigned_to=INSPECTION_TEAM,
        due_date=(today or date.today()) + timedelta(days=INSPECTION_DUE_DAYS),
        description=f"Physical inspection after rejection of damage report #{report_id}"
        + (f": {reason}" if reason else ""),
        status="open",
    )
    db.session.add(task)
    db.session.commit()
    current_app.logger.info("[inspections] scheduled report=%s rental=%s due=%s", report_id, rental_id, task.due_date)
    return task


def tasks_for_report(report_id: int) -> list[InspectionTask]:
    return InspectionTask.query.filter_by(report_id=report_id).order_by(InspectionTask.id.asc()).all()


@event_service.subscribe("damage_report.rejected")
def on_report_rejected(event) -> None:
    p = event.payload
    if p.get("requiresInspection"):
        schedule_inspection(p["reportId"], p["rentalId"], p.get("reason"))
