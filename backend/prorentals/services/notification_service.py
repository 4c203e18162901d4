import json

from flask import current_app
from sqlalchemy.exc import OperationalError, ProgrammingError

from prorentals.extensions import db
from prorentals.models.notification import Notification
from prorentals.services import event_service
from prorentals.utils.email_mock import send_email
from prorentals.utils.errors import NotFoundError, ApiError


def _debug() -> bool:
	return bool(current_app.config.get("NOTIFICATIONS_DEBUG"))


def _meta_like_event_key(event_key: str) -> str:
	# meta_json is TEXT; plain LIKE keeps this portable (SQLite/MySQL).
	return f'%"event_key": "{event_key}"%'


def _money(value) -> str:
	return f"R$ {float(value or 0):,.2f}"


def create_notification(
	recipient: str,
	kind: str,
	message: str,
	meta: dict | None = None,
	*,
	event_key: str | None = None,
) -> None:
	debug = _debug()

	r = (str(recipient) if recipient is not None else "").strip()
	t = (kind or "").strip()
	m = (message or "").strip()
	if not r or not t or not m:
		if debug:
			current_app.logger.info("[notifications] skip create: empty recipient/type/message")
		return
	if len(m) > 300:
		m = m[:300]

	meta = dict(meta or {})
	report_id = meta.get("reportId")
	if report_id is not None:
		meta.setdefault("link", f"/damage-reports/{report_id}")
	meta.setdefault("event_type", t)
	if event_key:
		meta.setdefault("event_key", event_key)
	meta_json = json.dumps(meta, ensure_ascii=False, default=str)

	try:
		if event_key:
			# Outbox delivery is at-least-once; skip what was already created.
			exists = (
				Notification.query.filter_by(recipient=r, type=t)
				.filter(Notification.meta_json.isnot(None))
				.filter(Notification.meta_json.like(_meta_like_event_key(event_key)))
				.first()
			)
			if exists is not None:
				if debug:
					current_app.logger.info("[notifications] dedupe skip recipient=%s type=%s event_key=%s", r, t, event_key)
				return

		n = Notification(recipient=r, type=t, message=m, read=False, meta_json=meta_json)
		db.session.add(n)
		db.session.commit()
		if debug:
			current_app.logger.info("[notifications] created id=%s recipient=%s type=%s", n.id, r, t)
	except (OperationalError, ProgrammingError):
		# Missing table (migrations not applied) must not break the workflow.
		db.session.rollback()
		current_app.logger.warning("[notifications] create failed (missing migrations/tables)")


def recipients_for(user_id, roles: list[str] | None) -> list[str]:
	out = [str(user_id)]
	out.extend(f"role:{str(r).lower()}" for r in (roles or []))
	return out


def list_notifications(recipients: list[str], limit: int = 50) -> dict:
	try:
		limit = max(1, min(int(limit), 100))
	except (TypeError, ValueError):
		limit = 50
	try:
		q = (
			Notification.query.filter(Notification.recipient.in_(recipients))
			.order_by(Notification.created_at.desc(), Notification.id.desc())
			.limit(limit)
		)
		items = q.all()
		unread = Notification.query.filter(Notification.recipient.in_(recipients), Notification.read.is_(False)).count()
	except (OperationalError, ProgrammingError):
		current_app.logger.warning("[notifications] list failed (missing migrations/tables)")
		return {"items": [], "unreadCount": 0}

	return {
		"items": [
			{
				"id": n.id,
				"recipient": n.recipient,
				"type": n.type,
				"message": n.message,
				"read": bool(n.read),
				"createdAt": n.created_at.isoformat() if n.created_at else None,
				"meta": json.loads(n.meta_json) if n.meta_json else None,
			}
			for n in items
		],
		"unreadCount": int(unread),
	}


def mark_read(notification_id: int, recipients: list[str]) -> None:
	try:
		n = db.session.get(Notification, notification_id)
	except (OperationalError, ProgrammingError):
		raise ApiError("Notifications unavailable.", status_code=501)

	if not n or n.recipient not in recipients:
		raise NotFoundError("Notification not found.")

	if not n.read:
		n.read = True
		db.session.commit()
		if _debug():
			current_app.logger.info("[notifications] marked read id=%s", notification_id)


def _notify_all(recipients, kind: str, message: str, event, meta: dict | None = None) -> None:
	base_meta = {"reportId": event.payload.get("reportId"), "rentalId": event.payload.get("rentalId")}
	base_meta.update(meta or {})
	for recipient in recipients:
		create_notification(
			recipient,
			kind,
			message,
			dict(base_meta),
			event_key=f"{event.id}:{kind}:{recipient}",
		)


# Damage workflow subscribers

@event_service.subscribe("damage_report.created")
def on_report_created(event) -> None:
	p = event.payload
	if float(p.get("totalCost") or 0) > 1000:
		_notify_all(
			["role:manager"],
			"DAMAGE_REPORT_HIGH_VALUE",
			f"High value damage report #{p['reportId']} created for rental {p['rentalId']}: {_money(p['totalCost'])}",
			event,
		)


@event_service.subscribe("damage_report.submitted")
def on_report_submitted(event) -> None:
	p = event.payload
	total = float(p.get("totalCost") or 0)
	_notify_all(
		["role:manager", "role:supervisor"],
		"DAMAGE_REPORT_SUBMITTED",
		f"Damage report #{p['reportId']} ({p.get('damagesCount', 0)} items, {_money(total)}) is awaiting approval",
		event,
		{"priority": p.get("priority")},
	)

	for email in current_app.config.get("APPROVER_EMAILS") or []:
		send_email(
			to=email,
			subject=f"Damage report #{p['reportId']} awaiting approval",
			body=(
				f"Rental: {p['rentalId']}\n"
				f"Total: {_money(total)}\n"
				f"Items: {p.get('damagesCount', 0)}\n"
				f"Submitted by: {p.get('submittedBy')}\n"
				f"Priority: {p.get('priority')}"
			),
			meta={"event_id": event.id},
		)

	if total > 5000:
		_notify_all(
			["role:director", "role:financial"],
			"DAMAGE_REPORT_URGENT",
			f"Urgent: damage report #{p['reportId']} of {_money(total)} needs approval",
			event,
		)

	if int(p.get("criticalCount") or 0) > 0:
		_notify_all(
			["role:operations"],
			"CRITICAL_DAMAGE",
			f"{p['criticalCount']} critical damage(s) reported on rental {p['rentalId']}",
			event,
		)


@event_service.subscribe("damage_report.approved")
def on_report_approved(event) -> None:
	p = event.payload
	_notify_all(
		[p["createdBy"]],
		"DAMAGE_REPORT_APPROVED",
		f"Your damage report #{p['reportId']} was approved: {_money(p.get('totalCost'))}",
		event,
	)
	_notify_all(
		["role:financial"],
		"DAMAGE_REPORT_READY_FOR_BILLING",
		f"Damage report #{p['reportId']} approved for {_money(p.get('totalCost'))}"
		+ (" (eligible for automatic billing)" if p.get("autoBillingEligible") else " (manual billing review)"),
		event,
	)
	if p.get("notifyCustomer"):
		_notify_all(
			[f"customer:{p['rentalId']}"],
			"DAMAGE_CHARGE_NOTICE",
			f"Damages found on rental {p['rentalId']} were assessed at {_money(p.get('totalCost'))}",
			event,
		)


@event_service.subscribe("damage_report.rejected")
def on_report_rejected(event) -> None:
	p = event.payload
	_notify_all(
		[p["createdBy"]],
		"DAMAGE_REPORT_REJECTED",
		f"Your damage report #{p['reportId']} was rejected ({p.get('category')}): {p.get('reason', '')}",
		event,
		{"allowResubmission": p.get("allowResubmission")},
	)
	if p.get("requiresInspection") or not p.get("allowResubmission", True):
		_notify_all(
			["role:supervisor"],
			"DAMAGE_REPORT_REJECTION_REVIEW",
			f"Damage report #{p['reportId']} rejected"
			+ (", inspection required" if p.get("requiresInspection") else ", resubmission not allowed"),
			event,
		)


@event_service.subscribe("damage_report.billed")
def on_report_billed(event) -> None:
	p = event.payload
	recipients = {p["createdBy"], "role:financial"}
	if p.get("billedBy") and p.get("billedBy") != "system":
		recipients.add(p["billedBy"])
	_notify_all(
		sorted(recipients),
		"DAMAGE_REPORT_BILLED",
		f"Damage report #{p['reportId']} billed: {_money(p.get('finalAmount'))} due {p.get('dueDate')} (ref {p.get('reference')})",
		event,
		{"reference": p.get("reference")},
	)
	if p.get("sendNotification", True):
		_notify_all(
			[f"customer:{p['rentalId']}"],
			"DAMAGE_CHARGE_ISSUED",
			f"A damage charge of {_money(p.get('finalAmount'))} was issued, due {p.get('dueDate')}",
			event,
			{"reference": p.get("reference"), "paymentUrl": p.get("paymentUrl")},
		)
