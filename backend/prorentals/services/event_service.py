"""Transactional outbox for damage-workflow events.

``publish`` only adds a row to the current session; it is committed together
with the state change that produced it. ``dispatch_pending`` runs afterwards
(right after the request commits, or from ``flask events dispatch``) and hands
each event to its subscribers. Delivery is at-least-once, so subscribers must
tolerate seeing the same event twice.
"""
from collections import defaultdict
from datetime import datetime
from typing import Callable

from flask import current_app
from sqlalchemy.exc import OperationalError, ProgrammingError

from prorentals.extensions import db
from prorentals.models.domain_event import DomainEvent

_subscribers: dict[str, list[Callable[[DomainEvent], None]]] = defaultdict(list)


def subscribe(event_type: str):
    def decorator(fn):
        if fn not in _subscribers[event_type]:
            _subscribers[event_type].append(fn)
        return fn

    return decorator


def subscribers_for(event_type: str) -> list:
    return list(_subscribers.get(event_type, []))


def publish(event_type: str, aggregate_type: str, aggregate_id, payload: dict | None = None) -> DomainEvent:
    event = DomainEvent(
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=str(aggregate_id),
        payload=payload or {},
        status="pending",
        attempts=0,
    )
    db.session.add(event)
    return event


def _deliver(event: DomainEvent) -> None:
    for handler in subscribers_for(event.event_type):
        handler(event)


def dispatch_pending(limit: int = 100) -> dict:
    """Deliver pending events. Never raises: failures are logged and retried later."""
    max_attempts = int(current_app.config.get("EVENT_MAX_ATTEMPTS", 5))
    seen: set[int] = set()
    result = {"delivered": 0, "failed": 0, "retrying": 0}

    while len(seen) < limit:
        try:
            q = DomainEvent.query.filter_by(status="pending")
            if seen:
                q = q.filter(DomainEvent.id.notin_(seen))
            batch = q.order_by(DomainEvent.created_at.asc(), DomainEvent.id.asc()).limit(limit - len(seen)).all()
        except (OperationalError, ProgrammingError):
            db.session.rollback()
            current_app.logger.warning("[events] outbox unavailable (missing migrations?)")
            return result

        if not batch:
            break

        for event in batch:
            event_id = event.id
            seen.add(event_id)
            try:
                _deliver(event)
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception("[events] delivery failed id=%s type=%s", event_id, event.event_type)
                event = db.session.get(DomainEvent, event_id)
                if event is None:
                    continue
                event.attempts = (event.attempts or 0) + 1
                event.last_error = str(exc)[:500]
                if event.attempts >= max_attempts:
                    event.status = "failed"
                    result["failed"] += 1
                else:
                    result["retrying"] += 1
                db.session.commit()
                continue

            event.attempts = (event.attempts or 0) + 1
            event.status = "delivered"
            event.delivered_at = datetime.utcnow()
            db.session.commit()
            result["delivered"] += 1

    if any(result.values()):
        current_app.logger.info(
            "[events] dispatch delivered=%s retrying=%s failed=%s",
            result["delivered"],
            result["retrying"],
            result["failed"],
        )
    return result


def dispatch_after_commit() -> None:
    """Best-effort dispatch right after a request committed its transition."""
    try:
        dispatch_pending()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[events] dispatch aborted")
