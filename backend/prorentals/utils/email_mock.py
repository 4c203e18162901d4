import json
import logging
from datetime import datetime
from pathlib import Path

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


def _outbox_file() -> Path:
	out_dir = None
	if has_app_context():
		out_dir = current_app.config.get("EMAIL_OUTBOX_DIR")
	out_dir = Path(out_dir) if out_dir else Path(__file__).resolve().parents[2] / "tmp"
	out_dir.mkdir(parents=True, exist_ok=True)
	return out_dir / "email_outbox.jsonl"


def send_email(to: str, subject: str, body: str, meta: dict | None = None) -> None:
	"""Email stand-in.

	Nothing leaves the machine: each message is appended as one JSON line to
	``email_outbox.jsonl`` so approvers' and finance mails can be inspected
	in development and asserted on in tests.
	"""

	to_s = (to or "").strip()
	subject_s = (subject or "").strip()
	body_s = body or ""

	payload = {
		"to": to_s,
		"subject": subject_s,
		"body": body_s,
		"meta": meta or {},
		"created_at": datetime.utcnow().replace(microsecond=0).isoformat() + "Z",
	}

	with _outbox_file().open("a", encoding="utf-8") as f:
		f.write(json.dumps(payload, ensure_ascii=False) + "\n")

	logger.info("[email_mock] to=%s subject=%s", to_s, subject_s)
