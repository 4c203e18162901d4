from flask import request
from flask_jwt_extended import get_jwt, get_jwt_identity

from prorentals.utils.errors import ApiError


def current_user_id() -> int:
	user_id = get_jwt_identity()
	try:
		return int(user_id)
	except (TypeError, ValueError):
		raise ApiError("Invalid token", 401, payload={"code": "UNAUTHORIZED"})


def current_actor() -> str:
	return str(current_user_id())


def current_roles() -> list[str]:
	claims = get_jwt() or {}
	return [str(r).lower() for r in (claims.get("roles") or [])]


def require_roles(*allowed: str) -> list[str]:
	roles = current_roles()
	if not any(r in allowed for r in roles):
		raise ApiError(
			"You do not have permission for this action",
			403,
			payload={"code": "FORBIDDEN", "requiredRoles": list(allowed)},
		)
	return roles


def _version_error(field: str):
	return ApiError(
		f"{field} must carry the report version",
		400,
		errors={field: ["Expected an integer version"]},
		payload={"code": "VALIDATION_ERROR"},
	)


def expected_version(body_value=None) -> int | None:
	"""Body ``expectedVersion`` wins; otherwise an ``If-Match`` header (quotes and W/ allowed)."""
	if body_value is not None:
		if isinstance(body_value, bool):
			raise _version_error("expectedVersion")
		try:
			return int(body_value)
		except (TypeError, ValueError):
			raise _version_error("expectedVersion")
	header = (request.headers.get("If-Match") or "").strip()
	if not header or header == "*":
		return None
	if header.startswith("W/"):
		header = header[2:]
	header = header.strip('"')
	try:
		return int(header)
	except ValueError:
		raise _version_error("If-Match")
