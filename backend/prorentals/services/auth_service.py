from datetime import datetime

from flask_jwt_extended import create_access_token, create_refresh_token

from prorentals.extensions import bcrypt, db
from prorentals.models.user import User
from prorentals.services.user_service import user_to_dict
from prorentals.utils.errors import ApiError


def authenticate(email: str, password: str):
    user = User.query.filter_by(email=email.lower().strip()).first()

    if not user:
        raise ApiError("Invalid credentials", 401)

    try:
        password_ok = bcrypt.check_password_hash(user.password_hash or "", password)
    except (ValueError, TypeError):
        # A corrupt or plain-text hash in the database must not become a 500.
        raise ApiError("Invalid credentials", 401)

    if not password_ok:
        raise ApiError("Invalid credentials", 401)

    if user.status != "active":
        raise ApiError("Account suspended", 403)

    roles = user.role_names()
    access_token = create_access_token(identity=str(user.id), additional_claims={"roles": roles})
    refresh_token = create_refresh_token(identity=str(user.id), additional_claims={"roles": roles})

    user.last_login_at = datetime.utcnow()
    db.session.commit()

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "user": user_to_dict(user),
    }
