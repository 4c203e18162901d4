from typing import Optional

from sqlalchemy.exc import IntegrityError

from prorentals.extensions import db, bcrypt
from prorentals.models.role import ROLE_NAMES, Role
from prorentals.models.user import User
from prorentals.models.user_role import UserRole
from prorentals.utils.errors import ApiError, ConflictError, ValidationError


def get_user(user_id: int) -> Optional[User]:
    return db.session.get(User, user_id)


def seed_roles() -> list[str]:
    created = []
    for name in ROLE_NAMES:
        if not Role.query.filter_by(name=name).first():
            db.session.add(Role(name=name))
            created.append(name)
    db.session.commit()
    return created


def create_user(data: dict) -> User:
    email = data["email"].lower().strip()

    if User.query.filter_by(email=email).first():
        raise ConflictError("Email already registered", payload={"email": email})

    role_names = [str(r).lower() for r in data.get("roles") or ["agent"]]
    unknown = sorted(set(role_names) - set(ROLE_NAMES))
    if unknown:
        raise ValidationError("Unknown roles", errors={"roles": unknown})

    user = User(
        name=data["name"].strip(),
        email=email,
        password_hash=bcrypt.generate_password_hash(data["password"]).decode("utf-8"),
        phone=data.get("phone"),
        status="active",
    )
    db.session.add(user)
    db.session.flush()

    for name in role_names:
        role = Role.query.filter_by(name=name).first()
        if role is None:
            role = Role(name=name)
            db.session.add(role)
            db.session.flush()
        db.session.add(UserRole(user_id=user.id, role_id=role.id))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ApiError("Error creating user", 500)

    return user


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "status": user.status,
        "roles": user.role_names(),
        "lastLoginAt": user.last_login_at.isoformat() if user.last_login_at else None,
    }
