from sqlalchemy import func

from prorentals.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20))

    status = db.Column(
        db.Enum("active", "suspended", name="user_status_enum"),
        default="active",
        nullable=False,
    )

    created_at = db.Column(
        db.TIMESTAMP,
        server_default=func.current_timestamp()
    )
    last_login_at = db.Column(db.TIMESTAMP)

    roles = db.relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def role_names(self) -> list[str]:
        return [ur.role.name for ur in self.roles]

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"
