from prorentals.extensions import db

# Back-office roles used by the damage workflow
ROLE_NAMES = ("admin", "manager", "supervisor", "reviewer", "agent", "financial")


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    users = db.relationship(
        "UserRole",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} name={self.name}>"
