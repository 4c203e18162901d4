from marshmallow import fields, validate, validates, ValidationError

from prorentals.extensions import ma
from prorentals.models.role import ROLE_NAMES


class LoginSchema(ma.Schema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)


class UserCreateSchema(ma.Schema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=150))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    phone = fields.String(required=False, allow_none=True)
    roles = fields.List(fields.String(validate=validate.OneOf(ROLE_NAMES)), load_default=lambda: ["agent"])

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters.")
