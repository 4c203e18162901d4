from marshmallow import EXCLUDE, fields, validate, validates_schema, ValidationError

from prorentals.extensions import ma
from prorentals.models.damage import CATEGORIES, DAMAGE_STATUSES, RESPONSIBLE_PARTIES, SEVERITIES


class DamageCreateSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    rental_id = fields.String(data_key="rentalId", load_default=None, allow_none=True, validate=validate.Length(max=64))
    item_name = fields.String(data_key="itemName", required=True, validate=validate.Length(min=1, max=200))
    description = fields.String(required=True, validate=validate.Length(min=10))
    severity = fields.String(required=True, validate=validate.OneOf(SEVERITIES))
    category = fields.String(required=True, validate=validate.OneOf(CATEGORIES))
    repair_cost = fields.Float(data_key="repairCost", required=True, validate=validate.Range(min=0))
    photos = fields.List(fields.String(validate=validate.Length(max=500)), load_default=list)
    notes = fields.String(load_default=None, allow_none=True)
    responsible = fields.String(load_default=None, allow_none=True, validate=validate.OneOf(RESPONSIBLE_PARTIES))
    reported_by = fields.String(data_key="reportedBy", load_default=None, allow_none=True, validate=validate.Length(max=64))

    @validates_schema
    def validate_critical_photos(self, data, **kwargs):
        if data.get("severity") == "critical" and not data.get("photos"):
            raise ValidationError("Critical damages need at least one photo.", field_name="photos")


class DamageUpdateSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    rental_id = fields.String(data_key="rentalId", allow_none=True, validate=validate.Length(max=64))
    item_name = fields.String(data_key="itemName", validate=validate.Length(min=1, max=200))
    description = fields.String(validate=validate.Length(min=10))
    severity = fields.String(validate=validate.OneOf(SEVERITIES))
    category = fields.String(validate=validate.OneOf(CATEGORIES))
    repair_cost = fields.Float(data_key="repairCost", validate=validate.Range(min=0))
    photos = fields.List(fields.String(validate=validate.Length(max=500)))
    notes = fields.String(allow_none=True)
    responsible = fields.String(allow_none=True, validate=validate.OneOf(RESPONSIBLE_PARTIES))
    status = fields.String(validate=validate.OneOf(DAMAGE_STATUSES))


class DamageListQuerySchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    rental_id = fields.String(data_key="rentalId", load_default=None)
    status = fields.String(load_default=None, validate=validate.OneOf(DAMAGE_STATUSES))
    severity = fields.String(load_default=None, validate=validate.OneOf(SEVERITIES))
    category = fields.String(load_default=None, validate=validate.OneOf(CATEGORIES))
    page = fields.Integer(load_default=1, validate=validate.Range(min=1))
    limit = fields.Integer(load_default=10, validate=validate.Range(min=1, max=100))
