from marshmallow import EXCLUDE, fields, validate

from prorentals.extensions import ma

SERVICE_TYPES = ("MOTORCYCLE", "CAR", "VAN", "TRUCK")


class StopSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    address = fields.String(required=True, validate=validate.Length(min=1, max=300))
    lat = fields.Float(required=True, validate=validate.Range(min=-90, max=90))
    lng = fields.Float(required=True, validate=validate.Range(min=-180, max=180))
    name = fields.String(load_default=None, allow_none=True)
    phone = fields.String(load_default=None, allow_none=True)


class DeliveryRequestSchema(ma.Schema):
    class Meta:
        unknown = EXCLUDE

    rental_id = fields.String(data_key="rentalId", required=True, validate=validate.Length(min=1, max=64))
    customer = fields.Nested(StopSchema, required=True)
    store = fields.Nested(StopSchema, load_default=None, allow_none=True)
    service_type = fields.String(data_key="serviceType", load_default="MOTORCYCLE", validate=validate.OneOf(SERVICE_TYPES))
    instructions = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=500))
