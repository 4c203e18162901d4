from marshmallow import EXCLUDE, fields, validate, validates, ValidationError

from prorentals.extensions import ma
from prorentals.services.asaas_client import validate_cpf_cnpj

BILLING_TYPES = ("BOLETO", "CREDIT_CARD", "PIX", "UNDEFINED")
WEBHOOK_EVENTS_DEFAULT = (
    "PAYMENT_CREATED",
    "PAYMENT_UPDATED",
    "PAYMENT_CONFIRMED",
    "PAYMENT_RECEIVED",
    "PAYMENT_OVERDUE",
    "PAYMENT_DELETED",
    "PAYMENT_REFUNDED",
)


class _GatewaySchema(ma.Schema):
    """Gateway payloads keep the provider's camelCase field names."""

    class Meta:
        unknown = EXCLUDE


class CustomerSchema(_GatewaySchema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(load_default=None, allow_none=True)
    cpfCnpj = fields.String(required=True, validate=validate.Length(min=11, max=18))
    phone = fields.String(load_default=None, allow_none=True)
    mobilePhone = fields.String(load_default=None, allow_none=True)
    address = fields.String(load_default=None, allow_none=True)
    addressNumber = fields.String(load_default=None, allow_none=True)
    complement = fields.String(load_default=None, allow_none=True)
    province = fields.String(load_default=None, allow_none=True)
    postalCode = fields.String(load_default=None, allow_none=True)
    externalReference = fields.String(load_default=None, allow_none=True)
    notificationDisabled = fields.Boolean(load_default=None, allow_none=True)
    observations = fields.String(data_key="notes", load_default=None, allow_none=True)

    @validates("cpfCnpj")
    def validate_document(self, value, **kwargs):
        if not validate_cpf_cnpj(value):
            raise ValidationError("Invalid CPF/CNPJ.")


class CustomerUpdateSchema(CustomerSchema):
    name = fields.String(validate=validate.Length(min=1, max=255))
    cpfCnpj = fields.String(validate=validate.Length(min=11, max=18))


class _AmountRule(_GatewaySchema):
    value = fields.Float(required=True, validate=validate.Range(min=0))


class DiscountSchema(_AmountRule):
    dueDateLimitDays = fields.Integer(load_default=None, allow_none=True)
    type = fields.String(load_default=None, allow_none=True, validate=validate.OneOf(("FIXED", "PERCENTAGE")))


class PaymentSchema(_GatewaySchema):
    customer = fields.String(required=True, validate=validate.Length(min=1))
    billingType = fields.String(required=True, validate=validate.OneOf(BILLING_TYPES))
    value = fields.Float(required=True, validate=validate.Range(min=0, min_inclusive=False))
    dueDate = fields.Date(required=True)
    description = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=500))
    externalReference = fields.String(load_default=None, allow_none=True)
    installmentCount = fields.Integer(load_default=None, allow_none=True, validate=validate.Range(min=2, max=12))
    installmentValue = fields.Float(load_default=None, allow_none=True)
    discount = fields.Nested(DiscountSchema, load_default=None, allow_none=True)
    interest = fields.Nested(_AmountRule, load_default=None, allow_none=True)
    fine = fields.Nested(_AmountRule, load_default=None, allow_none=True)


class PaymentUpdateSchema(PaymentSchema):
    customer = fields.String(validate=validate.Length(min=1))
    billingType = fields.String(validate=validate.OneOf(BILLING_TYPES))
    value = fields.Float(validate=validate.Range(min=0, min_inclusive=False))
    dueDate = fields.Date()


class CreditCardSchema(_GatewaySchema):
    holderName = fields.String(required=True, validate=validate.Length(min=1))
    number = fields.String(required=True, validate=validate.Regexp(r"^\d{13,19}$"))
    expiryMonth = fields.String(required=True, validate=validate.Regexp(r"^(0[1-9]|1[0-2])$"))
    expiryYear = fields.String(required=True, validate=validate.Regexp(r"^\d{4}$"))
    ccv = fields.String(required=True, validate=validate.Regexp(r"^\d{3,4}$"))


class CardHolderSchema(_GatewaySchema):
    name = fields.String(required=True, validate=validate.Length(min=1))
    email = fields.Email(required=True)
    cpfCnpj = fields.String(required=True, validate=validate.Length(min=11))
    postalCode = fields.String(required=True, validate=validate.Length(min=8))
    addressNumber = fields.String(required=True, validate=validate.Length(min=1))
    addressComplement = fields.String(load_default=None, allow_none=True)
    phone = fields.String(required=True, validate=validate.Length(min=10))
    mobilePhone = fields.String(load_default=None, allow_none=True)


class PayWithCreditCardSchema(_GatewaySchema):
    creditCard = fields.Nested(CreditCardSchema, required=True)
    holderInfo = fields.Nested(CardHolderSchema, load_default=None, allow_none=True)
    remoteIp = fields.IP(load_default=None, allow_none=True)


class RefundSchema(_GatewaySchema):
    value = fields.Float(load_default=None, allow_none=True, validate=validate.Range(min=0, min_inclusive=False))
    description = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=500))


class WebhookConfigSchema(_GatewaySchema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=120))
    url = fields.Url(required=True)
    email = fields.Email(required=True)
    events = fields.List(fields.String(), load_default=lambda: list(WEBHOOK_EVENTS_DEFAULT))
    authToken = fields.String(load_default=None, allow_none=True)
    enabled = fields.Boolean(load_default=True)
    interrupted = fields.Boolean(load_default=None, allow_none=True)


class WebhookUpdateSchema(WebhookConfigSchema):
    name = fields.String(validate=validate.Length(min=1, max=120))
    url = fields.Url()
    email = fields.Email()
    events = fields.List(fields.String())


class GatewayListQuerySchema(_GatewaySchema):
    offset = fields.Integer(load_default=0, validate=validate.Range(min=0))
    limit = fields.Integer(load_default=10, validate=validate.Range(min=1, max=100))
    name = fields.String(load_default=None)
    email = fields.String(load_default=None)
    cpfCnpj = fields.String(load_default=None)
    customer = fields.String(load_default=None)
    status = fields.String(load_default=None)
    billingType = fields.String(load_default=None)
    externalReference = fields.String(load_default=None)
