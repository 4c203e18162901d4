from marshmallow import EXCLUDE, fields, validate, validates, validates_schema, ValidationError

from prorentals.extensions.ma import ma
from prorentals.models.damage import CATEGORIES, RESPONSIBLE_PARTIES, SEVERITIES
from prorentals.models.damage_billing import BILLING_METHODS
from prorentals.models.damage_report import REJECTION_CATEGORIES, REPORT_STATUSES


class _Lenient(ma.Schema):
    class Meta:
        unknown = EXCLUDE


class ReportItemSchema(_Lenient):
    """
    Inline damage item of a report.

    Drafts may carry incomplete items (empty name/description/reporter);
    completeness is enforced on submit. A non-empty description still
    needs 10 characters.
    """

    item_name = fields.String(data_key="itemName", load_default="")
    description = fields.String(load_default="")
    severity = fields.String(required=True, validate=validate.OneOf(SEVERITIES))
    category = fields.String(required=True, validate=validate.OneOf(CATEGORIES))
    repair_cost = fields.Float(data_key="repairCost", required=True, validate=validate.Range(min=0))
    photos = fields.List(fields.String(validate=validate.Length(max=500)), load_default=list)
    reported_by = fields.String(data_key="reportedBy", load_default="", validate=validate.Length(max=64))
    reported_at = fields.DateTime(data_key="reportedAt", load_default=None)
    responsible = fields.String(load_default=None, allow_none=True, validate=validate.OneOf(RESPONSIBLE_PARTIES))
    notes = fields.String(load_default=None, allow_none=True)

    @validates("description")
    def validate_description(self, value, **kwargs):
        if value and len(value.strip()) < 10:
            raise ValidationError("Description must be at least 10 characters.")


class _Versioned(_Lenient):
    expected_version = fields.Integer(data_key="expectedVersion", load_default=None, allow_none=True)


class ReportCreateSchema(_Lenient):
    rental_id = fields.String(data_key="rentalId", required=True, validate=validate.Length(min=1, max=64))
    damages = fields.List(fields.Nested(ReportItemSchema), load_default=list)
    damage_ids = fields.List(fields.Integer(), data_key="damageIds", load_default=list)
    total_cost = fields.Float(data_key="totalCost", load_default=None, allow_none=True, validate=validate.Range(min=0))
    notes = fields.String(load_default=None, allow_none=True)

    @validates_schema
    def validate_unique_sources(self, data, **kwargs):
        ids = data.get("damage_ids") or []
        if len(ids) != len(set(ids)):
            raise ValidationError("Duplicate damage ids.", field_name="damageIds")


class ReportUpdateSchema(_Versioned):
    notes = fields.String(allow_none=True)
    damages = fields.List(fields.Nested(ReportItemSchema))


class ReportSubmitSchema(_Versioned):
    notes = fields.String(load_default=None, allow_none=True)


class AdjustmentSchema(_Lenient):
    damage_id = fields.Integer(data_key="damageId", required=True)
    new_cost = fields.Float(data_key="newCost", required=True, validate=validate.Range(min=0))
    reason = fields.String(required=True, validate=validate.Length(min=1, max=500))


class ReportApprovalSchema(_Versioned):
    notes = fields.String(load_default=None, allow_none=True)
    partial_approval = fields.Boolean(data_key="partialApproval", load_default=False)
    approved_damages = fields.List(fields.Integer(), data_key="approvedDamages", load_default=None, allow_none=True)
    adjustments = fields.List(fields.Nested(AdjustmentSchema), load_default=list)

    @validates_schema
    def validate_adjustments_and_subset(self, data, **kwargs):
        seen = set()
        duplicates = []
        for adj in data.get("adjustments") or []:
            if adj["damage_id"] in seen:
                duplicates.append(adj["damage_id"])
            seen.add(adj["damage_id"])
        if duplicates:
            raise ValidationError(
                f"Each damage can be adjusted once per approval (duplicated: {sorted(set(duplicates))}).",
                field_name="adjustments",
            )
        if data.get("partial_approval") and data.get("approved_damages") is None:
            raise ValidationError(
                "approvedDamages is required for a partial approval.",
                field_name="approvedDamages",
            )


class ReportRejectionSchema(_Versioned):
    reason = fields.String(required=True, validate=validate.Length(min=10, max=2000))
    category = fields.String(required=True, validate=validate.OneOf(REJECTION_CATEGORIES))
    feedback = fields.String(load_default=None, allow_none=True)
    suggested_actions = fields.List(fields.String(), data_key="suggestedActions", load_default=list)
    allow_resubmission = fields.Boolean(data_key="allowResubmission", load_default=True)
    requires_inspection = fields.Boolean(data_key="requiresInspection", load_default=False)


class AdditionalFeeSchema(_Lenient):
    name = fields.String(required=True, validate=validate.Length(min=1, max=120))
    amount = fields.Float(required=True, validate=validate.Range(min=0))
    description = fields.String(load_default=None, allow_none=True)


class ReportBillingSchema(_Versioned):
    billing_method = fields.String(data_key="billingMethod", required=True, validate=validate.OneOf(BILLING_METHODS))
    due_date = fields.Date(data_key="dueDate", required=True)
    description = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=500))
    installments = fields.Integer(load_default=1, validate=validate.Range(min=1, max=12))
    discount = fields.Float(load_default=0, validate=validate.Range(min=0, max=100))
    additional_fees = fields.List(fields.Nested(AdditionalFeeSchema), data_key="additionalFees", load_default=list)
    notes = fields.String(load_default=None, allow_none=True)
    send_notification = fields.Boolean(data_key="sendNotification", load_default=True)
    customer = fields.String(load_default=None, allow_none=True)

    @validates_schema
    def validate_gateway_customer(self, data, **kwargs):
        if data.get("billing_method") == "asaas" and not data.get("customer"):
            raise ValidationError("customer is required when billing through Asaas.", field_name="customer")


class ReportListQuerySchema(_Lenient):
    rental_id = fields.String(data_key="rentalId", load_default=None)
    status = fields.String(load_default=None, validate=validate.OneOf(REPORT_STATUSES))
    created_by = fields.String(data_key="createdBy", load_default=None)
    page = fields.Integer(load_default=1, validate=validate.Range(min=1))
    limit = fields.Integer(load_default=10, validate=validate.Range(min=1, max=100))
