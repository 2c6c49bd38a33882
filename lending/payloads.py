"""Per-type payloads for change requests.

``ChangeRequest.request_type`` is the discriminant: each variant names the
top-level fields it requires and the serializer its ``requestedData`` must
satisfy. Stored ``requested_data`` is kept in serializer representation form
(strings for decimals and dates) and re-hydrated with the same serializer
when the request is decided.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from rest_framework import serializers

from .exceptions import ValidationError
from .models import ChangeRequest, Loan

_MIN_AMOUNT = Decimal("0.01")
_PHONE = r"^\d{10}$"


def _money(**kwargs):
    return serializers.DecimalField(max_digits=12, decimal_places=2, min_value=_MIN_AMOUNT, **kwargs)


def _check_custom_emi(attrs, loan_type_key):
    loan_type = attrs.get(loan_type_key)
    if attrs.get("emiType") != Loan.EmiType.CUSTOM or loan_type is None:
        return
    if loan_type == Loan.LoanType.DAILY:
        raise serializers.ValidationError({"emiType": "Custom EMI is only available for Weekly and Monthly loans."})
    if attrs.get("customEmiAmount") is None:
        raise serializers.ValidationError({"customEmiAmount": "Required when emiType is custom."})


class LoanTermsSerializer(serializers.Serializer):
    loanNumber = serializers.CharField(max_length=20)
    loanAmount = _money()
    emiAmount = _money()
    loanType = serializers.ChoiceField(choices=Loan.LoanType.choices)
    loanDays = serializers.IntegerField(min_value=1)
    emiType = serializers.ChoiceField(choices=Loan.EmiType.choices, default=Loan.EmiType.FIXED)
    customEmiAmount = _money(required=False, allow_null=True)
    dateApplied = serializers.DateField(required=False)
    emiStartDate = serializers.DateField(required=False)

    def validate_loanNumber(self, value):
        return value.strip().upper()

    def validate(self, attrs):
        applied = attrs.get("dateApplied")
        start = attrs.get("emiStartDate")
        if applied and start and start < applied:
            raise serializers.ValidationError({"emiStartDate": "EMI start date cannot be before loan date."})
        _check_custom_emi(attrs, "loanType")
        return attrs


class LoanEditSerializer(serializers.Serializer):
    loanNumber = serializers.CharField(max_length=20, required=False)
    amount = _money(required=False)
    emiAmount = _money(required=False)
    loanType = serializers.ChoiceField(choices=Loan.LoanType.choices, required=False)
    loanDays = serializers.IntegerField(min_value=1, required=False)
    emiType = serializers.ChoiceField(choices=Loan.EmiType.choices, required=False)
    customEmiAmount = _money(required=False, allow_null=True)
    dateApplied = serializers.DateField(required=False)
    emiStartDate = serializers.DateField(required=False)

    def validate_loanNumber(self, value):
        return value.strip().upper()

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("requestedData must change at least one loan field.")
        # The merged loan is checked again when the edit is approved.
        _check_custom_emi(attrs, "loanType")
        return attrs


class CustomerEditSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    phones = serializers.ListField(child=serializers.RegexField(_PHONE), min_length=1, required=False)
    whatsappNumber = serializers.RegexField(_PHONE, required=False, allow_blank=True)
    businessName = serializers.CharField(max_length=150, required=False)
    area = serializers.CharField(max_length=100, required=False)
    address = serializers.CharField(max_length=255, required=False)
    customerNumber = serializers.CharField(max_length=30, required=False)
    loginId = serializers.CharField(max_length=100, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("requestedData must change at least one customer field.")
        return attrs


class LoanRenewalSerializer(serializers.Serializer):
    newLoanAmount = _money()
    newEmiAmount = _money()
    newLoanType = serializers.ChoiceField(choices=Loan.LoanType.choices)
    newLoanDays = serializers.IntegerField(min_value=1)
    emiType = serializers.ChoiceField(choices=Loan.EmiType.choices, default=Loan.EmiType.FIXED)
    customEmiAmount = _money(required=False, allow_null=True)
    emiStartDate = serializers.DateField(required=False)

    def validate(self, attrs):
        _check_custom_emi(attrs, "newLoanType")
        return attrs


class OnboardingSerializer(serializers.Serializer):
    """Optional first loan booked when the customer is approved."""

    loan = LoanTermsSerializer(required=False)


@dataclass(frozen=True)
class PayloadVariant:
    required: tuple
    data_serializer: Optional[type] = None


VARIANTS = {
    ChangeRequest.Type.CUSTOMER_ONBOARDING.value: PayloadVariant(
        ("customerNumber", "customerName"), OnboardingSerializer
    ),
    ChangeRequest.Type.LOAN_ADDITION.value: PayloadVariant(
        ("customerId", "customerName", "requestedData"), LoanTermsSerializer
    ),
    ChangeRequest.Type.CUSTOMER_EDIT.value: PayloadVariant(
        ("customerId", "customerName", "requestedData"), CustomerEditSerializer
    ),
    ChangeRequest.Type.LOAN_EDIT.value: PayloadVariant(
        ("loanId", "customerId", "customerName", "loanNumber", "requestedData"), LoanEditSerializer
    ),
    ChangeRequest.Type.LOAN_DELETION.value: PayloadVariant(("loanId", "customerId", "customerName", "loanNumber")),
    ChangeRequest.Type.LOAN_RENEWAL.value: PayloadVariant(
        ("loanId", "customerId", "customerName", "loanNumber", "requestedData"), LoanRenewalSerializer
    ),
}


@dataclass
class Submission:
    request_type: str
    customer_id: Optional[int]
    customer_number: str
    customer_name: str
    loan_id: Optional[int]
    loan_number: str
    requested_data: dict
    description: str
    priority: str


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return not value
    return False


def _optional_int(payload: dict, key: str) -> Optional[int]:
    value = payload.get(key)
    if _is_blank(value):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer id", errors={key: ["A valid integer is required."]})


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return "" if value is None else str(value).strip()


def validate_payload(request_type, payload: dict) -> Submission:
    variant = VARIANTS.get(request_type) if isinstance(request_type, str) else None
    if variant is None:
        valid = ", ".join(ChangeRequest.Type.values)
        raise ValidationError(
            f"Invalid request type. Must be one of: {valid}",
            errors={"type": [f"'{request_type}' is not a valid request type."]},
        )

    missing = [name for name in variant.required if _is_blank(payload.get(name))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing_fields=missing)

    requested = {}
    raw = payload.get("requestedData")
    optional_data = "requestedData" not in variant.required
    if variant.data_serializer is not None and not (optional_data and _is_blank(raw)):
        if not isinstance(raw, dict):
            raise ValidationError("requestedData must be an object", errors={"requestedData": ["Expected an object."]})
        serializer = variant.data_serializer(data=raw)
        if not serializer.is_valid():
            raise ValidationError("Invalid requestedData", errors={"requestedData": serializer.errors})
        requested = dict(serializer.data)

    priority = _text(payload, "priority") or ChangeRequest.Priority.MEDIUM
    if priority not in ChangeRequest.Priority.values:
        raise ValidationError(f"Invalid priority '{priority}'", errors={"priority": ["Not a valid choice."]})

    loan_number = _text(payload, "loanNumber").upper()
    if not loan_number and request_type == ChangeRequest.Type.LOAN_ADDITION:
        loan_number = requested["loanNumber"]

    return Submission(
        request_type=request_type,
        customer_id=_optional_int(payload, "customerId"),
        customer_number=_text(payload, "customerNumber"),
        customer_name=_text(payload, "customerName"),
        loan_id=_optional_int(payload, "loanId"),
        loan_number=loan_number,
        requested_data=requested,
        description=_text(payload, "description"),
        priority=priority,
    )


def parse_requested_data(change: ChangeRequest) -> dict:
    """Typed view of a stored request's ``requested_data``."""
    variant = VARIANTS[change.request_type]
    if variant.data_serializer is None:
        return {}
    serializer = variant.data_serializer(data=change.requested_data)
    if not serializer.is_valid():
        raise ValidationError(
            f"Stored requestedData for request {change.pk} is no longer valid",
            errors={"requestedData": serializer.errors},
        )
    return serializer.validated_data
