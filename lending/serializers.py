from rest_framework import serializers

from . import lifecycle
from .models import ChangeRequest, Customer, EMIPayment, Loan
from .payloads import LoanTermsSerializer

_PHONE = r"^\d{10}$"


class RequesterSerializer(serializers.Serializer):
    createdBy = serializers.CharField(max_length=100, required=False, default="data_entry_operator")
    createdByRole = serializers.ChoiceField(
        choices=ChangeRequest.Role.choices, required=False, default=ChangeRequest.Role.DATA_ENTRY
    )


class DecisionSerializer(serializers.Serializer):
    # Left as free text so an unknown action surfaces as the same error as elsewhere.
    action = serializers.CharField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    processedBy = serializers.CharField(max_length=100, required=False, default="admin")


class RegisterCustomerSerializer(serializers.Serializer):
    customerNumber = serializers.CharField(max_length=30, source="customer_number")
    name = serializers.CharField(max_length=150)
    phones = serializers.ListField(child=serializers.RegexField(_PHONE), min_length=1)
    whatsappNumber = serializers.RegexField(_PHONE, required=False, allow_blank=True, source="whatsapp_number")
    businessName = serializers.CharField(max_length=150, required=False, allow_blank=True, source="business_name")
    area = serializers.CharField(max_length=100, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    loginId = serializers.CharField(max_length=100, source="login_id")
    password = serializers.CharField(min_length=6, write_only=True)
    loan = LoanTermsSerializer(required=False)


class CustomerLoginSerializer(serializers.Serializer):
    loginId = serializers.CharField()
    password = serializers.CharField()


class MobileLoginSerializer(CustomerLoginSerializer):
    deviceId = serializers.CharField(max_length=128)


class VerifyOtpSerializer(serializers.Serializer):
    loginId = serializers.CharField()
    otp = serializers.RegexField(r"^\d{6}$")


class LogoutSerializer(serializers.Serializer):
    deviceId = serializers.CharField(max_length=128)


class EMIPaymentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    paymentDate = serializers.DateField(required=False)
    collectedBy = serializers.CharField(max_length=100, required=False, default="system")
    paymentMethod = serializers.ChoiceField(
        choices=EMIPayment.Method.choices, required=False, default=EMIPayment.Method.CASH
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class CustomerProfileSerializer(serializers.ModelSerializer):
    customerNumber = serializers.CharField(source="customer_number")
    whatsappNumber = serializers.CharField(source="whatsapp_number")
    businessName = serializers.CharField(source="business_name")
    loginId = serializers.CharField(source="login_id")
    isActive = serializers.BooleanField(source="is_active")
    lastLoginAt = serializers.DateTimeField(source="last_login_at")

    class Meta:
        model = Customer
        fields = [
            "id",
            "customerNumber",
            "name",
            "phones",
            "whatsappNumber",
            "businessName",
            "area",
            "address",
            "loginId",
            "status",
            "isActive",
            "lastLoginAt",
        ]


class LoanSummarySerializer(serializers.ModelSerializer):
    """A loan together with the figures derived from its counters."""

    loanNumber = serializers.CharField(source="loan_number")
    emiAmount = serializers.DecimalField(source="emi_amount", max_digits=12, decimal_places=2)
    emiType = serializers.CharField(source="emi_type")
    customEmiAmount = serializers.DecimalField(
        source="custom_emi_amount", max_digits=12, decimal_places=2, allow_null=True
    )
    totalLoanAmount = serializers.DecimalField(source="total_loan_amount", max_digits=12, decimal_places=2)
    loanType = serializers.CharField(source="loan_type")
    loanDays = serializers.IntegerField(source="loan_days")
    totalEmiCount = serializers.IntegerField(source="total_emi_count")
    emiPaidCount = serializers.IntegerField(source="emi_paid_count")
    totalPaidAmount = serializers.DecimalField(source="total_paid_amount", max_digits=12, decimal_places=2)
    dateApplied = serializers.DateField(source="date_applied")
    emiStartDate = serializers.DateField(source="emi_start_date")
    isRenewed = serializers.BooleanField(source="is_renewed")
    progressPercentage = serializers.SerializerMethodField()
    remainingAmount = serializers.SerializerMethodField()
    remainingEmis = serializers.SerializerMethodField()
    nextEmiDate = serializers.SerializerMethodField()
    endDate = serializers.SerializerMethodField()
    displayDateApplied = serializers.SerializerMethodField()

    class Meta:
        model = Loan
        fields = [
            "id",
            "loanNumber",
            "amount",
            "emiAmount",
            "emiType",
            "customEmiAmount",
            "totalLoanAmount",
            "loanType",
            "loanDays",
            "totalEmiCount",
            "emiPaidCount",
            "totalPaidAmount",
            "dateApplied",
            "emiStartDate",
            "status",
            "isRenewed",
            "progressPercentage",
            "remainingAmount",
            "remainingEmis",
            "nextEmiDate",
            "endDate",
            "displayDateApplied",
        ]

    def get_progressPercentage(self, loan):
        return lifecycle.progress_percentage(loan)

    def get_remainingAmount(self, loan):
        return str(lifecycle.remaining_amount(loan).quantize(lifecycle.CENTS))

    def get_remainingEmis(self, loan):
        return lifecycle.remaining_emis(loan)

    def get_nextEmiDate(self, loan):
        return lifecycle.format_display_date(lifecycle.next_emi_date(loan))

    def get_endDate(self, loan):
        return lifecycle.format_display_date(lifecycle.end_date(loan))

    def get_displayDateApplied(self, loan):
        return lifecycle.format_display_date(loan.date_applied)


class ChangeRequestSerializer(serializers.ModelSerializer):
    type = serializers.CharField(source="request_type")
    customerId = serializers.IntegerField(source="customer_id")
    customerNumber = serializers.CharField(source="customer_number")
    customerName = serializers.CharField(source="customer_name")
    loanId = serializers.IntegerField(source="loan_id")
    loanNumber = serializers.CharField(source="loan_number")
    requestedData = serializers.JSONField(source="requested_data")
    currentData = serializers.JSONField(source="current_data")
    createdBy = serializers.CharField(source="created_by")
    createdByRole = serializers.CharField(source="created_by_role")
    reviewedBy = serializers.CharField(source="reviewed_by")
    reviewNotes = serializers.CharField(source="review_notes")
    rejectionReason = serializers.CharField(source="rejection_reason")
    actionTaken = serializers.CharField(source="action_taken")
    createdAt = serializers.DateTimeField(source="created_at")
    reviewedAt = serializers.DateTimeField(source="reviewed_at")

    class Meta:
        model = ChangeRequest
        fields = [
            "id",
            "type",
            "status",
            "customerId",
            "customerNumber",
            "customerName",
            "loanId",
            "loanNumber",
            "requestedData",
            "currentData",
            "description",
            "priority",
            "createdBy",
            "createdByRole",
            "reviewedBy",
            "reviewNotes",
            "rejectionReason",
            "actionTaken",
            "outcome",
            "createdAt",
            "reviewedAt",
        ]


class EMIPaymentSerializer(serializers.ModelSerializer):
    loanId = serializers.IntegerField(source="loan_id")
    loanNumber = serializers.CharField(source="loan_number")
    paymentDate = serializers.DateField(source="payment_date")
    paymentMethod = serializers.CharField(source="payment_method")
    collectedBy = serializers.CharField(source="collected_by")

    class Meta:
        model = EMIPayment
        fields = ["id", "loanId", "loanNumber", "amount", "paymentDate", "status", "paymentMethod", "collectedBy", "notes"]
