from django.contrib.auth.hashers import check_password, make_password
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Customer(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    customer_number = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=150)
    phones = models.JSONField(default=list, blank=True)
    whatsapp_number = models.CharField(max_length=15, blank=True)
    business_name = models.CharField(max_length=150, blank=True)
    area = models.CharField(max_length=100, blank=True)
    address = models.CharField(max_length=255, blank=True)
    login_id = models.CharField(max_length=100, unique=True)
    password = models.CharField(max_length=128)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    is_active = models.BooleanField(default=True)
    # None means the customer has never been through OTP verification.
    is_first_login = models.BooleanField(null=True, default=None)
    otp_hash = models.CharField(max_length=128, blank=True)
    otp_expires_at = models.DateTimeField(null=True, blank=True)
    active_device_id = models.CharField(max_length=128, null=True, blank=True)
    last_login_at = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=100, default="system")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.customer_number} - {self.name}"

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def can_login(self) -> bool:
        return self.status == self.Status.ACTIVE and self.is_active

    @property
    def primary_phone(self):
        return self.phones[0] if self.phones else None

    def set_password(self, raw_password) -> None:
        self.password = make_password(raw_password)

    def check_password(self, raw_password) -> bool:
        return check_password(raw_password, self.password)


class Loan(models.Model):
    class LoanType(models.TextChoices):
        DAILY = "Daily", "Daily"
        WEEKLY = "Weekly", "Weekly"
        MONTHLY = "Monthly", "Monthly"

    class EmiType(models.TextChoices):
        FIXED = "fixed", "Fixed"
        # Weekly and Monthly loans only: the last period collects custom_emi_amount.
        CUSTOM = "custom", "Custom last EMI"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        RENEWED = "renewed", "Renewed"
        DELETED = "deleted", "Deleted"

    customer = models.ForeignKey(Customer, related_name="loans", on_delete=models.CASCADE)
    customer_number = models.CharField(max_length=30)
    customer_name = models.CharField(max_length=150)
    loan_number = models.CharField(max_length=20)
    amount = models.DecimalField(max_digits=12, decimal_places=2, help_text="Principal disbursed")
    emi_amount = models.DecimalField(max_digits=12, decimal_places=2)
    emi_type = models.CharField(max_length=10, choices=EmiType.choices, default=EmiType.FIXED)
    custom_emi_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_loan_amount = models.DecimalField(max_digits=12, decimal_places=2)
    loan_type = models.CharField(max_length=10, choices=LoanType.choices, default=LoanType.DAILY)
    loan_days = models.PositiveIntegerField(help_text="Number of EMI periods")
    total_emi_count = models.PositiveIntegerField()
    emi_paid_count = models.PositiveIntegerField(default=0)
    total_paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    date_applied = models.DateField(default=timezone.localdate)
    emi_start_date = models.DateField()
    last_emi_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    is_completed = models.BooleanField(default=False)
    is_renewed = models.BooleanField(default=False)
    renewed_loan_number = models.CharField(max_length=20, blank=True)
    renewed_date = models.DateField(null=True, blank=True)
    original_loan_number = models.CharField(max_length=20, blank=True)
    created_by = models.CharField(max_length=100, default="system")
    last_edited_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["customer", "loan_number"], name="unique_loan_number_per_customer"),
            models.CheckConstraint(condition=Q(emi_paid_count__lte=F("total_emi_count")), name="emi_paid_within_total"),
        ]

    def __str__(self) -> str:
        return f"{self.loan_number} / customer {self.customer_number}"

    @property
    def is_mutable(self) -> bool:
        return self.status == self.Status.ACTIVE and not self.is_completed and not self.is_renewed


class EMIPayment(models.Model):
    class Status(models.TextChoices):
        PAID = "Paid", "Paid"
        PARTIAL = "Partial", "Partial"

    class Method(models.TextChoices):
        CASH = "Cash", "Cash"
        BANK_TRANSFER = "Bank Transfer", "Bank Transfer"
        UPI = "UPI", "UPI"
        CHEQUE = "Cheque", "Cheque"
        OTHER = "Other", "Other"

    loan = models.ForeignKey(Loan, related_name="emi_payments", on_delete=models.PROTECT)
    customer = models.ForeignKey(Customer, related_name="emi_payments", on_delete=models.PROTECT)
    loan_number = models.CharField(max_length=20)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PAID)
    payment_method = models.CharField(max_length=20, choices=Method.choices, default=Method.CASH)
    collected_by = models.CharField(max_length=100, default="system")
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-payment_date", "-created_at"]

    def __str__(self) -> str:
        return f"{self.loan_number} paid {self.amount} on {self.payment_date}"


class ChangeRequest(models.Model):
    """An operator's proposed change to customer or loan records, awaiting an admin decision."""

    class Type(models.TextChoices):
        CUSTOMER_ONBOARDING = "CustomerOnboarding", "Customer onboarding"
        LOAN_ADDITION = "LoanAddition", "Loan addition"
        CUSTOMER_EDIT = "CustomerEdit", "Customer edit"
        LOAN_EDIT = "LoanEdit", "Loan edit"
        LOAN_DELETION = "LoanDeletion", "Loan deletion"
        LOAN_RENEWAL = "LoanRenewal", "Loan renewal"

    class Status(models.TextChoices):
        PENDING = "Pending", "Pending"
        APPROVED = "Approved", "Approved"
        REJECTED = "Rejected", "Rejected"

    class Priority(models.TextChoices):
        LOW = "Low", "Low"
        MEDIUM = "Medium", "Medium"
        HIGH = "High", "High"
        URGENT = "Urgent", "Urgent"

    class Role(models.TextChoices):
        DATA_ENTRY = "data_entry", "Data entry operator"
        ADMIN = "admin", "Admin"
        SUPER_ADMIN = "super_admin", "Super admin"

    request_type = models.CharField(max_length=30, choices=Type.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)

    # Weak references: the target may be gone by the time the request is decided.
    customer_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    customer_number = models.CharField(max_length=30, blank=True, db_index=True)
    customer_name = models.CharField(max_length=150, blank=True)
    loan_id = models.BigIntegerField(null=True, blank=True)
    loan_number = models.CharField(max_length=20, blank=True)

    requested_data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    current_data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    description = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)

    created_by = models.CharField(max_length=100, default="data_entry_operator")
    created_by_role = models.CharField(max_length=20, choices=Role.choices, default=Role.DATA_ENTRY)
    reviewed_by = models.CharField(max_length=100, blank=True)
    reviewed_by_role = models.CharField(max_length=20, choices=Role.choices, blank=True)
    review_notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    action_taken = models.TextField(blank=True)
    outcome = models.CharField(max_length=10, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "-created_at"], name="request_status_created_idx")]

    def __str__(self) -> str:
        return f"{self.get_request_type_display()} #{self.pk} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING
