import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_number", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=150)),
                ("phones", models.JSONField(blank=True, default=list)),
                ("whatsapp_number", models.CharField(blank=True, max_length=15)),
                ("business_name", models.CharField(blank=True, max_length=150)),
                ("area", models.CharField(blank=True, max_length=100)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("login_id", models.CharField(max_length=100, unique=True)),
                ("password", models.CharField(max_length=128)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("is_first_login", models.BooleanField(default=None, null=True)),
                ("otp_hash", models.CharField(blank=True, max_length=128)),
                ("otp_expires_at", models.DateTimeField(blank=True, null=True)),
                ("active_device_id", models.CharField(blank=True, max_length=128, null=True)),
                ("last_login_at", models.DateTimeField(blank=True, null=True)),
                ("created_by", models.CharField(default="system", max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="ChangeRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "request_type",
                    models.CharField(
                        choices=[
                            ("CustomerOnboarding", "Customer onboarding"),
                            ("LoanAddition", "Loan addition"),
                            ("CustomerEdit", "Customer edit"),
                            ("LoanEdit", "Loan edit"),
                            ("LoanDeletion", "Loan deletion"),
                            ("LoanRenewal", "Loan renewal"),
                        ],
                        max_length=30,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("Pending", "Pending"), ("Approved", "Approved"), ("Rejected", "Rejected")],
                        default="Pending",
                        max_length=10,
                    ),
                ),
                ("customer_id", models.BigIntegerField(blank=True, db_index=True, null=True)),
                ("customer_number", models.CharField(blank=True, db_index=True, max_length=30)),
                ("customer_name", models.CharField(blank=True, max_length=150)),
                ("loan_id", models.BigIntegerField(blank=True, null=True)),
                ("loan_number", models.CharField(blank=True, max_length=20)),
                (
                    "requested_data",
                    models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder),
                ),
                (
                    "current_data",
                    models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder),
                ),
                ("description", models.TextField(blank=True)),
                (
                    "priority",
                    models.CharField(
                        choices=[("Low", "Low"), ("Medium", "Medium"), ("High", "High"), ("Urgent", "Urgent")],
                        default="Medium",
                        max_length=10,
                    ),
                ),
                ("created_by", models.CharField(default="data_entry_operator", max_length=100)),
                (
                    "created_by_role",
                    models.CharField(
                        choices=[
                            ("data_entry", "Data entry operator"),
                            ("admin", "Admin"),
                            ("super_admin", "Super admin"),
                        ],
                        default="data_entry",
                        max_length=20,
                    ),
                ),
                ("reviewed_by", models.CharField(blank=True, max_length=100)),
                (
                    "reviewed_by_role",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("data_entry", "Data entry operator"),
                            ("admin", "Admin"),
                            ("super_admin", "Super admin"),
                        ],
                        max_length=20,
                    ),
                ),
                ("review_notes", models.TextField(blank=True)),
                ("rejection_reason", models.TextField(blank=True)),
                ("action_taken", models.TextField(blank=True)),
                ("outcome", models.CharField(blank=True, max_length=10)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "-created_at"], name="request_status_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="Loan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_number", models.CharField(max_length=30)),
                ("customer_name", models.CharField(max_length=150)),
                ("loan_number", models.CharField(max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Principal disbursed", max_digits=12)),
                ("emi_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_loan_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "loan_type",
                    models.CharField(
                        choices=[("Daily", "Daily"), ("Weekly", "Weekly"), ("Monthly", "Monthly")],
                        default="Daily",
                        max_length=10,
                    ),
                ),
                ("loan_days", models.PositiveIntegerField(help_text="Number of EMI periods")),
                ("total_emi_count", models.PositiveIntegerField()),
                ("emi_paid_count", models.PositiveIntegerField(default=0)),
                ("total_paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("date_applied", models.DateField(default=django.utils.timezone.localdate)),
                ("emi_start_date", models.DateField()),
                ("last_emi_date", models.DateField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("renewed", "Renewed"),
                            ("deleted", "Deleted"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=10,
                    ),
                ),
                ("is_completed", models.BooleanField(default=False)),
                ("is_renewed", models.BooleanField(default=False)),
                ("renewed_loan_number", models.CharField(blank=True, max_length=20)),
                ("renewed_date", models.DateField(blank=True, null=True)),
                ("original_loan_number", models.CharField(blank=True, max_length=20)),
                ("created_by", models.CharField(default="system", max_length=100)),
                ("last_edited_by", models.CharField(blank=True, max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="loans", to="lending.customer"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("customer", "loan_number"), name="unique_loan_number_per_customer"),
                    models.CheckConstraint(
                        condition=models.Q(("emi_paid_count__lte", models.F("total_emi_count"))),
                        name="emi_paid_within_total",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EMIPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("loan_number", models.CharField(max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payment_date", models.DateField()),
                (
                    "status",
                    models.CharField(choices=[("Paid", "Paid"), ("Partial", "Partial")], default="Paid", max_length=10),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("Cash", "Cash"),
                            ("Bank Transfer", "Bank Transfer"),
                            ("UPI", "UPI"),
                            ("Cheque", "Cheque"),
                            ("Other", "Other"),
                        ],
                        default="Cash",
                        max_length=20,
                    ),
                ),
                ("collected_by", models.CharField(default="system", max_length=100)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="emi_payments", to="lending.customer"
                    ),
                ),
                (
                    "loan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="emi_payments", to="lending.loan"
                    ),
                ),
            ],
            options={
                "ordering": ["-payment_date", "-created_at"],
            },
        ),
    ]
