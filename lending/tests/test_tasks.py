import tempfile
from datetime import date
from decimal import Decimal
from io import StringIO
from pathlib import Path

import pandas as pd
from django.core.management import call_command
from django.test import TestCase, override_settings

from lending.models import Customer, Loan
from lending.tasks import ingest_customers_from_excel, ingest_loans_from_excel, send_otp_sms

CUSTOMER_ROWS = [
    {"customer_number": "C1", "name": "Anil", "phone": "9876543210", "area": "Market"},
    {"customer_number": "C2", "name": "Bina", "phone": "9876500000,9876511111", "area": "Station"},
    {"customer_number": None, "name": "No number", "phone": "9000000000", "area": ""},
]

LOAN_ROWS = [
    {
        "customer_number": "C1",
        "loan_number": "l1",
        "amount": 9000,
        "emi_amount": 100,
        "loan_type": "daily",
        "loan_days": 100,
        "emi_paid_count": 40,
        "date_applied": date(2024, 1, 1),
        "emi_start_date": date(2024, 1, 2),
    },
    {
        "customer_number": "C2",
        "loan_number": "L1",
        "amount": 4000,
        "emi_amount": 500,
        "loan_type": "Weekly",
        "loan_days": 10,
        "emi_paid_count": 10,
        "date_applied": date(2024, 1, 1),
        "emi_start_date": date(2024, 1, 8),
    },
    {
        "customer_number": "C2",
        "loan_number": "L2",
        "amount": 1000,
        "emi_amount": 100,
        "loan_type": "Yearly",
        "loan_days": 12,
        "emi_paid_count": 0,
        "date_applied": date(2024, 2, 1),
        "emi_start_date": date(2024, 2, 1),
    },
    {
        "customer_number": "C9",
        "loan_number": "L1",
        "amount": 1000,
        "emi_amount": 100,
        "loan_type": "Daily",
        "loan_days": 10,
        "emi_paid_count": 0,
        "date_applied": date(2024, 2, 1),
        "emi_start_date": date(2024, 2, 1),
    },
]


class LoanBookImportTests(TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.data_dir = Path(self.tmp.name)
        pd.DataFrame(CUSTOMER_ROWS).to_excel(self.data_dir / "customer_data.xlsx", index=False)
        pd.DataFrame(LOAN_ROWS).to_excel(self.data_dir / "loan_data.xlsx", index=False)

    def test_customers_are_imported_active_without_usable_password(self):
        with override_settings(DATA_DIR=self.data_dir):
            result = ingest_customers_from_excel()

        self.assertEqual(result, {"created": 2, "skipped": 1})
        bina = Customer.objects.get(customer_number="C2")
        self.assertEqual(bina.status, Customer.Status.ACTIVE)
        self.assertEqual(bina.phones, ["9876500000", "9876511111"])
        self.assertEqual(bina.login_id, "C2")
        self.assertFalse(bina.check_password(""))

    def test_loans_are_imported_with_derived_totals(self):
        with override_settings(DATA_DIR=self.data_dir):
            ingest_customers_from_excel()
            result = ingest_loans_from_excel()

        self.assertEqual(result, {"created": 2, "skipped": 2})
        anil_loan = Loan.objects.get(customer__customer_number="C1", loan_number="L1")
        self.assertEqual(anil_loan.total_loan_amount, Decimal("10000.00"))
        self.assertEqual(anil_loan.total_paid_amount, Decimal("4000.00"))
        self.assertEqual(anil_loan.loan_type, Loan.LoanType.DAILY)
        self.assertEqual(anil_loan.status, Loan.Status.ACTIVE)

        paid_off = Loan.objects.get(customer__customer_number="C2", loan_number="L1")
        self.assertEqual(paid_off.status, Loan.Status.COMPLETED)
        self.assertTrue(paid_off.is_completed)

    def test_missing_file_imports_nothing(self):
        with override_settings(DATA_DIR=self.data_dir / "absent"):
            with self.assertLogs("lending.tasks", level="ERROR"):
                result = ingest_loans_from_excel()
        self.assertEqual(result, {"created": 0, "skipped": 0})

    def test_sync_management_command(self):
        out = StringIO()
        with override_settings(DATA_DIR=self.data_dir):
            call_command("ingest_loan_book", "--sync", stdout=out)

        self.assertIn("customers created=2", out.getvalue())
        self.assertEqual(Loan.objects.count(), 2)


class OtpSmsTaskTests(TestCase):
    def test_phone_is_masked_in_logs(self):
        with self.assertLogs("lending.tasks", level="INFO") as logs:
            send_otp_sms("9876543210", "123456")

        self.assertIn("******3210", logs.output[0])
        self.assertNotIn("123456", logs.output[0])

    def test_unconfigured_gateway_is_reported_as_not_sent(self):
        with self.assertLogs("lending.tasks", level="INFO") as logs:
            send_otp_sms("9876543210", "123456")

        self.assertEqual(len(logs.records), 1)
        self.assertEqual(logs.records[0].levelname, "WARNING")
        self.assertIn("not sent", logs.output[0])
        self.assertNotIn("dispatched", logs.output[0])
