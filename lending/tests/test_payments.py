from datetime import date
from decimal import Decimal

from unittest import mock

from django.test import TestCase

from lending.exceptions import InvalidStateError, NotFoundError, ValidationError
from lending.models import EMIPayment, Loan
from lending.payments import record_emi_payment

from .factories import make_customer, make_loan


class RecordEmiPaymentTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")
        self.loan = make_loan(self.customer, "L1", loan_days=3)

    def test_payment_advances_counters(self):
        payment = record_emi_payment(self.loan.pk, Decimal("100"), payment_date=date(2024, 1, 2), collected_by="ravi")

        self.assertEqual(payment.status, EMIPayment.Status.PAID)
        self.assertEqual(payment.loan_number, "L1")
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.emi_paid_count, 1)
        self.assertEqual(self.loan.total_paid_amount, Decimal("100.00"))
        self.assertEqual(self.loan.last_emi_date, date(2024, 1, 2))
        self.assertEqual(self.loan.status, Loan.Status.ACTIVE)

    def test_short_payment_is_partial(self):
        payment = record_emi_payment(self.loan.pk, Decimal("40"))
        self.assertEqual(payment.status, EMIPayment.Status.PARTIAL)

    def test_last_emi_completes_the_loan(self):
        for _ in range(3):
            record_emi_payment(self.loan.pk, Decimal("100"))

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.emi_paid_count, 3)
        self.assertEqual(self.loan.status, Loan.Status.COMPLETED)
        self.assertTrue(self.loan.is_completed)

        with self.assertRaises(InvalidStateError):
            record_emi_payment(self.loan.pk, Decimal("100"))
        self.assertEqual(EMIPayment.objects.filter(loan=self.loan).count(), 3)

    def test_fully_paid_loan_with_stale_status_takes_no_more_payments(self):
        Loan.objects.filter(pk=self.loan.pk).update(emi_paid_count=3)

        with self.assertRaises(InvalidStateError):
            record_emi_payment(self.loan.pk, Decimal("100"))
        self.assertFalse(EMIPayment.objects.exists())

    def test_closed_or_missing_loans(self):
        renewed = make_loan(self.customer, "L2", status=Loan.Status.RENEWED, is_renewed=True)
        with self.assertRaises(InvalidStateError):
            record_emi_payment(renewed.pk, Decimal("100"))
        with self.assertRaises(NotFoundError):
            record_emi_payment(self.loan.pk + 100, Decimal("100"))

    def test_amount_must_be_positive(self):
        with self.assertRaises(ValidationError):
            record_emi_payment(self.loan.pk, Decimal("0"))

    def test_increment_is_conditional_on_the_stored_count(self):
        stale = Loan.objects.get(pk=self.loan.pk)
        Loan.objects.filter(pk=self.loan.pk).update(emi_paid_count=3)
        locked = mock.Mock()
        locked.filter.return_value.first.return_value = stale

        with mock.patch.object(Loan.objects, "select_for_update", return_value=locked):
            with self.assertRaises(InvalidStateError):
                record_emi_payment(self.loan.pk, Decimal("100"))

        self.assertFalse(EMIPayment.objects.exists())
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.emi_paid_count, 3)
        self.assertEqual(self.loan.total_paid_amount, Decimal("0.00"))


class CustomLastEmiPaymentTests(TestCase):
    def setUp(self):
        customer = make_customer("C1")
        self.loan = make_loan(
            customer,
            "L1",
            loan_days=3,
            loan_type=Loan.LoanType.WEEKLY,
            emi_type=Loan.EmiType.CUSTOM,
            custom_emi_amount=Decimal("250.00"),
            total_loan_amount=Decimal("450.00"),
        )

    def test_regular_periods_are_checked_against_emi_amount(self):
        payment = record_emi_payment(self.loan.pk, Decimal("100"))
        self.assertEqual(payment.status, EMIPayment.Status.PAID)

    def test_last_period_is_checked_against_custom_amount(self):
        Loan.objects.filter(pk=self.loan.pk).update(emi_paid_count=2)

        payment = record_emi_payment(self.loan.pk, Decimal("150"))

        self.assertEqual(payment.status, EMIPayment.Status.PARTIAL)

    def test_full_custom_payment_completes_the_loan(self):
        Loan.objects.filter(pk=self.loan.pk).update(emi_paid_count=2)

        payment = record_emi_payment(self.loan.pk, Decimal("250"))

        self.assertEqual(payment.status, EMIPayment.Status.PAID)
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, Loan.Status.COMPLETED)
