from datetime import date
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from lending import workflow
from lending.effects import Outcome, next_loan_number
from lending.exceptions import InvalidStateError, ValidationError
from lending.models import ChangeRequest, Customer, EMIPayment, Loan

from .factories import make_customer, make_loan
from .test_workflow import OPERATOR, loan_terms


class OnboardingEffectTests(TestCase):
    def submit(self, number="C5", customer_id=None):
        payload = {"customerNumber": number, "customerName": "Priya", "customerId": customer_id}
        return workflow.create_request("CustomerOnboarding", payload, OPERATOR)

    def test_approve_only_activates_the_customer(self):
        customer = make_customer("C5", status=Customer.Status.PENDING, name="Priya", area="North")
        change = self.submit("C5")

        workflow.transition(change.pk, "approve")

        customer.refresh_from_db()
        self.assertEqual(customer.status, Customer.Status.ACTIVE)
        self.assertEqual(customer.name, "Priya")
        self.assertEqual(customer.area, "North")

    def test_approve_falls_back_to_customer_id(self):
        customer = make_customer("C6", status=Customer.Status.PENDING)
        change = self.submit("C-unknown", customer_id=customer.pk)

        workflow.transition(change.pk, "approve")

        customer.refresh_from_db()
        self.assertEqual(customer.status, Customer.Status.ACTIVE)

    def test_approve_with_missing_customer_is_a_warning(self):
        change = self.submit("C404")

        result = workflow.transition(change.pk, "approve")

        self.assertTrue(result.outcome.is_warning)
        self.assertEqual(result.request.status, ChangeRequest.Status.APPROVED)
        self.assertEqual(result.request.outcome, Outcome.WARNING)
        self.assertFalse(Customer.objects.exists())

    def test_reject_deletes_pending_customer(self):
        make_customer("C5", status=Customer.Status.PENDING)
        change = self.submit("C5")

        result = workflow.transition(change.pk, "reject")

        self.assertEqual(result.outcome.kind, Outcome.APPLIED)
        self.assertFalse(Customer.objects.filter(customer_number="C5").exists())

    def test_reject_keeps_an_already_active_customer(self):
        make_customer("C5")
        change = self.submit("C5")

        result = workflow.transition(change.pk, "reject")

        self.assertTrue(result.outcome.is_warning)
        self.assertTrue(Customer.objects.filter(customer_number="C5").exists())


    def test_reject_keeps_a_pending_customer_with_loans(self):
        customer = make_customer("C5", status=Customer.Status.PENDING)
        loan = make_loan(customer, "L1")
        EMIPayment.objects.create(
            loan=loan, customer=customer, loan_number="L1", amount=Decimal("100"), payment_date=date(2024, 1, 2)
        )
        change = self.submit("C5")

        result = workflow.transition(change.pk, "reject")

        self.assertTrue(result.outcome.is_warning)
        self.assertEqual(result.request.status, ChangeRequest.Status.REJECTED)
        self.assertTrue(Customer.objects.filter(customer_number="C5").exists())
        self.assertEqual(EMIPayment.objects.count(), 1)

    def test_approve_books_the_requested_first_loan(self):
        customer = make_customer("C5", status=Customer.Status.PENDING)
        payload = {
            "customerNumber": "C5",
            "customerName": customer.name,
            "requestedData": {"loan": loan_terms(loanType="Monthly")},
        }
        change = workflow.create_request("CustomerOnboarding", payload, OPERATOR)

        result = workflow.transition(change.pk, "approve")

        customer.refresh_from_db()
        loan = Loan.objects.get(customer=customer)
        self.assertEqual(customer.status, Customer.Status.ACTIVE)
        self.assertEqual(result.outcome.changes["loan_id"], loan.pk)
        self.assertEqual(loan.loan_number, "L2")
        self.assertEqual(loan.loan_type, Loan.LoanType.MONTHLY)
        self.assertEqual(loan.total_loan_amount, Decimal("5500.00"))
        self.assertEqual(loan.created_by, "asha")

    def test_approve_without_loan_terms_creates_no_loan(self):
        make_customer("C5", status=Customer.Status.PENDING)

        workflow.transition(self.submit("C5").pk, "approve")

        self.assertFalse(Loan.objects.exists())


class LoanAdditionEffectTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")

    def submit(self, **terms):
        payload = {
            "customerId": self.customer.pk,
            "customerNumber": "C1",
            "customerName": self.customer.name,
            "requestedData": loan_terms(**terms),
        }
        return workflow.create_request("LoanAddition", payload, OPERATOR)

    def test_approve_creates_loan_with_derived_totals(self):
        change = self.submit()

        result = workflow.transition(change.pk, "approve")

        loan = Loan.objects.get(customer=self.customer, loan_number="L2")
        self.assertEqual(result.outcome.changes["loan_id"], loan.pk)
        self.assertEqual(loan.total_loan_amount, Decimal("5500.00"))
        self.assertEqual(loan.total_emi_count, 10)
        self.assertEqual(loan.emi_start_date, date(2024, 2, 2))
        self.assertEqual(loan.created_by, "asha")

    def test_duplicate_loan_number_keeps_request_pending(self):
        make_loan(self.customer, "L2")
        change = self.submit()

        with self.assertRaises(ValidationError):
            workflow.transition(change.pk, "approve")

        change.refresh_from_db()
        self.assertTrue(change.is_pending)
        self.assertEqual(Loan.objects.count(), 1)

    def test_missing_customer_is_a_warning(self):
        change = self.submit()
        Customer.objects.filter(pk=self.customer.pk).delete()

        result = workflow.transition(change.pk, "approve")

        self.assertTrue(result.outcome.is_warning)
        self.assertFalse(Loan.objects.exists())

    def test_pending_customer_cannot_get_a_loan(self):
        Customer.objects.filter(pk=self.customer.pk).update(status=Customer.Status.PENDING)
        change = self.submit()

        with self.assertRaises(InvalidStateError):
            workflow.transition(change.pk, "approve")

        change.refresh_from_db()
        self.assertTrue(change.is_pending)
        self.assertFalse(Loan.objects.exists())

    def test_custom_last_emi_sets_the_total(self):
        change = self.submit(loanType="Weekly", emiType="custom", customEmiAmount="300")

        workflow.transition(change.pk, "approve")

        loan = Loan.objects.get(customer=self.customer, loan_number="L2")
        self.assertEqual(loan.emi_type, Loan.EmiType.CUSTOM)
        self.assertEqual(loan.custom_emi_amount, Decimal("300.00"))
        self.assertEqual(loan.total_loan_amount, Decimal("5250.00"))

    def test_reject_creates_nothing(self):
        change = self.submit()

        workflow.transition(change.pk, "reject")

        self.assertFalse(Loan.objects.exists())


class CustomerEditEffectTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")
        self.loan = make_loan(self.customer, "L1")

    def submit(self, **changes):
        payload = {"customerId": self.customer.pk, "customerName": self.customer.name, "requestedData": changes}
        return workflow.create_request("CustomerEdit", payload, OPERATOR)

    def test_merges_fields_and_propagates_to_loans(self):
        change = self.submit(name="Renamed", customerNumber="C100", phones=["9000000001"])

        workflow.transition(change.pk, "approve")

        self.customer.refresh_from_db()
        self.loan.refresh_from_db()
        self.assertEqual(self.customer.name, "Renamed")
        self.assertEqual(self.customer.phones, ["9000000001"])
        self.assertEqual(self.loan.customer_number, "C100")
        self.assertEqual(self.loan.customer_name, "Renamed")

    def test_login_id_collision_is_validation_error(self):
        make_customer("C2", login_id="taken")
        change = self.submit(loginId="taken")

        with self.assertRaises(ValidationError):
            workflow.transition(change.pk, "approve")


class LoanEditEffectTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")
        self.loan = make_loan(self.customer, "L1", emi_paid_count=4)

    def submit(self, loan=None, **changes):
        loan = loan or self.loan
        payload = {
            "loanId": loan.pk,
            "customerId": self.customer.pk,
            "customerName": self.customer.name,
            "loanNumber": loan.loan_number,
            "requestedData": changes,
        }
        return workflow.create_request("LoanEdit", payload, OPERATOR)

    def test_merge_recomputes_totals(self):
        change = self.submit(emiAmount="120", loanDays=12)

        workflow.transition(change.pk, "approve", reviewer="meena")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.emi_amount, Decimal("120.00"))
        self.assertEqual(self.loan.total_emi_count, 12)
        self.assertEqual(self.loan.total_loan_amount, Decimal("1440.00"))
        self.assertEqual(self.loan.amount, Decimal("900.00"))
        self.assertEqual(self.loan.last_edited_by, "meena")

    def test_fewer_periods_than_paid_is_rejected(self):
        change = self.submit(loanDays=3)

        with self.assertRaises(ValidationError):
            workflow.transition(change.pk, "approve")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.loan_days, 10)

    def test_shrinking_to_paid_count_completes_the_loan(self):
        change = self.submit(loanDays=4)

        workflow.transition(change.pk, "approve")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, Loan.Status.COMPLETED)
        self.assertTrue(self.loan.is_completed)

    def test_loan_number_change_is_copied_to_payments(self):
        payment = EMIPayment.objects.create(
            loan=self.loan,
            customer=self.customer,
            loan_number="L1",
            amount=Decimal("100"),
            payment_date=date(2024, 1, 2),
        )
        change = self.submit(loanNumber="l9")

        workflow.transition(change.pk, "approve")

        payment.refresh_from_db()
        self.assertEqual(payment.loan_number, "L9")

    def test_switching_to_custom_last_emi_recomputes_total(self):
        change = self.submit(loanType="Monthly", emiType="custom", customEmiAmount="40")

        workflow.transition(change.pk, "approve")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.total_loan_amount, Decimal("940.00"))

    def test_custom_last_emi_on_a_daily_loan_is_rejected(self):
        change = self.submit(emiType="custom", customEmiAmount="40")

        with self.assertRaises(ValidationError):
            workflow.transition(change.pk, "approve")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.emi_type, Loan.EmiType.FIXED)

    def test_renewed_loan_cannot_be_edited(self):
        renewed = make_loan(self.customer, "L7", status=Loan.Status.RENEWED, is_renewed=True)
        change = self.submit(loan=renewed, emiAmount="90")

        with self.assertRaises(InvalidStateError):
            workflow.transition(change.pk, "approve")

        change.refresh_from_db()
        self.assertTrue(change.is_pending)

    def test_deleted_loan_is_a_warning(self):
        change = self.submit(emiAmount="90")
        Loan.objects.filter(pk=self.loan.pk).update(status=Loan.Status.DELETED)

        result = workflow.transition(change.pk, "approve")

        self.assertTrue(result.outcome.is_warning)
        self.assertEqual(result.request.status, ChangeRequest.Status.APPROVED)


class LoanDeletionEffectTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")
        self.loan = make_loan(self.customer, "L1")

    def submit(self):
        payload = {
            "loanId": self.loan.pk,
            "customerId": self.customer.pk,
            "customerName": self.customer.name,
            "loanNumber": "L1",
        }
        return workflow.create_request("LoanDeletion", payload, OPERATOR)

    def test_approve_marks_loan_deleted(self):
        workflow.transition(self.submit().pk, "approve")

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, Loan.Status.DELETED)

    def test_second_deletion_is_a_warning(self):
        first, second = self.submit(), self.submit()
        workflow.transition(first.pk, "approve")

        result = workflow.transition(second.pk, "approve")

        self.assertTrue(result.outcome.is_warning)


class LoanRenewalEffectTests(TestCase):
    def setUp(self):
        self.customer = make_customer("C1")
        self.loan = make_loan(self.customer, "L1", emi_paid_count=8)
        make_loan(self.customer, "L3", status=Loan.Status.COMPLETED, is_completed=True)

    def submit(self):
        payload = {
            "loanId": self.loan.pk,
            "customerId": self.customer.pk,
            "customerName": self.customer.name,
            "loanNumber": "L1",
            "requestedData": {
                "newLoanAmount": "2000",
                "newEmiAmount": "250",
                "newLoanType": "Weekly",
                "newLoanDays": 10,
            },
        }
        return workflow.create_request("LoanRenewal", payload, OPERATOR)

    def test_next_loan_number_follows_highest(self):
        self.assertEqual(next_loan_number(self.customer), "L4")

    def test_approve_creates_successor_and_marks_original(self):
        workflow.transition(self.submit().pk, "approve")

        successor = Loan.objects.get(customer=self.customer, loan_number="L4")
        self.assertEqual(successor.original_loan_number, "L1")
        self.assertEqual(successor.total_loan_amount, Decimal("2500.00"))
        self.assertEqual(successor.loan_type, Loan.LoanType.WEEKLY)
        self.assertEqual(successor.date_applied, timezone.localdate())

        self.loan.refresh_from_db()
        self.assertTrue(self.loan.is_renewed)
        self.assertEqual(self.loan.status, Loan.Status.RENEWED)
        self.assertEqual(self.loan.renewed_loan_number, "L4")

    def test_renewing_twice_is_invalid_state(self):
        first, second = self.submit(), self.submit()
        workflow.transition(first.pk, "approve")

        with self.assertRaises(InvalidStateError):
            workflow.transition(second.pk, "approve")
        self.assertEqual(self.customer.loans.count(), 3)
