"""Side effects of deciding a change request.

Handlers run inside the caller's transaction and lock the rows they mutate.
A target that no longer exists is reported as a warning outcome rather than
an error, so the request can still be finalized; genuine conflicts (a loan
that can no longer be edited, a duplicate loan number) raise and roll the
whole decision back.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import models
from django.utils import timezone

from . import lifecycle
from .exceptions import InvalidStateError, ValidationError
from .models import ChangeRequest, Customer, Loan
from .payloads import parse_requested_data

logger = logging.getLogger(__name__)

_LOAN_NUMBER = re.compile(r"^L(\d+)$")


class Decision(models.TextChoices):
    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"


@dataclass(frozen=True)
class Outcome:
    APPLIED = "applied"
    WARNING = "warning"

    kind: str
    message: str
    changes: dict = field(default_factory=dict)

    @classmethod
    def applied(cls, message: str, **changes) -> "Outcome":
        return cls(cls.APPLIED, message, changes)

    @classmethod
    def warning(cls, message: str, **changes) -> "Outcome":
        return cls(cls.WARNING, message, changes)

    @property
    def is_warning(self) -> bool:
        return self.kind == self.WARNING


def _find_customer(change: ChangeRequest) -> Optional[Customer]:
    customers = Customer.objects.select_for_update()
    if change.customer_number:
        customer = customers.filter(customer_number=change.customer_number).first()
        if customer is not None:
            return customer
    if change.customer_id:
        return customers.filter(pk=change.customer_id).first()
    return None


def _find_loan(change: ChangeRequest) -> Optional[Loan]:
    if not change.loan_id:
        return None
    return Loan.objects.select_for_update().filter(pk=change.loan_id).first()


def _customer_ref(change: ChangeRequest) -> str:
    return change.customer_number or f"id {change.customer_id}"


def next_loan_number(customer: Customer) -> str:
    numbers = [0]
    for loan_number in Loan.objects.filter(customer=customer).values_list("loan_number", flat=True):
        match = _LOAN_NUMBER.match(loan_number)
        if match:
            numbers.append(int(match.group(1)))
    return f"L{max(numbers) + 1}"


def _check_custom_emi(loan_type: str, emi_type: str, custom_emi_amount: Optional[Decimal]) -> None:
    if emi_type != Loan.EmiType.CUSTOM:
        return
    if loan_type == Loan.LoanType.DAILY:
        raise ValidationError(
            "Custom EMI is only available for Weekly and Monthly loans",
            errors={"emiType": ["Custom EMI is only available for Weekly and Monthly loans."]},
        )
    if custom_emi_amount is None:
        raise ValidationError(
            "customEmiAmount is required when emiType is custom",
            errors={"customEmiAmount": ["Required when emiType is custom."]},
        )


def _book_loan(customer: Customer, terms: dict, created_by: str) -> Loan:
    loan_number = terms["loanNumber"]
    if Loan.objects.filter(customer=customer, loan_number=loan_number).exists():
        raise ValidationError(
            f"Loan number {loan_number} already exists for customer {customer.customer_number}",
            errors={"loanNumber": ["Duplicate loan number for this customer."]},
        )

    date_applied = terms.get("dateApplied") or timezone.localdate()
    return _create_loan(
        customer,
        loan_number=loan_number,
        amount=terms["loanAmount"],
        emi_amount=terms["emiAmount"],
        loan_type=terms["loanType"],
        loan_days=terms["loanDays"],
        date_applied=date_applied,
        emi_start_date=terms.get("emiStartDate") or date_applied,
        created_by=created_by,
        emi_type=terms.get("emiType", Loan.EmiType.FIXED),
        custom_emi_amount=terms.get("customEmiAmount"),
    )


def _create_loan(
    customer: Customer,
    *,
    loan_number: str,
    amount: Decimal,
    emi_amount: Decimal,
    loan_type: str,
    loan_days: int,
    date_applied: date,
    emi_start_date: date,
    created_by: str,
    emi_type: str = Loan.EmiType.FIXED,
    custom_emi_amount: Optional[Decimal] = None,
    original_loan_number: str = "",
) -> Loan:
    if emi_start_date < date_applied:
        raise ValidationError(
            "EMI start date cannot be before loan date",
            errors={"emiStartDate": ["EMI start date cannot be before loan date."]},
        )
    _check_custom_emi(loan_type, emi_type, custom_emi_amount)
    custom = custom_emi_amount if lifecycle.has_custom_emi(loan_type, emi_type) else None
    return Loan.objects.create(
        customer=customer,
        customer_number=customer.customer_number,
        customer_name=customer.name,
        loan_number=loan_number,
        amount=amount,
        emi_amount=emi_amount,
        total_loan_amount=lifecycle.compute_total_loan_amount(emi_amount, loan_days, custom),
        emi_type=emi_type,
        custom_emi_amount=custom_emi_amount,
        loan_type=loan_type,
        loan_days=loan_days,
        total_emi_count=loan_days,
        date_applied=date_applied,
        emi_start_date=emi_start_date,
        created_by=created_by,
        original_loan_number=original_loan_number,
    )


def approve_onboarding(change: ChangeRequest, reviewer: str) -> Outcome:
    customer = _find_customer(change)
    if customer is None:
        logger.warning("Onboarding request %s approved but no customer matches %s", change.pk, _customer_ref(change))
        return Outcome.warning(f"No customer found for {_customer_ref(change)}; nothing was activated")

    customer.status = Customer.Status.ACTIVE
    customer.save(update_fields=["status", "updated_at"])

    terms = parse_requested_data(change).get("loan")
    if not terms:
        return Outcome.applied(f"Customer {customer.customer_number} activated", customer_id=customer.pk)
    loan = _book_loan(customer, terms, change.created_by)
    return Outcome.applied(
        f"Customer {customer.customer_number} activated with loan {loan.loan_number}",
        customer_id=customer.pk,
        loan_id=loan.pk,
    )


def reject_onboarding(change: ChangeRequest, reviewer: str) -> Outcome:
    customer = _find_customer(change)
    if customer is None:
        logger.warning("Onboarding request %s rejected but no customer matches %s", change.pk, _customer_ref(change))
        return Outcome.warning(f"No customer found for {_customer_ref(change)}; nothing was deleted")
    if customer.status != Customer.Status.PENDING:
        logger.warning(
            "Onboarding request %s rejected but customer %s is already %s; keeping it",
            change.pk,
            customer.customer_number,
            customer.status,
        )
        return Outcome.warning(f"Customer {customer.customer_number} is {customer.status}; not deleted")
    if customer.loans.exists():
        logger.warning(
            "Onboarding request %s rejected but pending customer %s already has loans; keeping it",
            change.pk,
            customer.customer_number,
        )
        return Outcome.warning(f"Customer {customer.customer_number} has loans on record; not deleted")

    customer_pk = customer.pk
    customer.delete()
    return Outcome.applied(f"Pending customer {change.customer_number or customer_pk} deleted", customer_id=customer_pk)


def approve_loan_addition(change: ChangeRequest, reviewer: str) -> Outcome:
    terms = parse_requested_data(change)
    customer = _find_customer(change)
    if customer is None:
        logger.warning("Loan addition request %s approved but customer %s is gone", change.pk, _customer_ref(change))
        return Outcome.warning(f"No customer found for {_customer_ref(change)}; no loan was created")
    if customer.status != Customer.Status.ACTIVE:
        raise InvalidStateError(
            f"Customer {customer.customer_number} is {customer.status}; approve its onboarding first"
        )

    loan = _book_loan(customer, terms, change.created_by)
    return Outcome.applied(f"Loan {loan.loan_number} created for {customer.customer_number}", loan_id=loan.pk)


_CUSTOMER_FIELDS = {
    "name": "name",
    "phones": "phones",
    "whatsappNumber": "whatsapp_number",
    "businessName": "business_name",
    "area": "area",
    "address": "address",
    "customerNumber": "customer_number",
    "loginId": "login_id",
}


def approve_customer_edit(change: ChangeRequest, reviewer: str) -> Outcome:
    changes = parse_requested_data(change)
    customer = Customer.objects.select_for_update().filter(pk=change.customer_id).first()
    if customer is None:
        logger.warning("Customer edit request %s approved but customer %s is gone", change.pk, change.customer_id)
        return Outcome.warning(f"No customer found for id {change.customer_id}; nothing was updated")

    others = Customer.objects.exclude(pk=customer.pk)
    if "loginId" in changes and others.filter(login_id=changes["loginId"]).exists():
        raise ValidationError("Login id is already in use", errors={"loginId": ["Already taken."]})
    if "customerNumber" in changes and others.filter(customer_number=changes["customerNumber"]).exists():
        raise ValidationError("Customer number is already in use", errors={"customerNumber": ["Already taken."]})

    updated = []
    for key, attr in _CUSTOMER_FIELDS.items():
        if key in changes:
            setattr(customer, attr, changes[key])
            updated.append(attr)
    customer.save(update_fields=updated + ["updated_at"])

    if "customer_number" in updated or "name" in updated:
        customer.loans.update(customer_number=customer.customer_number, customer_name=customer.name)

    return Outcome.applied(f"Customer {customer.customer_number} updated. Fields: {', '.join(updated)}", fields=updated)


_LOAN_FIELDS = {
    "loanNumber": "loan_number",
    "amount": "amount",
    "emiAmount": "emi_amount",
    "loanType": "loan_type",
    "loanDays": "loan_days",
    "emiType": "emi_type",
    "customEmiAmount": "custom_emi_amount",
    "dateApplied": "date_applied",
    "emiStartDate": "emi_start_date",
}

_TOTAL_INPUTS = {"emi_amount", "loan_days", "loan_type", "emi_type", "custom_emi_amount"}


def approve_loan_edit(change: ChangeRequest, reviewer: str) -> Outcome:
    changes = parse_requested_data(change)
    loan = _find_loan(change)
    if loan is None or loan.status == Loan.Status.DELETED:
        logger.warning("Loan edit request %s approved but loan %s is gone", change.pk, change.loan_number)
        return Outcome.warning(f"Loan {change.loan_number} not found; nothing was updated")
    if not loan.is_mutable:
        raise InvalidStateError(f"Loan {loan.loan_number} is {loan.status} and can no longer be edited")

    new_number = changes.get("loanNumber")
    if new_number and new_number != loan.loan_number:
        taken = Loan.objects.filter(customer_id=loan.customer_id, loan_number=new_number).exclude(pk=loan.pk)
        if taken.exists():
            raise ValidationError(
                f"Loan number {new_number} is already taken by another loan for this customer",
                errors={"loanNumber": ["Duplicate loan number for this customer."]},
            )

    old_number = loan.loan_number
    updated = []
    for key, attr in _LOAN_FIELDS.items():
        if key in changes:
            setattr(loan, attr, changes[key])
            updated.append(attr)

    _check_custom_emi(loan.loan_type, loan.emi_type, loan.custom_emi_amount)
    if "loan_days" in updated:
        if loan.loan_days < loan.emi_paid_count:
            raise ValidationError(
                f"Loan {loan.loan_number} already has {loan.emi_paid_count} EMIs paid; loanDays cannot be lower",
                errors={"loanDays": ["Fewer periods than EMIs already paid."]},
            )
        loan.total_emi_count = loan.loan_days
        updated.append("total_emi_count")
    if _TOTAL_INPUTS.intersection(updated):
        loan.total_loan_amount = lifecycle.loan_total(loan)
        updated.append("total_loan_amount")
    if loan.emi_start_date < loan.date_applied:
        raise ValidationError(
            "EMI start date cannot be before loan date",
            errors={"emiStartDate": ["EMI start date cannot be before loan date."]},
        )
    if lifecycle.is_fully_paid(loan):
        loan.status = Loan.Status.COMPLETED
        loan.is_completed = True
        updated += ["status", "is_completed"]

    loan.last_edited_by = reviewer
    loan.save(update_fields=updated + ["last_edited_by", "updated_at"])
    if loan.loan_number != old_number:
        loan.emi_payments.update(loan_number=loan.loan_number)
    return Outcome.applied(f"Loan {loan.loan_number} updated. Fields: {', '.join(updated)}", fields=updated)


def approve_loan_deletion(change: ChangeRequest, reviewer: str) -> Outcome:
    loan = _find_loan(change)
    if loan is None or loan.status == Loan.Status.DELETED:
        logger.warning("Loan deletion request %s approved but loan %s is already gone", change.pk, change.loan_number)
        return Outcome.warning(f"Loan {change.loan_number} not found or already deleted")

    loan.status = Loan.Status.DELETED
    loan.last_edited_by = reviewer
    loan.save(update_fields=["status", "last_edited_by", "updated_at"])
    return Outcome.applied(f"Loan {loan.loan_number} deleted", loan_id=loan.pk)


def approve_loan_renewal(change: ChangeRequest, reviewer: str) -> Outcome:
    terms = parse_requested_data(change)
    original = _find_loan(change)
    if original is None or original.status == Loan.Status.DELETED:
        logger.warning("Loan renewal request %s approved but loan %s is gone", change.pk, change.loan_number)
        return Outcome.warning(f"Loan {change.loan_number} not found; nothing was renewed")
    if original.is_renewed or original.status == Loan.Status.RENEWED:
        raise InvalidStateError(f"Loan {original.loan_number} has already been renewed")

    today = timezone.localdate()
    customer = original.customer
    successor = _create_loan(
        customer,
        loan_number=next_loan_number(customer),
        amount=terms["newLoanAmount"],
        emi_amount=terms["newEmiAmount"],
        loan_type=terms["newLoanType"],
        loan_days=terms["newLoanDays"],
        date_applied=today,
        emi_start_date=terms.get("emiStartDate") or today,
        created_by=change.created_by,
        emi_type=terms.get("emiType", Loan.EmiType.FIXED),
        custom_emi_amount=terms.get("customEmiAmount"),
        original_loan_number=original.loan_number,
    )

    original.is_renewed = True
    original.status = Loan.Status.RENEWED
    original.renewed_loan_number = successor.loan_number
    original.renewed_date = today
    original.last_edited_by = reviewer
    original.save(
        update_fields=["is_renewed", "status", "renewed_loan_number", "renewed_date", "last_edited_by", "updated_at"]
    )
    return Outcome.applied(
        f"Loan {original.loan_number} renewed as {successor.loan_number}",
        loan_id=successor.pk,
        original_loan_id=original.pk,
    )


def reject_without_changes(change: ChangeRequest, reviewer: str) -> Outcome:
    return Outcome.applied("Request rejected; no changes applied")


_APPROVALS = {
    ChangeRequest.Type.CUSTOMER_ONBOARDING.value: approve_onboarding,
    ChangeRequest.Type.LOAN_ADDITION.value: approve_loan_addition,
    ChangeRequest.Type.CUSTOMER_EDIT.value: approve_customer_edit,
    ChangeRequest.Type.LOAN_EDIT.value: approve_loan_edit,
    ChangeRequest.Type.LOAN_DELETION.value: approve_loan_deletion,
    ChangeRequest.Type.LOAN_RENEWAL.value: approve_loan_renewal,
}

_REJECTIONS = {
    ChangeRequest.Type.CUSTOMER_ONBOARDING.value: reject_onboarding,
    ChangeRequest.Type.LOAN_ADDITION.value: reject_without_changes,
    ChangeRequest.Type.CUSTOMER_EDIT.value: reject_without_changes,
    ChangeRequest.Type.LOAN_EDIT.value: reject_without_changes,
    ChangeRequest.Type.LOAN_DELETION.value: reject_without_changes,
    ChangeRequest.Type.LOAN_RENEWAL.value: reject_without_changes,
}


def apply_decision(change: ChangeRequest, decision: str, reviewer: str = "admin") -> Outcome:
    handlers = _APPROVALS if decision == Decision.APPROVE else _REJECTIONS
    handler = handlers.get(change.request_type)
    if handler is None:
        raise ValidationError(f"Unsupported request type: {change.request_type}")

    outcome = handler(change, reviewer)
    log = logger.warning if outcome.is_warning else logger.info
    log("Request %s (%s) %s: %s", change.pk, change.request_type, decision, outcome.message)
    return outcome
