"""Creation, listing and adjudication of change requests."""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from .effects import Decision, Outcome, apply_decision
from .exceptions import InvalidStateError, NotFoundError, StoreError, ValidationError
from .models import ChangeRequest, Customer, Loan
from .payloads import validate_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requester:
    name: str = "data_entry_operator"
    role: str = ChangeRequest.Role.DATA_ENTRY


@dataclass(frozen=True)
class TransitionResult:
    request: ChangeRequest
    outcome: Outcome


def _loan_snapshot(loan_id: Optional[int]) -> dict:
    if not loan_id:
        return {}
    loan = Loan.objects.filter(pk=loan_id).first()
    if loan is None:
        return {}
    return {
        "loanNumber": loan.loan_number,
        "amount": loan.amount,
        "emiAmount": loan.emi_amount,
        "emiType": loan.emi_type,
        "customEmiAmount": loan.custom_emi_amount,
        "loanType": loan.loan_type,
        "loanDays": loan.loan_days,
        "emiPaidCount": loan.emi_paid_count,
        "dateApplied": loan.date_applied,
        "emiStartDate": loan.emi_start_date,
        "status": loan.status,
    }


def _customer_snapshot(customer_id: Optional[int]) -> dict:
    if not customer_id:
        return {}
    customer = Customer.objects.filter(pk=customer_id).first()
    if customer is None:
        return {}
    return {
        "name": customer.name,
        "phones": customer.phones,
        "businessName": customer.business_name,
        "area": customer.area,
        "address": customer.address,
        "customerNumber": customer.customer_number,
        "loginId": customer.login_id,
    }


def create_request(request_type: str, payload: dict, requester: Requester) -> ChangeRequest:
    """Validate ``payload`` for ``request_type`` and store it as a Pending request.

    No customer or loan is touched until the request is approved.
    """
    if requester.role not in ChangeRequest.Role.values:
        raise ValidationError(f"Invalid requester role '{requester.role}'", errors={"createdByRole": ["Not a valid choice."]})

    submission = validate_payload(request_type, payload)
    if submission.request_type in (ChangeRequest.Type.LOAN_EDIT, ChangeRequest.Type.LOAN_RENEWAL):
        current = _loan_snapshot(submission.loan_id)
    elif submission.request_type == ChangeRequest.Type.CUSTOMER_EDIT:
        current = _customer_snapshot(submission.customer_id)
    else:
        current = {}

    try:
        change = ChangeRequest.objects.create(
            request_type=submission.request_type,
            customer_id=submission.customer_id,
            customer_number=submission.customer_number,
            customer_name=submission.customer_name,
            loan_id=submission.loan_id,
            loan_number=submission.loan_number,
            requested_data=submission.requested_data,
            current_data=current,
            description=submission.description,
            priority=submission.priority,
            created_by=requester.name,
            created_by_role=requester.role,
            created_at=timezone.now(),
        )
    except DatabaseError as exc:
        logger.exception("Failed to store %s request from %s", request_type, requester.name)
        raise StoreError("Could not store the request") from exc

    logger.info(
        "Created %s request %s for %s by %s",
        change.request_type,
        change.pk,
        change.customer_name or change.customer_number,
        requester.name,
    )
    return change


def transition(request_id: int, decision: str, reviewer: str = "admin", reason: str = "") -> TransitionResult:
    """Approve or reject a Pending request and apply its effect.

    The effect and the terminal status are committed together. The status write
    is conditional on the row still being Pending, so a concurrent or retried
    decision on the same request raises InvalidStateError instead of applying
    the effect twice.
    """
    if decision not in Decision.values:
        raise ValidationError('Invalid action. Use "approve" or "reject".', errors={"action": ["Not a valid choice."]})

    try:
        with transaction.atomic():
            change = ChangeRequest.objects.select_for_update().filter(pk=request_id).first()
            if change is None:
                raise NotFoundError(f"Request {request_id} not found")
            if not change.is_pending:
                raise InvalidStateError(f"Request {request_id} is already {change.status}")

            outcome = apply_decision(change, decision, reviewer)

            now = timezone.now()
            fields = {
                "reviewed_by": reviewer,
                "reviewed_by_role": ChangeRequest.Role.ADMIN,
                "action_taken": outcome.message,
                "outcome": outcome.kind,
                "reviewed_at": now,
                "completed_at": now,
                "updated_at": now,
            }
            if decision == Decision.APPROVE:
                fields.update(status=ChangeRequest.Status.APPROVED, approved_at=now, review_notes=reason)
            else:
                fields.update(
                    status=ChangeRequest.Status.REJECTED,
                    rejected_at=now,
                    review_notes=reason,
                    rejection_reason=reason or "Request rejected",
                )

            finalized = ChangeRequest.objects.filter(pk=change.pk, status=ChangeRequest.Status.PENDING).update(**fields)
            if not finalized:
                raise InvalidStateError(f"Request {request_id} was decided concurrently")
    except DatabaseError as exc:
        logger.exception("Database failure while deciding request %s (%s)", request_id, decision)
        raise StoreError("Could not record the decision") from exc

    change.refresh_from_db()
    logger.info("Request %s %s by %s (%s)", change.pk, change.status, reviewer, outcome.kind)
    return TransitionResult(request=change, outcome=outcome)


def list_requests(status: Optional[str] = None, request_type: Optional[str] = None) -> QuerySet:
    """Requests newest first. The QuerySet is lazy and can be iterated again."""
    if status is not None and status not in ChangeRequest.Status.values:
        raise ValidationError(f"Invalid status filter '{status}'", errors={"status": ["Not a valid choice."]})
    if request_type is not None and request_type not in ChangeRequest.Type.values:
        raise ValidationError(f"Invalid type filter '{request_type}'", errors={"type": ["Not a valid choice."]})

    requests = ChangeRequest.objects.order_by("-created_at", "-pk")
    if status is not None:
        requests = requests.filter(status=status)
    if request_type is not None:
        requests = requests.filter(request_type=request_type)
    return requests


def register_customer(data: dict, requester: Requester) -> tuple[Customer, ChangeRequest]:
    """Create a pending customer and the onboarding request that will activate it."""
    if Customer.objects.filter(customer_number=data["customer_number"]).exists():
        raise ValidationError("Customer number is already in use", errors={"customerNumber": ["Already taken."]})
    if Customer.objects.filter(login_id=data["login_id"]).exists():
        raise ValidationError("Login id is already in use", errors={"loginId": ["Already taken."]})

    with transaction.atomic():
        customer = Customer(
            customer_number=data["customer_number"],
            name=data["name"],
            phones=data["phones"],
            whatsapp_number=data.get("whatsapp_number", ""),
            business_name=data.get("business_name", ""),
            area=data.get("area", ""),
            address=data.get("address", ""),
            login_id=data["login_id"],
            status=Customer.Status.PENDING,
            created_by=requester.name,
        )
        customer.set_password(data["password"])
        customer.save()

        onboarding = {
            "customerId": customer.pk,
            "customerNumber": customer.customer_number,
            "customerName": customer.name,
            "description": f"New customer {customer.name} awaiting approval",
        }
        if data.get("loan"):
            onboarding["requestedData"] = {"loan": dict(data["loan"])}
        change = create_request(ChangeRequest.Type.CUSTOMER_ONBOARDING.value, onboarding, requester)

    logger.info("Registered pending customer %s with onboarding request %s", customer.customer_number, change.pk)
    return customer, change
