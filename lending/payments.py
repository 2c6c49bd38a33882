import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from . import lifecycle
from .exceptions import InvalidStateError, NotFoundError, StoreError, ValidationError
from .models import EMIPayment, Loan

logger = logging.getLogger(__name__)


def record_emi_payment(
    loan_id: int,
    amount: Decimal,
    payment_date: Optional[date] = None,
    collected_by: str = "system",
    payment_method: str = EMIPayment.Method.CASH,
    notes: str = "",
) -> EMIPayment:
    """Append one EMI payment to a loan and advance its counters.

    The loan row is locked for the duration, and the counter increment is
    conditional on ``emi_paid_count < total_emi_count`` so the paid count can
    never overshoot. A loan whose last EMI this was is marked completed.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive", errors={"amount": ["Must be greater than zero."]})
    payment_date = payment_date or timezone.localdate()

    try:
        with transaction.atomic():
            loan = Loan.objects.select_for_update().filter(pk=loan_id).first()
            if loan is None:
                raise NotFoundError(f"Loan {loan_id} not found")
            if loan.status != Loan.Status.ACTIVE or loan.is_renewed:
                raise InvalidStateError(f"Loan {loan.loan_number} is {loan.status}; payments are closed")
            if lifecycle.is_fully_paid(loan):
                raise InvalidStateError(f"Loan {loan.loan_number} is already fully paid")

            due = lifecycle.expected_emi_amount(loan, loan.emi_paid_count + 1)
            payment = EMIPayment.objects.create(
                loan=loan,
                customer_id=loan.customer_id,
                loan_number=loan.loan_number,
                amount=amount,
                payment_date=payment_date,
                status=EMIPayment.Status.PAID if amount >= due else EMIPayment.Status.PARTIAL,
                payment_method=payment_method,
                collected_by=collected_by,
                notes=notes,
            )

            advanced = Loan.objects.filter(pk=loan.pk, emi_paid_count__lt=F("total_emi_count")).update(
                emi_paid_count=F("emi_paid_count") + 1,
                total_paid_amount=F("total_paid_amount") + amount,
                last_emi_date=payment_date,
                updated_at=timezone.now(),
            )
            if not advanced:
                raise InvalidStateError(f"Loan {loan.loan_number} is already fully paid")

            loan.refresh_from_db()
            if lifecycle.is_fully_paid(loan):
                loan.status = Loan.Status.COMPLETED
                loan.is_completed = True
                loan.save(update_fields=["status", "is_completed", "updated_at"])
                logger.info("Loan %s completed with payment %s", loan.loan_number, payment.pk)
    except DatabaseError as exc:
        logger.exception("Database failure while recording payment on loan %s", loan_id)
        raise StoreError("Could not record the payment") from exc

    logger.info(
        "Recorded %s payment of %s on loan %s (%s/%s)",
        payment.status,
        amount,
        loan.loan_number,
        loan.emi_paid_count,
        loan.total_emi_count,
    )
    return payment
