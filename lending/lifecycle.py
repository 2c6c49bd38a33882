"""Derived loan figures for read paths.

All functions here are pure: they take a loan (or anything exposing the same
attributes) and never touch the database, so every read re-derives from the
stored counters.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from .models import Loan

_ZERO = Decimal("0")
CENTS = Decimal("0.01")


def has_custom_emi(loan_type: str, emi_type: str) -> bool:
    return emi_type == Loan.EmiType.CUSTOM and loan_type != Loan.LoanType.DAILY


def compute_total_loan_amount(
    emi_amount: Decimal, loan_days: int, custom_emi_amount: Optional[Decimal] = None
) -> Decimal:
    """EMI times periods, or, with a custom last EMI, every period but the last at ``emi_amount``."""
    if custom_emi_amount is None or loan_days < 1:
        return (Decimal(emi_amount) * loan_days).quantize(CENTS)
    return (Decimal(emi_amount) * (loan_days - 1) + Decimal(custom_emi_amount)).quantize(CENTS)


def loan_total(loan) -> Decimal:
    custom = loan.custom_emi_amount if has_custom_emi(loan.loan_type, loan.emi_type) else None
    return compute_total_loan_amount(loan.emi_amount, loan.loan_days, custom)


def expected_emi_amount(loan, period: int) -> Decimal:
    """Amount due for the 1-based EMI ``period``."""
    if has_custom_emi(loan.loan_type, loan.emi_type) and period == loan.total_emi_count:
        return Decimal(loan.custom_emi_amount)
    return Decimal(loan.emi_amount)


def progress_percentage(loan) -> int:
    if not loan.total_emi_count:
        return 0
    pct = round(loan.emi_paid_count / loan.total_emi_count * 100)
    return max(0, min(100, pct))


def remaining_amount(loan) -> Decimal:
    paid = Decimal(loan.emi_paid_count) * Decimal(loan.emi_amount)
    if has_custom_emi(loan.loan_type, loan.emi_type) and is_fully_paid(loan):
        return _ZERO
    return max(_ZERO, Decimal(loan.total_loan_amount) - paid)


def remaining_emis(loan) -> int:
    return max(0, loan.total_emi_count - loan.emi_paid_count)


def is_fully_paid(loan) -> bool:
    return loan.total_emi_count > 0 and loan.emi_paid_count >= loan.total_emi_count


def is_outstanding(loan) -> bool:
    """True for loans the customer still owes on.

    A loan whose counters show every EMI paid is excluded even if its status
    still reads ``active``.
    """
    return (
        loan.status == Loan.Status.ACTIVE
        and not loan.is_renewed
        and loan.emi_paid_count < loan.total_emi_count
    )


def add_cadence(start: date, loan_type: str, steps: int) -> date:
    """Move ``start`` forward by ``steps`` EMI periods of the loan's cadence."""
    if loan_type == Loan.LoanType.MONTHLY:
        return start + relativedelta(months=steps)
    if loan_type == Loan.LoanType.WEEKLY:
        return start + timedelta(weeks=steps)
    return start + timedelta(days=steps)


def next_emi_date(loan) -> Optional[date]:
    if loan.status != Loan.Status.ACTIVE or loan.is_renewed or is_fully_paid(loan):
        return None
    return add_cadence(loan.emi_start_date, loan.loan_type, loan.emi_paid_count)


def end_date(loan) -> date:
    # The last EMI falls one period before start + loan_days periods.
    return add_cadence(loan.emi_start_date, loan.loan_type, max(loan.loan_days - 1, 0))


def format_display_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%d/%m/%Y")
