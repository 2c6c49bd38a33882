import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List

import pandas as pd
from celery import shared_task
from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.db import transaction

from . import lifecycle
from .models import Customer, Loan

logger = logging.getLogger(__name__)

_ROW_ERRORS = (KeyError, TypeError, ValueError, InvalidOperation)


def _mask_phone(phone: str) -> str:
    return f"{'*' * max(len(phone) - 4, 0)}{phone[-4:]}"


@shared_task(ignore_result=True)
def send_otp_sms(phone: str, code: str) -> None:
    # TODO: hand the message to the SMS gateway once its credentials are provisioned.
    logger.warning("SMS gateway not configured; OTP for %s was not sent", _mask_phone(phone))


def _data_dir() -> Path:
    return Path(getattr(settings, "DATA_DIR", settings.BASE_DIR / "data"))


def _load_excel(filename: str) -> pd.DataFrame:
    path = _data_dir() / filename
    if not path.exists():
        logger.error("File not found: %s", path)
        return pd.DataFrame()
    df = pd.read_excel(path)
    df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
    return df


def _decimal(value) -> Decimal:
    return Decimal(str(value))


def _text(row, column: str) -> str:
    value = row.get(column)
    if value is None or pd.isna(value):
        return ""
    # Numeric cells (phone and customer numbers) come back as floats when the column has gaps.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _date(value):
    return pd.to_datetime(value, dayfirst=True).date()


@shared_task
def ingest_customers_from_excel(filename: str = "customer_data.xlsx") -> Dict[str, int]:
    """Import an existing customer book as active customers.

    Imported customers have no usable password and must have one set before
    they can log in.
    """
    df = _load_excel(filename)
    required = {"customer_number", "name", "phone"}
    missing = required - set(df.columns)
    if missing:
        logger.error("Missing columns in %s: %s", filename, sorted(missing))
        return {"created": 0, "skipped": len(df)}

    customers: List[Customer] = []
    skipped = 0
    for _, row in df.iterrows():
        number = _text(row, "customer_number")
        name = _text(row, "name")
        if not number or not name:
            skipped += 1
            continue
        phones = [p.strip() for p in _text(row, "phone").split(",") if p.strip()]
        customers.append(
            Customer(
                customer_number=number,
                name=name,
                phones=phones,
                business_name=_text(row, "business_name"),
                area=_text(row, "area"),
                address=_text(row, "address"),
                login_id=_text(row, "login_id") or number,
                password=make_password(None),
                status=Customer.Status.ACTIVE,
                created_by="import",
            )
        )

    with transaction.atomic():
        created = len(Customer.objects.bulk_create(customers, ignore_conflicts=True, batch_size=500))
    logger.info("Customers ingested: created=%s skipped=%s", created, skipped)
    return {"created": created, "skipped": skipped}


def _loan_from_row(row, customer: Customer) -> Loan:
    loan_type = _text(row, "loan_type").capitalize() or Loan.LoanType.DAILY
    if loan_type not in Loan.LoanType.values:
        raise ValueError(f"unknown loan type {loan_type!r}")
    loan_days = int(row["loan_days"])
    paid = int(row["emi_paid_count"]) if "emi_paid_count" in row and not pd.isna(row["emi_paid_count"]) else 0
    if loan_days < 1 or paid < 0 or paid > loan_days:
        raise ValueError(f"paid count {paid} does not fit {loan_days} periods")

    emi_amount = _decimal(row["emi_amount"])
    date_applied = _date(row["date_applied"])
    emi_start = _date(row["emi_start_date"]) if not pd.isna(row.get("emi_start_date")) else date_applied
    if emi_start < date_applied:
        raise ValueError("EMI start date is before loan date")

    loan = Loan(
        customer=customer,
        customer_number=customer.customer_number,
        customer_name=customer.name,
        loan_number=_text(row, "loan_number").upper(),
        amount=_decimal(row["amount"]),
        emi_amount=emi_amount,
        total_loan_amount=lifecycle.compute_total_loan_amount(emi_amount, loan_days),
        loan_type=loan_type,
        loan_days=loan_days,
        total_emi_count=loan_days,
        emi_paid_count=paid,
        total_paid_amount=(emi_amount * paid).quantize(lifecycle.CENTS),
        date_applied=date_applied,
        emi_start_date=emi_start,
        created_by="import",
    )
    if lifecycle.is_fully_paid(loan):
        loan.status = Loan.Status.COMPLETED
        loan.is_completed = True
    return loan


@shared_task
def ingest_loans_from_excel(filename: str = "loan_data.xlsx") -> Dict[str, int]:
    df = _load_excel(filename)
    required = {"customer_number", "loan_number", "amount", "emi_amount", "loan_type", "loan_days", "date_applied"}
    missing = required - set(df.columns)
    if missing:
        logger.error("Missing columns in %s: %s", filename, sorted(missing))
        return {"created": 0, "skipped": len(df)}

    customers_map = Customer.objects.in_bulk(field_name="customer_number")
    loans: List[Loan] = []
    skipped = 0
    for index, row in df.iterrows():
        customer = customers_map.get(_text(row, "customer_number"))
        if customer is None or not _text(row, "loan_number"):
            skipped += 1
            continue
        try:
            loans.append(_loan_from_row(row, customer))
        except _ROW_ERRORS as exc:
            skipped += 1
            logger.warning("Skipping loan row %s: %s", index, exc)

    with transaction.atomic():
        created = len(Loan.objects.bulk_create(loans, ignore_conflicts=True, batch_size=500))
    logger.info("Loans ingested: created=%s skipped=%s", created, skipped)
    return {"created": created, "skipped": skipped}
