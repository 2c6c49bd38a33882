"""Customer login, device binding and first-login OTP verification.

A customer is either unbound (``active_device_id`` is NULL) or bound to
exactly one device. Binding is claimed with a single conditional UPDATE so
two concurrent logins from different devices cannot both win.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.crypto import get_random_string

from .exceptions import (
    ActiveSessionConflict,
    AuthError,
    InactiveAccountError,
    NotFoundError,
    OtpExpiredError,
    ValidationError,
)
from .models import Customer
from .tasks import send_otp_sms
from .tokens import issue_token

logger = logging.getLogger(__name__)

OTP_LENGTH = 6


@dataclass(frozen=True)
class Session:
    token: str
    customer: Customer


@dataclass(frozen=True)
class LoginChallenge:
    otp_required: bool
    customer: Customer


def authenticate_customer(login_id: str, password: str) -> Customer:
    customer = Customer.objects.filter(login_id=login_id).first()
    if customer is None or not customer.check_password(password):
        logger.info("Rejected login for %s: invalid credentials", login_id)
        raise AuthError("Invalid login ID or password")
    if not customer.can_login:
        logger.info("Rejected login for %s: account is %s", login_id, customer.status)
        raise InactiveAccountError("Account is not active. Please contact support.")
    return customer


def claim_device(customer: Customer, device_id: str) -> None:
    """Bind ``customer`` to ``device_id`` unless another device holds the binding."""
    claimed = (
        Customer.objects.filter(pk=customer.pk)
        .filter(Q(active_device_id__isnull=True) | Q(active_device_id=device_id))
        .update(active_device_id=device_id, last_login_at=timezone.now())
    )
    if not claimed:
        logger.warning("Customer %s already has an active session on another device", customer.customer_number)
        raise ActiveSessionConflict(
            "You are already logged in on another device. Please logout from that device first."
        )


def login(login_id: str, password: str, device_id: str) -> Session:
    if not device_id:
        raise ValidationError("Device ID is required", missing_fields=["deviceId"])

    customer = authenticate_customer(login_id, password)
    claim_device(customer, device_id)
    customer.refresh_from_db()

    logger.info("Customer %s logged in on device %s", customer.customer_number, device_id)
    return Session(token=issue_token(customer), customer=customer)


def logout(customer: Customer, device_id: str) -> bool:
    """Release the device binding if ``device_id`` currently holds it."""
    released = Customer.objects.filter(pk=customer.pk, active_device_id=device_id).update(active_device_id=None)
    if released:
        logger.info("Customer %s logged out from device %s", customer.customer_number, device_id)
    else:
        logger.info("Logout for %s ignored: device %s holds no session", customer.customer_number, device_id)
    return bool(released)


def notify_otp(phone: str, code: str) -> None:
    try:
        send_otp_sms.delay(phone, code)
    except Exception:
        logger.exception("Failed to queue OTP SMS")


def begin_login(login_id: str, password: str) -> LoginChallenge:
    """First step of the web login.

    Customers who have never completed OTP verification get a fresh one-time
    code instead of a session. ``is_first_login`` stays set until
    :func:`verify_otp` succeeds.
    """
    customer = authenticate_customer(login_id, password)
    if customer.is_first_login is False:
        return LoginChallenge(otp_required=False, customer=customer)

    code = get_random_string(OTP_LENGTH, allowed_chars="0123456789")
    with transaction.atomic():
        customer.otp_hash = make_password(code)
        customer.otp_expires_at = timezone.now() + timedelta(minutes=settings.OTP_TTL_MINUTES)
        customer.is_first_login = True
        customer.save(update_fields=["otp_hash", "otp_expires_at", "is_first_login", "updated_at"])

        phone = customer.primary_phone
        if phone:
            transaction.on_commit(lambda: notify_otp(phone, code))
        else:
            logger.warning("Customer %s has no phone number; OTP not sent", customer.customer_number)

    logger.info("OTP issued for first login of customer %s", customer.customer_number)
    return LoginChallenge(otp_required=True, customer=customer)


def _clear_otp(customer: Customer, **extra) -> None:
    customer.otp_hash = ""
    customer.otp_expires_at = None
    for attr, value in extra.items():
        setattr(customer, attr, value)
    customer.save(update_fields=["otp_hash", "otp_expires_at", *extra, "updated_at"])


def verify_otp(login_id: str, otp: str) -> Customer:
    customer = Customer.objects.filter(login_id=login_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    if not customer.otp_hash or customer.otp_expires_at is None:
        raise ValidationError("No OTP is pending for this customer", errors={"otp": ["No OTP requested."]})

    if timezone.now() > customer.otp_expires_at:
        _clear_otp(customer)
        logger.info("Expired OTP presented for customer %s", customer.customer_number)
        raise OtpExpiredError("OTP has expired. Please login again.")

    if not check_password(otp, customer.otp_hash):
        logger.info("Wrong OTP presented for customer %s", customer.customer_number)
        raise AuthError("Invalid OTP")

    _clear_otp(customer, is_first_login=False)
    logger.info("OTP verified for customer %s", customer.customer_number)
    return customer
