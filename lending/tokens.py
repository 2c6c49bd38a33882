from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings

from .exceptions import AuthError

CUSTOMER_ROLE = "customer"


def issue_token(customer) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "customerId": customer.pk,
        "role": CUSTOMER_ROLE,
        "iat": now,
        "exp": now + timedelta(days=settings.CUSTOMER_TOKEN_TTL_DAYS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify ``token`` and return its claims, or raise AuthError."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Session expired, please log in again")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")

    if claims.get("role") != CUSTOMER_ROLE or not isinstance(claims.get("customerId"), int):
        raise AuthError("Invalid token")
    return claims
