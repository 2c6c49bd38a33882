"""Error taxonomy for the lending core.

Every error carries the HTTP status and machine-readable code the API layer
renders, so views never translate exceptions by hand.
"""


class LendingError(Exception):
    """Base exception for all lending errors."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(LendingError):
    """Raised when submitted input is missing or malformed."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, missing_fields=None, errors=None):
        detail = {}
        if missing_fields:
            detail["missingFields"] = list(missing_fields)
        if errors:
            detail["errors"] = errors
        super().__init__(message, **detail)
        self.missing_fields = list(missing_fields or [])


class NotFoundError(LendingError):
    """Raised when a referenced request, customer or loan does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class InvalidStateError(LendingError):
    """Raised when an entity is in the wrong state for the operation."""

    status_code = 409
    error_code = "INVALID_STATE"


class AuthError(LendingError):
    """Raised when credentials or tokens are rejected."""

    status_code = 401
    error_code = "INVALID_CREDENTIALS"


class InactiveAccountError(AuthError):
    """Raised when a customer with valid credentials is not approved or is disabled."""

    status_code = 403
    error_code = "ACCOUNT_INACTIVE"


class ActiveSessionConflict(AuthError):
    """Raised when the customer is already bound to a different device."""

    status_code = 403
    error_code = "ACTIVE_SESSION_EXISTS"


class OtpExpiredError(AuthError):
    status_code = 410
    error_code = "OTP_EXPIRED"


class StoreError(LendingError):
    """Raised when the database fails underneath an operation."""

    status_code = 500
    error_code = "STORE_ERROR"
