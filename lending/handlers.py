import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import LendingError, StoreError

logger = logging.getLogger(__name__)

_OPAQUE_MESSAGE = "Internal server error. Please try again later."


def _view_name(context) -> str:
    view = context.get("view")
    return type(view).__name__ if view is not None else "unknown view"


def api_exception_handler(exc, context):
    """Render lending errors as ``{success: false, error, errorCode, ...}``.

    Store failures are logged with their cause and surfaced with an opaque
    message. Anything else is left to DRF's default handler.
    """
    if isinstance(exc, StoreError) or isinstance(exc, DatabaseError):
        logger.error("Store failure in %s", _view_name(context), exc_info=exc)
        body = {"success": False, "error": _OPAQUE_MESSAGE, "errorCode": StoreError.error_code}
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, LendingError):
        body = {"success": False, "error": exc.message, "errorCode": exc.error_code, **exc.detail}
        return Response(body, status=exc.status_code)

    return exception_handler(exc, context)
