# messaging/exceptions.py
import logging

from django.db import DatabaseError
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("The request is missing required data.")
    default_code = "validation_error"


class AuthorizationError(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("You are not allowed to perform this action.")
    default_code = "authorization_error"


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _("The requested resource was not found.")
    default_code = "not_found"


class UpstreamStoreError(APIException):
    """Persistence or object storage failed. The cause is logged, never returned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = _("Something went wrong. Please try again later.")
    default_code = "upstream_store_error"


class WebSocketAuthenticationError(Exception):
    """Exception raised when WebSocket authentication fails."""
    pass


def messaging_exception_handler(exc, context):
    """
    DRF exception handler that hides database failures behind
    UpstreamStoreError so driver messages never reach clients.
    """
    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.error(
            f"Database failure in {view.__class__.__name__ if view else 'unknown view'}: {str(exc)}",
            exc_info=exc,
        )
        exc = UpstreamStoreError()
    return exception_handler(exc, context)
