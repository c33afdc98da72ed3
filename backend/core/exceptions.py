"""DRF exception handler that renders every failure in the API envelope."""

from __future__ import annotations

import logging
import uuid

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.views import exception_handler

from .errors import DomainError, ErrorCode
from .responses import domain_error_response, error_envelope

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _flatten_detail(detail) -> str:
    if isinstance(detail, dict):
        for field, value in detail.items():
            text = _flatten_detail(value)
            if field in ("non_field_errors", "detail"):
                return text
            return f"{field}: {text}"
        return "Invalid input."
    if isinstance(detail, (list, tuple)):
        return _flatten_detail(detail[0]) if detail else "Invalid input."
    return str(detail)


def envelope_exception_handler(exc, context):
    """Map domain and framework exceptions onto ``{success: false, error: {...}}``."""
    if isinstance(exc, DomainError):
        if exc.code == ErrorCode.INTERNAL_ERROR:
            correlation_id = uuid.uuid4().hex
            logger.error(
                "api: internal domain error",
                extra={"correlation_id": correlation_id, "error": exc.message},
            )
            return error_envelope(
                ErrorCode.INTERNAL_ERROR,
                INTERNAL_ERROR_MESSAGE,
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
                details={"correlation_id": correlation_id},
            )
        return domain_error_response(exc)

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        correlation_id = uuid.uuid4().hex
        view = context.get("view")
        logger.exception(
            "api: unhandled error in %s",
            view.__class__.__name__ if view is not None else "unknown view",
            extra={"correlation_id": correlation_id},
        )
        return error_envelope(
            ErrorCode.INTERNAL_ERROR,
            INTERNAL_ERROR_MESSAGE,
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"correlation_id": correlation_id},
        )

    if isinstance(exc, exceptions.ValidationError):
        code = ErrorCode.VALIDATION_ERROR
        details = {"fields": exc.detail} if isinstance(exc.detail, dict) else None
    elif isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        code = ErrorCode.UNAUTHORIZED
        details = None
    elif isinstance(exc, exceptions.PermissionDenied):
        code = ErrorCode.FORBIDDEN
        details = None
    elif isinstance(exc, exceptions.NotFound):
        code = ErrorCode.NOT_FOUND
        details = None
    elif isinstance(exc, exceptions.ParseError):
        code = ErrorCode.VALIDATION_ERROR
        details = None
    else:
        code = ErrorCode.BUSINESS_RULE_VIOLATION if response.status_code < 500 else ErrorCode.INTERNAL_ERROR
        details = None

    rendered = error_envelope(
        code,
        _flatten_detail(exc.detail),
        status=response.status_code,
        details=details,
    )
    for header in ("WWW-Authenticate", "Retry-After"):
        if header in response:
            rendered[header] = response[header]
    return rendered
