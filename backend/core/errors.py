"""Domain error taxonomy shared by the booking, payment and payout services."""

from __future__ import annotations

from typing import Any

from rest_framework import status


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    EXTERNAL_GATEWAY_ERROR = "EXTERNAL_GATEWAY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DomainError(Exception):
    """Base class for errors a core operation reports to its caller."""

    code = ErrorCode.INTERNAL_ERROR
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(DomainError):
    code = ErrorCode.VALIDATION_ERROR
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input."


class NotFound(DomainError):
    code = ErrorCode.NOT_FOUND
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class Forbidden(DomainError):
    code = ErrorCode.FORBIDDEN
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this resource."


class Conflict(DomainError):
    code = ErrorCode.CONFLICT
    http_status = status.HTTP_409_CONFLICT
    default_message = "Resource conflict."


class BusinessRuleViolation(DomainError):
    code = ErrorCode.BUSINESS_RULE_VIOLATION
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Operation not allowed in the current state."


class ExternalGatewayError(DomainError):
    """Payment provider unreachable or answered with an unexpected shape."""

    code = ErrorCode.EXTERNAL_GATEWAY_ERROR
    http_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider is temporarily unavailable. Please try again."
