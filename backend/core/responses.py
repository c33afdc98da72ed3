"""Uniform response envelope for the public API."""

from __future__ import annotations

from typing import Any

from rest_framework import status as http_status
from rest_framework.response import Response

from .errors import DomainError


def envelope(data: Any = None, *, status: int = http_status.HTTP_200_OK) -> Response:
    """Return ``{"success": true, "data": ...}``."""
    return Response({"success": True, "data": data}, status=status)


def error_envelope(
    code: str,
    message: str,
    *,
    status: int,
    details: dict[str, Any] | None = None,
) -> Response:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return Response({"success": False, "error": error}, status=status)


def domain_error_response(exc: DomainError, *, status: int | None = None) -> Response:
    """Render a DomainError, optionally overriding its HTTP status."""
    return Response(
        {"success": False, "error": exc.as_dict()},
        status=status if status is not None else exc.http_status,
    )
