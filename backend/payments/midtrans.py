"""Midtrans Snap gateway adapter.

Thin wrapper over the Snap and Core status REST endpoints. Nothing here touches
the database; callers map the adapter exceptions onto domain errors.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

SNAP_URLS = {
    True: "https://app.midtrans.com/snap/v1/transactions",
    False: "https://app.sandbox.midtrans.com/snap/v1/transactions",
}
API_BASE_URLS = {
    True: "https://api.midtrans.com/v2",
    False: "https://api.sandbox.midtrans.com/v2",
}
SNAP_SCRIPT_URLS = {
    True: "https://app.midtrans.com/snap/snap.js",
    False: "https://app.sandbox.midtrans.com/snap/snap.js",
}


class MidtransConfigurationError(Exception):
    """Midtrans keys are missing or rejected by the gateway."""


class MidtransTransientError(Exception):
    """Temporary Midtrans/API issue that should be retried."""


class MidtransRequestError(Exception):
    """Midtrans refused the request or answered with an unexpected shape."""


def _get_server_key() -> str:
    server_key = getattr(settings, "MIDTRANS_SERVER_KEY", "")
    if not server_key:
        raise MidtransConfigurationError("Midtrans server key not configured.")
    return server_key


def _is_production() -> bool:
    return bool(getattr(settings, "MIDTRANS_IS_PRODUCTION", False))


def _timeout() -> float:
    return float(getattr(settings, "MIDTRANS_REQUEST_TIMEOUT", 10.0))


def get_client_key() -> str:
    """Client key for the Snap popup; safe to expose to browsers."""
    client_key = getattr(settings, "MIDTRANS_CLIENT_KEY", "")
    if not client_key:
        raise MidtransConfigurationError("Midtrans client key not configured.")
    return client_key


def get_snap_script_url() -> str:
    return SNAP_SCRIPT_URLS[_is_production()]


def _request(method: str, url: str, *, json: dict[str, Any] | None = None) -> dict[str, Any]:
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    try:
        response = requests.request(
            method,
            url,
            json=json,
            headers=headers,
            auth=(_get_server_key(), ""),
            timeout=_timeout(),
        )
    except requests.Timeout as exc:
        raise MidtransTransientError("Midtrans request timed out.") from exc
    except requests.RequestException as exc:
        raise MidtransTransientError("Could not reach Midtrans.") from exc

    if response.status_code in (401, 403):
        raise MidtransConfigurationError("Midtrans credentials are invalid or unauthorized.")
    if response.status_code == 429 or response.status_code >= 500:
        raise MidtransTransientError(f"Midtrans answered HTTP {response.status_code}.")

    try:
        payload = response.json()
    except ValueError as exc:
        raise MidtransRequestError("Midtrans returned a non-JSON response.") from exc
    if not isinstance(payload, dict):
        raise MidtransRequestError("Midtrans returned an unexpected response shape.")

    if response.status_code >= 400:
        messages = payload.get("error_messages") or [payload.get("status_message")]
        message = "; ".join(str(m) for m in messages if m) or f"HTTP {response.status_code}"
        raise MidtransRequestError(message)
    return payload


def create_snap_transaction(payload: dict[str, Any]) -> dict[str, str]:
    """Create a Snap transaction and return ``{"token", "redirect_url"}``."""
    data = _request("POST", SNAP_URLS[_is_production()], json=payload)
    token = data.get("token")
    redirect_url = data.get("redirect_url")
    if not token or not redirect_url:
        raise MidtransRequestError("Midtrans Snap response is missing the token.")
    return {"token": str(token), "redirect_url": str(redirect_url)}


def get_transaction_status(order_id: str) -> dict[str, Any]:
    """Fetch the gateway's current view of ``order_id``."""
    data = _request("GET", f"{API_BASE_URLS[_is_production()]}/{order_id}/status")
    # The status endpoint reports failures inside a 200 body.
    status_code = str(data.get("status_code") or "")
    if status_code.startswith(("4", "5")):
        if status_code.startswith("5"):
            raise MidtransTransientError(data.get("status_message") or "Midtrans status failed.")
        raise MidtransRequestError(data.get("status_message") or "Transaction not found.")
    return data


def cancel_transaction(order_id: str) -> dict[str, Any]:
    data = _request("POST", f"{API_BASE_URLS[_is_production()]}/{order_id}/cancel")
    status_code = str(data.get("status_code") or "")
    if status_code and not status_code.startswith("2"):
        raise MidtransRequestError(data.get("status_message") or "Cancel failed.")
    return data


def compute_signature(order_id: str, status_code: str, gross_amount: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{_get_server_key()}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_notification_signature(
    order_id: str,
    status_code: str,
    gross_amount: str,
    signature_key: str,
) -> bool:
    """Check ``SHA512(order_id + status_code + gross_amount + server_key)``."""
    if not signature_key:
        return False
    expected = compute_signature(order_id, status_code, gross_amount)
    return hmac.compare_digest(expected, signature_key.lower())
