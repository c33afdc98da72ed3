"""HTTP surface of the payment reconciliation engine."""

from __future__ import annotations

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
    throttle_classes,
)
from rest_framework.permissions import IsAuthenticated

from bookings.models import Booking
from core.authz import ActorContext, require_booking_access, require_booking_customer
from core.errors import DomainError, ErrorCode, NotFound
from core.responses import domain_error_response, envelope, error_envelope

from . import midtrans, reconciliation
from .models import Payment
from .serializers import (
    ClientConfirmationSerializer,
    MidtransNotificationSerializer,
    PaymentIntentSerializer,
    PaymentSerializer,
)

logger = logging.getLogger(__name__)


def _result_payload(result: reconciliation.ReconcileResult) -> dict:
    return {
        "order_id": result.payment.order_id,
        "payment_status": result.payment.status,
        "booking_id": result.booking.id,
        "booking_status": result.booking.status,
        "booking_payment_status": result.booking.payment_status,
        "paid_amount": f"{result.booking.paid_amount:.2f}",
        "applied": result.applied,
        "outcome": result.outcome,
    }


def _get_payment(order_id: str) -> Payment:
    try:
        return Payment.objects.select_related("booking", "booking__property").get(order_id=order_id)
    except Payment.DoesNotExist as exc:
        raise NotFound("Payment not found.", details={"order_id": order_id}) from exc


def _plain_payload(data) -> dict:
    if hasattr(data, "dict"):
        return data.dict()
    return dict(data) if isinstance(data, dict) else {}


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payment_config(request):
    """Public Snap settings the browser needs to open the payment popup."""
    with reconciliation.gateway_errors("client config"):
        client_key = midtrans.get_client_key()
    return envelope(
        {
            "client_key": client_key,
            "snap_script_url": midtrans.get_snap_script_url(),
            "is_production": bool(settings.MIDTRANS_IS_PRODUCTION),
        }
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def create_payment_intent(request):
    serializer = PaymentIntentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    booking_id = serializer.validated_data["booking_id"]
    booking = Booking.objects.select_related("property").filter(pk=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found.", details={"booking_id": booking_id})
    require_booking_customer(ActorContext.from_request(request), booking)

    payment = reconciliation.create_intent(booking.id, serializer.validated_data["payment_type"])
    return envelope(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
@throttle_classes([])
def midtrans_notify(request):
    """
    Midtrans HTTP notification endpoint.

    Anything Midtrans should not retry (bad signature, unknown order, business
    rule) is answered with 200 and ``success: false``; unexpected failures
    surface as 500 so Midtrans delivers again.
    """
    payload = _plain_payload(request.data)
    serializer = MidtransNotificationSerializer(data=payload)
    if not serializer.is_valid():
        logger.warning("payments: malformed midtrans notification", extra={"errors": serializer.errors})
        return error_envelope(
            ErrorCode.VALIDATION_ERROR,
            "Malformed notification.",
            status=status.HTTP_400_BAD_REQUEST,
            details={"fields": serializer.errors},
        )
    data = serializer.validated_data

    with reconciliation.gateway_errors("signature check"):
        signature_ok = midtrans.verify_notification_signature(
            data["order_id"],
            data["status_code"],
            data["gross_amount"],
            data["signature_key"],
        )
    if not signature_ok:
        logger.warning(
            "payments: invalid midtrans signature",
            extra={"order_id": data["order_id"], "transaction_status": data["transaction_status"]},
        )
        return error_envelope(
            ErrorCode.FORBIDDEN,
            "Invalid signature.",
            status=status.HTTP_200_OK,
        )

    try:
        result = reconciliation.reconcile_gateway_payload(payload, source="webhook")
    except DomainError as exc:
        logger.warning(
            "payments: notification not applied",
            extra={"order_id": data["order_id"], "code": exc.code, "error": exc.message},
        )
        return domain_error_response(exc, status=status.HTTP_200_OK)
    return envelope(_result_payload(result))


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def confirm_client(request):
    """
    Fallback confirmation sent by the browser after the Snap popup closes.

    Only settled outcomes are acted on. With verification enabled the
    browser's fields are ignored and the gateway is asked directly.
    """
    serializer = ClientConfirmationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    payment = _get_payment(data["order_id"])
    require_booking_access(ActorContext.from_request(request), payment.booking)

    transaction_status = data["transaction_status"].strip().lower()
    if transaction_status not in reconciliation.SUCCESS_STATUSES:
        return envelope(
            {
                "order_id": payment.order_id,
                "payment_status": payment.status,
                "booking_id": payment.booking_id,
                "booking_status": payment.booking.status,
                "applied": False,
                "outcome": "pending",
                "message": "Payment is still being processed.",
            }
        )

    if settings.MIDTRANS_VERIFY_CLIENT_CONFIRMATION:
        result = reconciliation.refresh_from_gateway(payment.order_id)
    else:
        result = reconciliation.reconcile(
            payment.order_id,
            transaction_status,
            fraud_status=data.get("fraud_status") or None,
            transaction_id=data.get("transaction_id") or None,
            payment_method=data.get("payment_type") or None,
            transaction_time=data.get("transaction_time") or None,
            gross_amount=data.get("gross_amount") or None,
            raw=dict(data),
            source="client",
        )
    return envelope(_result_payload(result))


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payment_detail(request, order_id: str):
    payment = _get_payment(order_id)
    require_booking_access(ActorContext.from_request(request), payment.booking)
    data = PaymentSerializer(payment).data
    data["booking_status"] = payment.booking.status
    data["booking_payment_status"] = payment.booking.payment_status
    return envelope(data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def refresh_payment(request, order_id: str):
    payment = _get_payment(order_id)
    require_booking_access(ActorContext.from_request(request), payment.booking)
    result = reconciliation.refresh_from_gateway(payment.order_id)
    return envelope(_result_payload(result))


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def void_payment(request, order_id: str):
    payment = _get_payment(order_id)
    require_booking_access(ActorContext.from_request(request), payment.booking)
    result = reconciliation.void_intent(payment.order_id)
    return envelope(_result_payload(result))
