"""Payment reconciliation engine.

Every change to ``Payment.status`` goes through :func:`reconcile`, and with it
every booking transition caused by money. Webhook deliveries, client-side
confirmations, status refreshes and the expiry sweep all land here.
"""

from __future__ import annotations

import contextlib
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from bookings.domain import lock_booking
from bookings.models import Booking
from core.errors import (
    BusinessRuleViolation,
    ExternalGatewayError,
    NotFound,
    ValidationFailed,
)
from core.money import ZERO, quantize_money
from notifications import tasks as notification_tasks

from . import midtrans
from .models import Payment

logger = logging.getLogger(__name__)

ORDER_ID_PREFIXES = {
    Payment.Type.DEPOSIT: "DEP",
    Payment.Type.FULL: "FULL",
}
EXTENSION_ORDER_ID_PREFIX = "EXT"

DEPOSIT_ALLOWED_STATUSES = frozenset({Booking.Status.UNPAID, Booking.Status.PENDING})
FULL_ALLOWED_STATUSES = frozenset(
    {Booking.Status.UNPAID, Booking.Status.PENDING, Booking.Status.DEPOSIT_PAID}
)
# Once confirmed, a remaining balance (left by a deposit-paid extension) can
# still be settled with a FULL payment.
FULL_OUTSTANDING_STATUSES = frozenset({Booking.Status.CONFIRMED, Booking.Status.CHECKED_IN})
PRE_CONFIRMATION_STATUSES = frozenset(
    {Booking.Status.UNPAID, Booking.Status.PENDING, Booking.Status.DEPOSIT_PAID}
)
EXTENSION_APPLICABLE_STATUSES = frozenset(
    {Booking.Status.DEPOSIT_PAID, Booking.Status.CONFIRMED, Booking.Status.CHECKED_IN}
)

SUCCESS_STATUSES = frozenset({"settlement", "capture"})
FAILED_STATUSES = frozenset({"deny", "cancel", "failure"})
IGNORED_STATUSES = frozenset({"refund", "partial_refund", "chargeback", "partial_chargeback"})


@dataclass(frozen=True)
class ExtensionTerms:
    """What a paid extension does to its booking."""

    periods: int
    new_check_out_date: date
    total_amount: Decimal


@dataclass(frozen=True)
class ReconcileResult:
    payment: Payment
    booking: Booking
    applied: bool
    outcome: str


def map_gateway_status(transaction_status: str, fraud_status: str | None = None) -> Optional[str]:
    """
    Map a Midtrans ``transaction_status`` onto a Payment status.

    Returns ``None`` for statuses this engine does not act on (refunds and
    anything unknown).
    """
    status = (transaction_status or "").strip().lower()
    fraud = (fraud_status or "").strip().lower()
    if status == "capture":
        if fraud in ("", "accept"):
            return Payment.Status.SUCCESS
        if fraud == "challenge":
            return Payment.Status.PENDING
        return Payment.Status.FAILED
    if status == "settlement":
        return Payment.Status.SUCCESS
    if status == "pending":
        return Payment.Status.PENDING
    if status in FAILED_STATUSES:
        return Payment.Status.FAILED
    if status == "expire":
        return Payment.Status.EXPIRED
    return None


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    encoded = []
    while value:
        value, remainder = divmod(value, 36)
        encoded.append(digits[remainder])
    return "".join(reversed(encoded))


def generate_order_id(booking: Booking, payment_type: str, *, is_extension: bool = False) -> str:
    prefix = EXTENSION_ORDER_ID_PREFIX if is_extension else ORDER_ID_PREFIXES[payment_type]
    stamp = _to_base36(int(time.time() * 1000))
    return f"{prefix}-{booking.booking_code[-8:]}-{stamp}{secrets.token_hex(2)}".upper()


def _expiry_hours(payment_type: str) -> int:
    if payment_type == Payment.Type.DEPOSIT:
        return int(settings.PAYMENT_EXPIRY_HOURS_DEPOSIT)
    return int(settings.PAYMENT_EXPIRY_HOURS_FULL)


@contextlib.contextmanager
def gateway_errors(action: str) -> Iterator[None]:
    """Translate adapter exceptions into EXTERNAL_GATEWAY_ERROR."""
    try:
        yield
    except midtrans.MidtransConfigurationError as exc:
        logger.error("payments: midtrans misconfigured during %s: %s", action, exc)
        raise ExternalGatewayError() from exc
    except midtrans.MidtransTransientError as exc:
        logger.warning("payments: midtrans transient failure during %s: %s", action, exc)
        raise ExternalGatewayError() from exc
    except midtrans.MidtransRequestError as exc:
        logger.warning("payments: midtrans rejected %s: %s", action, exc)
        raise ExternalGatewayError(f"Payment provider rejected the request: {exc}") from exc


def _intent_amount(booking: Booking, payment_type: str, extension_amount: Decimal | None) -> Decimal:
    if extension_amount is not None:
        return quantize_money(extension_amount)
    if payment_type == Payment.Type.DEPOSIT:
        return quantize_money(booking.deposit_amount or ZERO)
    return quantize_money(booking.total_amount - booking.paid_amount)


def _validate_intent(
    booking: Booking,
    payment_type: str,
    *,
    is_extension: bool,
) -> None:
    """Raise if ``booking`` cannot take a new payment intent of ``payment_type``."""
    if payment_type not in Payment.Type.values:
        raise ValidationFailed(f"Unknown payment type {payment_type!r}.")

    pending = {
        p.payment_type
        for p in booking.payments.filter(status=Payment.Status.PENDING).only("payment_type")
    }
    if payment_type in pending:
        raise BusinessRuleViolation(
            "A pending payment of this type already exists; reuse or void it first.",
            details={"booking_id": booking.id, "payment_type": payment_type},
        )
    if pending:
        raise BusinessRuleViolation(
            "Another payment for this booking is still pending; finish or void it first.",
            details={"booking_id": booking.id, "pending_types": sorted(pending)},
        )

    if is_extension:
        if booking.status not in EXTENSION_APPLICABLE_STATUSES:
            raise BusinessRuleViolation(
                "Booking is not eligible for extension.",
                details={"status": booking.status},
            )
        return

    if payment_type == Payment.Type.DEPOSIT:
        if booking.status not in DEPOSIT_ALLOWED_STATUSES:
            raise BusinessRuleViolation(
                "A deposit can only be paid before the booking is secured.",
                details={"status": booking.status},
            )
        if booking.payments.filter(
            payment_type=Payment.Type.DEPOSIT,
            status=Payment.Status.SUCCESS,
            is_extension=False,
        ).exists():
            raise BusinessRuleViolation("Deposit has already been paid for this booking.")
        if not booking.deposit_amount or booking.deposit_amount <= ZERO:
            raise BusinessRuleViolation("This booking has no deposit to pay.")
        if booking.deposit_amount >= booking.outstanding_amount():
            raise BusinessRuleViolation("The deposit covers the whole balance; pay in full instead.")
        return

    allowed = FULL_ALLOWED_STATUSES | FULL_OUTSTANDING_STATUSES
    if booking.status not in allowed:
        raise BusinessRuleViolation(
            f"Cannot create a payment for a booking with status {booking.status}.",
            details={"status": booking.status},
        )
    if booking.outstanding_amount() <= ZERO:
        raise BusinessRuleViolation("This booking is already fully paid.")


def _snap_payload(
    booking: Booking,
    *,
    order_id: str,
    payment_type: str,
    amount: Decimal,
    is_extension: bool,
    now: datetime,
) -> dict[str, Any]:
    customer = booking.customer
    room = booking.room
    room_label = " ".join(part for part in (room.room_type, room.room_number) if part)
    if is_extension:
        item_name = f"Extension - {room_label}"
    elif payment_type == Payment.Type.DEPOSIT:
        item_name = f"Deposit - {room_label}"
    else:
        item_name = f"Full Payment - {room_label}"
    gross_amount = int(amount)
    return {
        "transaction_details": {"order_id": order_id, "gross_amount": gross_amount},
        "customer_details": {
            "first_name": customer.first_name or customer.username or "Customer",
            "last_name": customer.last_name or "",
            "email": customer.email or "",
            "phone": customer.phone or "",
        },
        "item_details": [
            {
                "id": str(room.id),
                "price": gross_amount,
                "quantity": 1,
                "name": item_name[:50],
            }
        ],
        "expiry": {
            "start_time": timezone.localtime(now).strftime("%Y-%m-%d %H:%M:%S %z"),
            "unit": "hour",
            "duration": _expiry_hours(payment_type),
        },
    }


def create_intent(
    booking_id: int,
    payment_type: str,
    *,
    extension: ExtensionTerms | None = None,
    amount: Decimal | None = None,
) -> Payment:
    """
    Request a Snap token and persist a PENDING payment for it.

    Nothing is written until the gateway hands back a token, so a gateway
    failure leaves no trace and the call can simply be retried.
    """
    is_extension = extension is not None
    try:
        booking = Booking.objects.select_related("customer", "room").get(pk=booking_id)
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.", details={"booking_id": booking_id}) from exc

    _validate_intent(booking, payment_type, is_extension=is_extension)
    intent_amount = _intent_amount(booking, payment_type, amount)
    if intent_amount <= ZERO:
        raise BusinessRuleViolation("Nothing to pay for this booking.")

    now = timezone.now()
    order_id = generate_order_id(booking, payment_type, is_extension=is_extension)
    payload = _snap_payload(
        booking,
        order_id=order_id,
        payment_type=payment_type,
        amount=intent_amount,
        is_extension=is_extension,
        now=now,
    )
    with gateway_errors("create transaction"):
        snap = midtrans.create_snap_transaction(payload)

    with transaction.atomic():
        booking = lock_booking(booking_id)
        # State may have moved while the gateway call was in flight.
        _validate_intent(booking, payment_type, is_extension=is_extension)
        if not is_extension and _intent_amount(booking, payment_type, amount) != intent_amount:
            raise BusinessRuleViolation("Booking amounts changed; please retry.")
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    booking=booking,
                    order_id=order_id,
                    payment_type=payment_type,
                    amount=intent_amount,
                    snap_token=snap["token"],
                    redirect_url=snap["redirect_url"],
                    expiry_time=now + timedelta(hours=_expiry_hours(payment_type)),
                    is_extension=is_extension,
                    extension_periods=extension.periods if extension else None,
                    extension_check_out_date=extension.new_check_out_date if extension else None,
                    extension_total_amount=extension.total_amount if extension else None,
                )
        except IntegrityError as exc:
            raise BusinessRuleViolation(
                "A pending payment of this type already exists; reuse or void it first."
            ) from exc

        if booking.status == Booking.Status.UNPAID:
            booking.status = Booking.Status.PENDING
            booking.payment_status = Booking.PaymentStatus.PENDING
            booking.save(update_fields=["status", "payment_status", "updated_at"])

    logger.info(
        "payments: intent created",
        extra={
            "booking_id": booking.id,
            "order_id": order_id,
            "payment_type": payment_type,
            "amount": str(intent_amount),
            "is_extension": is_extension,
        },
    )
    return payment


def _parse_transaction_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            return None
    if timezone.is_naive(parsed):
        # Midtrans reports wall-clock time in the merchant's timezone.
        parsed = timezone.make_aware(parsed, timezone.get_current_timezone())
    return parsed


def _parse_amount(value: Any) -> Decimal:
    try:
        return quantize_money(Decimal(str(value)))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFailed("gross_amount is not a number.") from exc


def _derive_payment_status(booking: Booking) -> str:
    if booking.paid_amount >= booking.total_amount:
        return Booking.PaymentStatus.PAID
    if booking.paid_amount > ZERO:
        return Booking.PaymentStatus.PARTIALLY_PAID
    if booking.payments.filter(status=Payment.Status.PENDING).exists():
        return Booking.PaymentStatus.PENDING
    return Booking.PaymentStatus.UNPAID


def _apply_success(payment: Payment, booking: Booking) -> list[str]:
    """Credit a successful payment to its booking; caller holds both row locks."""
    update_fields = ["paid_amount", "payment_status", "updated_at"]

    if booking.status in (Booking.Status.CANCELLED, Booking.Status.EXPIRED):
        logger.warning(
            "payments: success on %s booking; needs manual refund",
            booking.status.lower(),
            extra={"booking_id": booking.id, "order_id": payment.order_id},
        )
    elif payment.is_extension and payment.extension_check_out_date:
        if booking.status in EXTENSION_APPLICABLE_STATUSES:
            booking.check_out_date = payment.extension_check_out_date
            booking.total_amount = booking.total_amount + (payment.extension_total_amount or ZERO)
            update_fields += ["check_out_date", "total_amount"]
            logger.info(
                "payments: extension applied",
                extra={
                    "booking_id": booking.id,
                    "order_id": payment.order_id,
                    "check_out_date": payment.extension_check_out_date.isoformat(),
                    "periods": payment.extension_periods,
                },
            )
        else:
            logger.warning(
                "payments: extension paid but booking is %s; not applied",
                booking.status,
                extra={"booking_id": booking.id, "order_id": payment.order_id},
            )

    credit = payment.amount
    outstanding = booking.total_amount - booking.paid_amount
    if credit > outstanding:
        logger.error(
            "payments: payment exceeds outstanding balance; crediting the remainder only",
            extra={
                "booking_id": booking.id,
                "order_id": payment.order_id,
                "amount": str(payment.amount),
                "outstanding": str(outstanding),
            },
        )
        credit = max(outstanding, ZERO)
    booking.paid_amount = booking.paid_amount + credit
    booking.payment_status = _derive_payment_status(booking)

    if booking.status in PRE_CONFIRMATION_STATUSES:
        fully_paid = booking.paid_amount >= booking.total_amount
        settles_stay = payment.payment_type == Payment.Type.FULL and not payment.is_extension
        if settles_stay or fully_paid:
            booking.status = Booking.Status.CONFIRMED
        else:
            booking.status = Booking.Status.DEPOSIT_PAID
        update_fields.append("status")
    return update_fields


def _lock_payment(order_id: str) -> Payment:
    try:
        return Payment.objects.select_for_update().get(order_id=order_id)
    except Payment.DoesNotExist as exc:
        raise NotFound("Payment not found.", details={"order_id": order_id}) from exc


def reconcile(
    order_id: str,
    gateway_status: str,
    *,
    fraud_status: str | None = None,
    transaction_id: str | None = None,
    payment_method: str | None = None,
    transaction_time: Any = None,
    gross_amount: Any = None,
    raw: dict[str, Any] | None = None,
    source: str = "webhook",
) -> ReconcileResult:
    """
    Apply a gateway-reported outcome to a payment exactly once.

    The payment row is locked first and the booking second; a caller that
    loses a race sees the terminal status left by the winner and returns
    without touching anything.
    """
    log_extra = {
        "order_id": order_id,
        "gateway_status": gateway_status,
        "fraud_status": fraud_status,
        "transaction_id": transaction_id,
        "source": source,
    }
    logger.info("payments: reconcile received", extra=log_extra)
    target_status = map_gateway_status(gateway_status, fraud_status)
    send_confirmation = False

    with transaction.atomic():
        payment = _lock_payment(order_id)
        booking = lock_booking(payment.booking_id)

        if payment.is_terminal():
            if target_status == Payment.Status.SUCCESS and payment.status != Payment.Status.SUCCESS:
                logger.error(
                    "payments: success reported for %s payment; needs manual review",
                    payment.status.lower(),
                    extra=log_extra,
                )
            else:
                logger.info("payments: already terminal, skipping", extra=log_extra)
            return ReconcileResult(payment, booking, applied=False, outcome="duplicate")

        if gross_amount not in (None, "") and _parse_amount(gross_amount) != payment.amount:
            logger.warning(
                "payments: gross amount mismatch",
                extra={**log_extra, "expected": str(payment.amount), "got": str(gross_amount)},
            )
            raise BusinessRuleViolation(
                "Reported amount does not match the payment.",
                details={"order_id": order_id},
            )

        if target_status is None:
            logger.warning("payments: unhandled gateway status, ignoring", extra=log_extra)
            return ReconcileResult(payment, booking, applied=False, outcome="ignored")

        if transaction_id and (
            Payment.objects.filter(transaction_id=transaction_id).exclude(pk=payment.pk).exists()
        ):
            if target_status == Payment.Status.SUCCESS:
                logger.warning(
                    "payments: transaction id already settled on another payment, ignoring",
                    extra=log_extra,
                )
                return ReconcileResult(payment, booking, applied=False, outcome="duplicate")
            transaction_id = None

        payment_fields = ["status", "last_notification", "updated_at"]
        if payment_method:
            payment.payment_method = payment_method
            payment_fields.append("payment_method")
        parsed_time = _parse_transaction_time(transaction_time)
        if parsed_time:
            payment.transaction_time = parsed_time
            payment_fields.append("transaction_time")
        if transaction_id:
            payment.transaction_id = transaction_id
            payment_fields.append("transaction_id")
        payment.last_notification = dict(raw or {}, _source=source)
        payment.status = target_status
        payment.save(update_fields=payment_fields)

        if target_status == Payment.Status.PENDING:
            logger.info("payments: still pending", extra=log_extra)
            return ReconcileResult(payment, booking, applied=False, outcome="pending")

        if target_status == Payment.Status.SUCCESS:
            booking.save(update_fields=_apply_success(payment, booking))
            send_confirmation = True
            outcome = "success"
        else:
            # The customer may retry with a new intent; nothing is reverted.
            outcome = target_status.lower()

        logger.info(
            "payments: payment settled",
            extra={
                **log_extra,
                "payment_status": payment.status,
                "booking_id": booking.id,
                "booking_status": booking.status,
                "paid_amount": str(booking.paid_amount),
            },
        )
        if send_confirmation:
            payment_id = payment.id
            transaction.on_commit(lambda: _queue_payment_confirmed(payment_id))

    return ReconcileResult(payment, booking, applied=True, outcome=outcome)


def _queue_payment_confirmed(payment_id: int) -> None:
    try:
        notification_tasks.send_payment_confirmed_email.delay(payment_id)
    except Exception:
        logger.info(
            "notifications: failed to queue payment_confirmed_email",
            extra={"payment_id": payment_id},
            exc_info=True,
        )


def reconcile_gateway_payload(payload: dict[str, Any], *, source: str) -> ReconcileResult:
    """Feed a Midtrans notification or status body into :func:`reconcile`."""
    return reconcile(
        str(payload.get("order_id") or ""),
        str(payload.get("transaction_status") or ""),
        fraud_status=payload.get("fraud_status"),
        transaction_id=payload.get("transaction_id"),
        payment_method=payload.get("payment_type"),
        transaction_time=payload.get("settlement_time") or payload.get("transaction_time"),
        gross_amount=payload.get("gross_amount"),
        raw=payload,
        source=source,
    )


def refresh_from_gateway(order_id: str) -> ReconcileResult:
    """
    Pull the transaction status from Midtrans and reconcile it.

    A Snap token the customer never used has no transaction at the gateway;
    once its window is over it is reconciled as expired.
    """
    try:
        payment = Payment.objects.select_related("booking").get(order_id=order_id)
    except Payment.DoesNotExist as exc:
        raise NotFound("Payment not found.", details={"order_id": order_id}) from exc
    if payment.is_terminal():
        return ReconcileResult(payment, payment.booking, applied=False, outcome="duplicate")

    with gateway_errors("status lookup"):
        try:
            status_payload = midtrans.get_transaction_status(order_id)
        except midtrans.MidtransRequestError:
            status_payload = None

    if status_payload is None:
        if payment.expiry_time and payment.expiry_time <= timezone.now():
            return reconcile(order_id, "expire", source="refresh")
        return ReconcileResult(payment, payment.booking, applied=False, outcome="pending")
    return reconcile_gateway_payload(status_payload, source="refresh")


def void_intent(order_id: str) -> ReconcileResult:
    """Cancel a PENDING intent at the gateway and record it as failed."""
    try:
        payment = Payment.objects.get(order_id=order_id)
    except Payment.DoesNotExist as exc:
        raise NotFound("Payment not found.", details={"order_id": order_id}) from exc
    if payment.status != Payment.Status.PENDING:
        raise BusinessRuleViolation(
            "Only pending payments can be voided.",
            details={"status": payment.status},
        )

    with gateway_errors("cancel transaction"):
        try:
            midtrans.cancel_transaction(order_id)
        except midtrans.MidtransRequestError:
            # Unused Snap tokens are unknown to the core API; anything else
            # means the gateway has moved on and its status wins.
            try:
                status_payload = midtrans.get_transaction_status(order_id)
            except midtrans.MidtransRequestError:
                status_payload = None
            if status_payload is not None:
                result = reconcile_gateway_payload(status_payload, source="void")
                if result.payment.status != Payment.Status.FAILED:
                    raise BusinessRuleViolation(
                        "The payment can no longer be voided.",
                        details={"status": result.payment.status},
                    )
                return result

    return reconcile(order_id, "cancel", source="void")
