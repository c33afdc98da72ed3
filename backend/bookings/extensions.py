"""Lease extensions: quote a renewed period and hand the payment to reconciliation.

The booking itself is not touched here. Its new check-out date and total are
written by the reconciliation engine in the same transaction that records the
successful extension payment.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.utils import timezone

from core.errors import BusinessRuleViolation, NotFound, ValidationFailed
from core.money import round_to_unit
from payments.models import Payment
from payments.reconciliation import ExtensionTerms, create_intent
from properties.services import price_for_lease

from .domain import overlapping_bookings
from .models import Booking
from .periods import add_period, add_periods

logger = logging.getLogger(__name__)

EXTENSION_ELIGIBLE_STATUSES = frozenset(
    {Booking.Status.CONFIRMED, Booking.Status.CHECKED_IN, Booking.Status.DEPOSIT_PAID}
)
DEPOSIT_OPTION_DEPOSIT = "deposit"
DEPOSIT_OPTION_FULL = "full"
DEPOSIT_OPTIONS = (DEPOSIT_OPTION_DEPOSIT, DEPOSIT_OPTION_FULL)


@dataclass(frozen=True)
class ExtensionQuote:
    eligible: bool
    reason: str
    booking_id: int
    lease_type: str
    periods: int
    current_check_out_date: date | None = None
    base_date: date | None = None
    new_check_out_date: date | None = None
    extension_amount: Decimal | None = None
    total_amount: Decimal | None = None
    deposit_amount: Decimal | None = None
    max_periods: int = 0

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
            elif isinstance(value, date):
                data[key] = value.isoformat()
        return data


def max_periods() -> int:
    return int(getattr(settings, "EXTENSION_MAX_PERIODS", 12))


def calculate_new_check_out_date(current_check_out: date, lease_type: str, periods: int) -> date:
    """``current_check_out`` advanced by ``periods`` calendar units of ``lease_type``."""
    return add_periods(current_check_out, lease_type, periods)


def validate_periods(periods: Any) -> int:
    try:
        value = int(periods)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("periods must be a whole number.") from exc
    if value < 1 or value > max_periods():
        raise ValidationFailed(
            f"periods must be between 1 and {max_periods()}.",
            details={"periods": value},
        )
    return value


def _ineligible(booking: Booking, periods: int, reason: str) -> ExtensionQuote:
    return ExtensionQuote(
        eligible=False,
        reason=reason,
        booking_id=booking.id,
        lease_type=booking.lease_type,
        periods=periods,
        current_check_out_date=booking.check_out_date,
        max_periods=max_periods(),
    )


def extension_base_date(booking: Booking) -> date:
    """
    Date an extension is counted from.

    Open-ended bookings have their first period billed already, so they
    extend from the end of that period, or from today once it has passed.
    """
    if booking.check_out_date is not None:
        return booking.check_out_date
    first_period_end = add_period(booking.check_in_date, booking.lease_type)
    return max(timezone.localdate(), first_period_end)


def quote(booking_id: int, periods: int = 1) -> ExtensionQuote:
    """
    Price an extension of ``periods`` lease periods.

    An ineligible booking is an expected answer, not an error: the quote comes
    back with ``eligible=False`` and a reason for the customer.
    """
    periods = validate_periods(periods)
    try:
        booking = Booking.objects.select_related("room").get(pk=booking_id)
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.", details={"booking_id": booking_id}) from exc

    if booking.status not in EXTENSION_ELIGIBLE_STATUSES:
        return _ineligible(
            booking,
            periods,
            "Only confirmed, deposit-paid or checked-in bookings can be extended.",
        )
    if booking.payments.filter(status=Payment.Status.PENDING).exists():
        return _ineligible(
            booking,
            periods,
            "A payment for this booking is still pending; finish or void it first.",
        )

    base_date = extension_base_date(booking)
    new_check_out = calculate_new_check_out_date(base_date, booking.lease_type, periods)
    if new_check_out <= booking.check_in_date:
        return _ineligible(
            booking,
            periods,
            "The extended stay would end before it starts.",
        )
    clash = overlapping_bookings(
        booking.room,
        base_date,
        new_check_out,
        exclude_booking_id=booking.id,
    )
    if clash.exists():
        return _ineligible(
            booking,
            periods,
            "The room is booked by another guest during the extension period.",
        )

    price = price_for_lease(booking.room, booking.lease_type)
    total = price * periods
    rate = Decimal(settings.BOOKING_DEFAULT_DEPOSIT_RATE)
    return ExtensionQuote(
        eligible=True,
        reason="",
        booking_id=booking.id,
        lease_type=booking.lease_type,
        periods=periods,
        current_check_out_date=booking.check_out_date,
        base_date=base_date,
        new_check_out_date=new_check_out,
        extension_amount=price,
        total_amount=total,
        deposit_amount=round_to_unit(total * rate),
        max_periods=max_periods(),
    )


def apply(booking_id: int, periods: Any, deposit_option: str) -> tuple[Payment, ExtensionQuote]:
    """Re-quote and open an extension payment intent for the chosen option."""
    periods = validate_periods(periods)
    if deposit_option not in DEPOSIT_OPTIONS:
        raise ValidationFailed(
            "depositOption must be 'deposit' or 'full'.",
            details={"deposit_option": deposit_option},
        )

    extension_quote = quote(booking_id, periods)
    if not extension_quote.eligible:
        raise BusinessRuleViolation(
            f"Booking not eligible for extension: {extension_quote.reason}",
            details={"booking_id": booking_id},
        )

    if deposit_option == DEPOSIT_OPTION_DEPOSIT:
        payment_type = Payment.Type.DEPOSIT
        amount = extension_quote.deposit_amount
    else:
        payment_type = Payment.Type.FULL
        amount = extension_quote.total_amount

    payment = create_intent(
        booking_id,
        payment_type,
        extension=ExtensionTerms(
            periods=periods,
            new_check_out_date=extension_quote.new_check_out_date,
            total_amount=extension_quote.total_amount,
        ),
        amount=amount,
    )
    logger.info(
        "bookings: extension requested",
        extra={
            "booking_id": booking_id,
            "order_id": payment.order_id,
            "periods": periods,
            "deposit_option": deposit_option,
        },
    )
    return payment, extension_quote
