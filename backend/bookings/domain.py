"""Booking lifecycle: creation, front-desk transitions and terminal states."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from core.errors import BusinessRuleViolation, Conflict, NotFound, ValidationFailed
from properties.models import LeaseType, Room
from properties.services import deposit_for, is_exclusive_lease, price_for_lease

from .models import Booking
from .periods import add_period, periods_between

logger = logging.getLogger(__name__)

CHECK_IN_ALLOWED_STATUSES = frozenset({Booking.Status.CONFIRMED, Booking.Status.DEPOSIT_PAID})
EXPIRABLE_STATUSES = frozenset({Booking.Status.UNPAID, Booking.Status.PENDING})


def lock_booking(booking_id: int) -> Booking:
    """Fetch a booking row under ``SELECT ... FOR UPDATE``; call inside a transaction."""
    try:
        return (
            Booking.objects.select_for_update()
            .select_related("room", "property")
            .get(pk=booking_id)
        )
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.", details={"booking_id": booking_id}) from exc


def validate_booking_dates(
    check_in_date: date | None,
    check_out_date: date | None,
    *,
    today: date | None = None,
) -> None:
    if not check_in_date:
        raise ValidationFailed("Check-in date is required.")
    today = today or timezone.localdate()
    if check_in_date < today:
        raise ValidationFailed("Check-in date cannot be in the past.")
    if check_out_date is not None and check_out_date <= check_in_date:
        raise ValidationFailed("Check-out date must be after check-in date.")


def overlapping_bookings(
    room: Room,
    start: date,
    end: date | None,
    *,
    exclude_booking_id: Optional[int] = None,
) -> QuerySet[Booking]:
    """
    Blocking bookings of ``room`` that intersect ``[start, end)``.

    A missing end date means the stay is open-ended and blocks every later day.
    """
    qs = Booking.objects.filter(room=room, status__in=Booking.BLOCKING_STATUSES)
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    qs = qs.filter(Q(check_out_date__isnull=True) | Q(check_out_date__gt=start))
    if end is not None:
        qs = qs.filter(check_in_date__lt=end)
    return qs


def ensure_room_available(
    room: Room,
    start: date,
    end: date | None,
    *,
    exclude_booking_id: Optional[int] = None,
) -> None:
    if overlapping_bookings(room, start, end, exclude_booking_id=exclude_booking_id).exists():
        raise Conflict(
            "Room is already booked for the selected dates.",
            details={"room_id": room.id},
        )


def _room_is_blocked_outside_bookings(room: Room) -> bool:
    """True when the room is marked unavailable but no booking holds that flag."""
    if room.is_available:
        return False
    return not Booking.objects.filter(
        room=room,
        holds_room=True,
        status__in=Booking.BLOCKING_STATUSES,
    ).exists()


def create_booking(
    *,
    customer,
    room_id: int,
    lease_type: str,
    check_in_date: date,
    check_out_date: date | None = None,
    open_ended: bool = False,
) -> Booking:
    """
    Reserve a room in ``UNPAID`` and snapshot its price.

    The room row is locked for the whole transaction so two concurrent requests
    for the same room serialize; the loser sees the winner's booking and gets
    a conflict.
    """
    if lease_type not in LeaseType.values:
        raise ValidationFailed(f"Unknown lease type {lease_type!r}.")
    validate_booking_dates(check_in_date, check_out_date)
    if open_ended:
        check_out_date = None
    elif check_out_date is None:
        check_out_date = add_period(check_in_date, lease_type)

    with transaction.atomic():
        try:
            room = Room.objects.select_for_update().select_related("property").get(pk=room_id)
        except Room.DoesNotExist as exc:
            raise NotFound("Room not found.", details={"room_id": room_id}) from exc

        if not room.property.is_approved:
            raise BusinessRuleViolation("This property is not open for bookings.")
        if _room_is_blocked_outside_bookings(room):
            raise Conflict("Room is not available.", details={"room_id": room.id})
        ensure_room_available(room, check_in_date, check_out_date)

        price = price_for_lease(room, lease_type)
        total = price * periods_between(check_in_date, check_out_date, lease_type)
        exclusive = is_exclusive_lease(lease_type)
        takes_flag = exclusive and room.is_available

        booking = Booking.objects.create(
            customer=customer,
            property=room.property,
            room=room,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            lease_type=lease_type,
            total_amount=total,
            deposit_amount=deposit_for(room, total),
            holds_room=takes_flag,
        )
        if takes_flag:
            room.is_available = False
            room.save(update_fields=["is_available"])

    logger.info(
        "bookings: created",
        extra={
            "booking_id": booking.id,
            "booking_code": booking.booking_code,
            "room_id": room.id,
            "lease_type": lease_type,
            "total_amount": str(total),
        },
    )
    return booking


def release_room(booking: Booking) -> None:
    """
    Give up the room's availability flag if this booking holds it.

    When another exclusive booking of the room is still active it inherits the
    flag instead of the room going back on the market.
    """
    if not booking.holds_room:
        return
    booking.holds_room = False
    booking.save(update_fields=["holds_room", "updated_at"])

    room = Room.objects.select_for_update().get(pk=booking.room_id)
    successor = (
        Booking.objects.select_for_update()
        .filter(room=room, status__in=Booking.BLOCKING_STATUSES)
        .exclude(pk=booking.pk)
        .filter(lease_type__in=_exclusive_lease_types())
        .order_by("check_in_date", "id")
        .first()
    )
    if successor is not None:
        successor.holds_room = True
        successor.save(update_fields=["holds_room", "updated_at"])
        return
    room.is_available = True
    room.save(update_fields=["is_available"])


def _exclusive_lease_types() -> list[str]:
    return [value for value in LeaseType.values if is_exclusive_lease(value)]


def check_in(booking_id: int) -> Booking:
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.status not in CHECK_IN_ALLOWED_STATUSES:
            raise BusinessRuleViolation(
                "Only confirmed or deposit-paid bookings can be checked in.",
                details={"status": booking.status},
            )
        now = timezone.now()
        booking.status = Booking.Status.CHECKED_IN
        booking.actual_check_in_at = now
        if not booking.is_validated:
            booking.is_validated = True
            booking.validated_at = now
        booking.save(
            update_fields=[
                "status",
                "actual_check_in_at",
                "is_validated",
                "validated_at",
                "updated_at",
            ]
        )
    logger.info("bookings: checked in", extra={"booking_id": booking.id})
    return booking


def check_out(booking_id: int) -> Booking:
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.status != Booking.Status.CHECKED_IN:
            raise BusinessRuleViolation(
                "Only checked-in bookings can be checked out.",
                details={"status": booking.status},
            )
        booking.status = Booking.Status.CHECKED_OUT
        booking.actual_check_out_at = timezone.now()
        booking.save(update_fields=["status", "actual_check_out_at", "updated_at"])
        release_room(booking)
    logger.info("bookings: checked out", extra={"booking_id": booking.id})
    return booking


def complete(booking_id: int) -> Booking:
    """Promote ``CHECKED_OUT`` to ``COMPLETED``; repeating it is a no-op."""
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.status == Booking.Status.COMPLETED:
            return booking
        if booking.status != Booking.Status.CHECKED_OUT:
            raise BusinessRuleViolation(
                "Only checked-out bookings can be completed.",
                details={"status": booking.status},
            )
        booking.status = Booking.Status.COMPLETED
        booking.save(update_fields=["status", "updated_at"])
    logger.info("bookings: completed", extra={"booking_id": booking.id})
    return booking


def cancel(booking_id: int, reason: str = "") -> Booking:
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.is_terminal():
            raise BusinessRuleViolation(
                "This booking can no longer be cancelled.",
                details={"status": booking.status},
            )
        booking.status = Booking.Status.CANCELLED
        booking.cancel_reason = (reason or "").strip()
        booking.cancelled_at = timezone.now()
        booking.save(update_fields=["status", "cancel_reason", "cancelled_at", "updated_at"])
        release_room(booking)
    logger.info(
        "bookings: cancelled",
        extra={"booking_id": booking.id, "reason": booking.cancel_reason},
    )
    return booking


def expire(booking_id: int) -> Booking:
    """Terminalize a booking whose payment window lapsed without a successful payment."""
    with transaction.atomic():
        booking = lock_booking(booking_id)
        if booking.status not in EXPIRABLE_STATUSES:
            raise BusinessRuleViolation(
                "Only unpaid or payment-pending bookings can expire.",
                details={"status": booking.status},
            )
        booking.status = Booking.Status.EXPIRED
        booking.save(update_fields=["status", "updated_at"])
        release_room(booking)
    logger.info("bookings: expired", extra={"booking_id": booking.id})
    return booking
