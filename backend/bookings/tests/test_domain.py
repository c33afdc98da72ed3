"""Tests for the booking lifecycle state machine."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from bookings import domain
from bookings.models import Booking
from bookings.periods import add_period, add_periods
from core.errors import BusinessRuleViolation, Conflict, NotFound, ValidationFailed
from properties.models import LeaseType

pytestmark = pytest.mark.django_db


def future(days: int) -> date:
    return timezone.localdate() + timedelta(days=days)


def test_create_monthly_booking_defaults_to_one_period(customer, room):
    check_in = future(3)

    booking = domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.MONTHLY,
        check_in_date=check_in,
    )

    assert booking.status == Booking.Status.UNPAID
    assert booking.payment_status == Booking.PaymentStatus.UNPAID
    assert booking.check_out_date == add_period(check_in, LeaseType.MONTHLY)
    assert booking.total_amount == Decimal("1500000.00")
    assert booking.deposit_amount == Decimal("450000.00")
    assert booking.paid_amount == Decimal("0")
    assert booking.booking_code.startswith("BK")
    assert booking.holds_room is True
    room.refresh_from_db()
    assert room.is_available is False


def test_total_covers_every_period_until_check_out(customer, room):
    check_in = future(3)
    check_out = add_periods(check_in, LeaseType.MONTHLY, 3)

    booking = domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.MONTHLY,
        check_in_date=check_in,
        check_out_date=check_out,
    )

    assert booking.total_amount == Decimal("4500000.00")


def test_open_ended_booking_bills_one_period(customer, room):
    booking = domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.MONTHLY,
        check_in_date=future(3),
        open_ended=True,
    )

    assert booking.check_out_date is None
    assert booking.total_amount == Decimal("1500000.00")


def test_daily_booking_does_not_take_room_flag(customer, room):
    booking = domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.DAILY,
        check_in_date=future(3),
        check_out_date=future(5),
    )

    assert booking.total_amount == Decimal("200000.00")
    assert booking.holds_room is False
    room.refresh_from_db()
    assert room.is_available is True


def test_check_in_in_the_past_is_rejected(customer, room):
    with pytest.raises(ValidationFailed):
        domain.create_booking(
            customer=customer,
            room_id=room.id,
            lease_type=LeaseType.MONTHLY,
            check_in_date=future(-1),
        )


def test_check_out_must_follow_check_in(customer, room):
    with pytest.raises(ValidationFailed):
        domain.create_booking(
            customer=customer,
            room_id=room.id,
            lease_type=LeaseType.DAILY,
            check_in_date=future(3),
            check_out_date=future(3),
        )


def test_unknown_room_is_not_found(customer):
    with pytest.raises(NotFound):
        domain.create_booking(
            customer=customer,
            room_id=999999,
            lease_type=LeaseType.MONTHLY,
            check_in_date=future(3),
        )


def test_unapproved_property_rejects_bookings(customer, room, kos):
    kos.is_approved = False
    kos.save()

    with pytest.raises(BusinessRuleViolation):
        domain.create_booking(
            customer=customer,
            room_id=room.id,
            lease_type=LeaseType.MONTHLY,
            check_in_date=future(3),
        )
    assert not Booking.objects.exists()


def test_overlapping_booking_conflicts(customer, other_customer, room):
    domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.DAILY,
        check_in_date=future(3),
        check_out_date=future(6),
    )

    with pytest.raises(Conflict):
        domain.create_booking(
            customer=other_customer,
            room_id=room.id,
            lease_type=LeaseType.DAILY,
            check_in_date=future(5),
            check_out_date=future(8),
        )


def test_adjacent_booking_is_allowed(customer, other_customer, room):
    domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.DAILY,
        check_in_date=future(3),
        check_out_date=future(6),
    )

    booking = domain.create_booking(
        customer=other_customer,
        room_id=room.id,
        lease_type=LeaseType.DAILY,
        check_in_date=future(6),
        check_out_date=future(8),
    )
    assert booking.status == Booking.Status.UNPAID


def test_open_ended_booking_blocks_later_dates(customer, other_customer, room):
    domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.MONTHLY,
        check_in_date=future(3),
        open_ended=True,
    )

    with pytest.raises(Conflict):
        domain.create_booking(
            customer=other_customer,
            room_id=room.id,
            lease_type=LeaseType.DAILY,
            check_in_date=future(200),
            check_out_date=future(201),
        )


def test_terminal_bookings_do_not_block(booking_factory, other_customer, room):
    booking_factory(
        check_in_date=future(3),
        check_out_date=future(6),
        lease_type=LeaseType.DAILY,
        status=Booking.Status.CANCELLED,
    )

    booking = domain.create_booking(
        customer=other_customer,
        room_id=room.id,
        lease_type=LeaseType.DAILY,
        check_in_date=future(3),
        check_out_date=future(6),
    )
    assert booking.pk


def test_room_closed_by_staff_is_unavailable(customer, room):
    room.is_available = False
    room.save()

    with pytest.raises(Conflict):
        domain.create_booking(
            customer=customer,
            room_id=room.id,
            lease_type=LeaseType.MONTHLY,
            check_in_date=future(3),
        )


def test_check_in_requires_confirmed_or_deposit_paid(booking_factory):
    booking = booking_factory(status=Booking.Status.UNPAID)

    with pytest.raises(BusinessRuleViolation):
        domain.check_in(booking.id)


def test_check_in_marks_booking_validated(booking_factory):
    booking = booking_factory(
        status=Booking.Status.DEPOSIT_PAID,
        payment_status=Booking.PaymentStatus.PARTIALLY_PAID,
        paid_amount=Decimal("450000.00"),
    )

    booking = domain.check_in(booking.id)

    assert booking.status == Booking.Status.CHECKED_IN
    assert booking.actual_check_in_at is not None
    assert booking.is_validated is True
    assert booking.validated_at is not None


def test_check_out_releases_held_room(booking_factory, room):
    room.is_available = False
    room.save()
    booking = booking_factory(status=Booking.Status.CHECKED_IN, holds_room=True)

    booking = domain.check_out(booking.id)

    assert booking.status == Booking.Status.CHECKED_OUT
    assert booking.actual_check_out_at is not None
    assert booking.holds_room is False
    room.refresh_from_db()
    assert room.is_available is True


def test_check_out_requires_checked_in(booking_factory):
    booking = booking_factory(status=Booking.Status.CONFIRMED)

    with pytest.raises(BusinessRuleViolation):
        domain.check_out(booking.id)


def test_release_hands_room_to_next_exclusive_booking(booking_factory, other_customer, room):
    room.is_available = False
    room.save()
    holder = booking_factory(status=Booking.Status.CONFIRMED, holds_room=True)
    successor = booking_factory(
        customer_override=other_customer,
        check_in_date=future(60),
        status=Booking.Status.UNPAID,
    )

    domain.cancel(holder.id, "plans changed")

    successor.refresh_from_db()
    room.refresh_from_db()
    assert successor.holds_room is True
    assert room.is_available is False


def test_cancel_without_flag_leaves_room_alone(booking_factory, room):
    room.is_available = False
    room.save()
    booking = booking_factory(status=Booking.Status.UNPAID, holds_room=False)

    domain.cancel(booking.id)

    room.refresh_from_db()
    assert room.is_available is False


def test_cancel_records_reason_and_time(booking_factory):
    booking = booking_factory(status=Booking.Status.PENDING, payment_status=Booking.PaymentStatus.PENDING)

    booking = domain.cancel(booking.id, "  found another place ")

    assert booking.status == Booking.Status.CANCELLED
    assert booking.cancel_reason == "found another place"
    assert booking.cancelled_at is not None


@pytest.mark.parametrize(
    "status",
    [Booking.Status.COMPLETED, Booking.Status.CANCELLED, Booking.Status.EXPIRED],
)
def test_terminal_booking_cannot_be_cancelled(booking_factory, status):
    booking = booking_factory(status=status)

    with pytest.raises(BusinessRuleViolation):
        domain.cancel(booking.id)


def test_complete_is_idempotent(booking_factory):
    booking = booking_factory(status=Booking.Status.CHECKED_OUT)

    first = domain.complete(booking.id)
    second = domain.complete(booking.id)

    assert first.status == Booking.Status.COMPLETED
    assert second.status == Booking.Status.COMPLETED


def test_complete_requires_checked_out(booking_factory):
    booking = booking_factory(status=Booking.Status.CHECKED_IN)

    with pytest.raises(BusinessRuleViolation):
        domain.complete(booking.id)


def test_expire_only_unpaid_or_pending(booking_factory, room):
    room.is_available = False
    room.save()
    booking = booking_factory(status=Booking.Status.UNPAID, holds_room=True)

    booking = domain.expire(booking.id)

    assert booking.status == Booking.Status.EXPIRED
    room.refresh_from_db()
    assert room.is_available is True

    confirmed = booking_factory(check_in_date=future(90), status=Booking.Status.CONFIRMED)
    with pytest.raises(BusinessRuleViolation):
        domain.expire(confirmed.id)


def test_payment_status_pairs(booking_factory):
    booking = booking_factory(status=Booking.Status.PENDING, payment_status=Booking.PaymentStatus.PENDING)
    assert booking.has_consistent_payment_status()

    booking.payment_status = Booking.PaymentStatus.PAID
    assert not booking.has_consistent_payment_status()


def test_paid_amount_cannot_exceed_total(booking_factory):
    booking = booking_factory()
    with pytest.raises(IntegrityError), transaction.atomic():
        Booking.objects.filter(pk=booking.pk).update(paid_amount=Decimal("9999999.00"))
