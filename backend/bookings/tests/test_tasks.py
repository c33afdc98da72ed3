"""Tests for the periodic booking sweeps."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.tasks import complete_checked_out_bookings, expire_lapsed_bookings
from payments import midtrans
from payments.models import Payment

pytestmark = pytest.mark.django_db


def _age(booking, hours: int) -> None:
    Booking.objects.filter(pk=booking.pk).update(created_at=timezone.now() - timedelta(hours=hours))


def _pending_payment(booking, *, expired: bool, order_id: str) -> Payment:
    offset = timedelta(minutes=-5) if expired else timedelta(hours=2)
    return Payment.objects.create(
        booking=booking,
        order_id=order_id,
        payment_type=Payment.Type.DEPOSIT,
        amount=booking.deposit_amount,
        expiry_time=timezone.now() + offset,
    )


def test_old_unpaid_booking_expires_and_frees_room(booking_factory, room, fake_midtrans):
    room.is_available = False
    room.save()
    booking = booking_factory(status=Booking.Status.UNPAID, holds_room=True)
    _age(booking, 25)

    assert expire_lapsed_bookings() == 1

    booking.refresh_from_db()
    room.refresh_from_db()
    assert booking.status == Booking.Status.EXPIRED
    assert room.is_available is True


def test_recent_unpaid_booking_is_kept(booking_factory, fake_midtrans):
    booking = booking_factory(status=Booking.Status.UNPAID)

    assert expire_lapsed_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.UNPAID


def test_lapsed_unused_payment_expires_booking(booking_factory, fake_midtrans):
    booking = booking_factory(
        status=Booking.Status.PENDING,
        payment_status=Booking.PaymentStatus.PENDING,
    )
    payment = _pending_payment(booking, expired=True, order_id="DEP-SWEEP001-1")

    assert expire_lapsed_bookings() == 1

    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.EXPIRED
    assert booking.status == Booking.Status.EXPIRED


def test_payment_still_inside_window_keeps_booking(booking_factory, fake_midtrans):
    booking = booking_factory(
        status=Booking.Status.PENDING,
        payment_status=Booking.PaymentStatus.PENDING,
    )
    _age(booking, 48)
    _pending_payment(booking, expired=False, order_id="DEP-SWEEP002-1")

    assert expire_lapsed_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


def test_sweep_applies_late_settlement_instead_of_expiring(booking_factory, fake_midtrans):
    booking = booking_factory(
        status=Booking.Status.PENDING,
        payment_status=Booking.PaymentStatus.PENDING,
    )
    payment = _pending_payment(booking, expired=True, order_id="DEP-SWEEP003-1")
    fake_midtrans.statuses[payment.order_id] = {
        "order_id": payment.order_id,
        "transaction_status": "settlement",
        "transaction_id": "tx-sweep-3",
        "gross_amount": f"{payment.amount:.2f}",
    }

    assert expire_lapsed_bookings() == 0

    booking.refresh_from_db()
    assert booking.status == Booking.Status.DEPOSIT_PAID
    assert booking.paid_amount == Decimal("450000.00")


def test_gateway_outage_skips_booking(booking_factory, fake_midtrans, monkeypatch):
    booking = booking_factory(
        status=Booking.Status.PENDING,
        payment_status=Booking.PaymentStatus.PENDING,
    )
    _pending_payment(booking, expired=True, order_id="DEP-SWEEP004-1")

    def _down(order_id):
        raise midtrans.MidtransTransientError("timeout")

    monkeypatch.setattr(midtrans, "get_transaction_status", _down)

    assert expire_lapsed_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


def test_confirmed_booking_is_never_swept(booking_factory, fake_midtrans):
    booking = booking_factory(
        status=Booking.Status.CONFIRMED,
        payment_status=Booking.PaymentStatus.PAID,
        paid_amount=Decimal("1500000.00"),
    )
    _age(booking, 72)

    assert expire_lapsed_bookings() == 0


def test_checked_out_bookings_complete_after_a_day(booking_factory):
    old = booking_factory(status=Booking.Status.CHECKED_OUT)
    Booking.objects.filter(pk=old.pk).update(actual_check_out_at=timezone.now() - timedelta(days=2))
    recent = booking_factory(
        check_in_date=timezone.localdate() + timedelta(days=60),
        status=Booking.Status.CHECKED_OUT,
    )
    Booking.objects.filter(pk=recent.pk).update(actual_check_out_at=timezone.now() - timedelta(hours=2))

    assert complete_checked_out_bookings() == 1

    old.refresh_from_db()
    recent.refresh_from_db()
    assert old.status == Booking.Status.COMPLETED
    assert recent.status == Booking.Status.CHECKED_OUT
