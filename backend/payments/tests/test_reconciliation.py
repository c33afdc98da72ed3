"""Tests for payment intents and gateway reconciliation."""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings import domain
from bookings.models import Booking
from core.errors import BusinessRuleViolation, ExternalGatewayError, NotFound
from notifications import tasks as notification_tasks
from payments import midtrans
from payments.models import Payment
from payments.reconciliation import (
    create_intent,
    map_gateway_status,
    reconcile,
    refresh_from_gateway,
    void_intent,
)
from properties.models import LeaseType

pytestmark = pytest.mark.django_db


@pytest.fixture
def booking(customer, room):
    return domain.create_booking(
        customer=customer,
        room_id=room.id,
        lease_type=LeaseType.MONTHLY,
        check_in_date=timezone.localdate() + timedelta(days=3),
    )


def settle(payment, **kwargs):
    return reconcile(
        payment.order_id,
        "settlement",
        transaction_id=kwargs.pop("transaction_id", f"tx-{payment.order_id}"),
        gross_amount=f"{payment.amount:.2f}",
        **kwargs,
    )


@pytest.mark.parametrize(
    ("status", "fraud", "expected"),
    [
        ("capture", "accept", Payment.Status.SUCCESS),
        ("capture", None, Payment.Status.SUCCESS),
        ("capture", "challenge", Payment.Status.PENDING),
        ("capture", "deny", Payment.Status.FAILED),
        ("settlement", None, Payment.Status.SUCCESS),
        ("pending", None, Payment.Status.PENDING),
        ("deny", None, Payment.Status.FAILED),
        ("cancel", None, Payment.Status.FAILED),
        ("failure", None, Payment.Status.FAILED),
        ("expire", None, Payment.Status.EXPIRED),
        ("refund", None, None),
        ("something-new", None, None),
    ],
)
def test_map_gateway_status(status, fraud, expected):
    assert map_gateway_status(status, fraud) == expected


def test_deposit_intent_moves_booking_to_pending(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    assert payment.status == Payment.Status.PENDING
    assert payment.amount == Decimal("450000.00")
    assert payment.snap_token == "snap-token-1"
    assert payment.redirect_url.endswith("snap-token-1")
    assert payment.expiry_time is not None
    assert re.match(r"^DEP-[0-9A-F]{8}-[0-9A-Z]+$", payment.order_id)
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING
    assert booking.payment_status == Booking.PaymentStatus.PENDING

    snap_request = fake_midtrans.created[0]
    assert snap_request["transaction_details"] == {"order_id": payment.order_id, "gross_amount": 450000}
    assert snap_request["expiry"]["duration"] == 24
    assert snap_request["customer_details"]["email"] == "customer@example.com"


def test_full_intent_uses_outstanding_amount_and_short_expiry(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.FULL)

    assert payment.amount == Decimal("1500000.00")
    assert payment.order_id.startswith("FULL-")
    assert fake_midtrans.created[0]["expiry"]["duration"] == 1


def test_deposit_then_full_confirms_booking(booking, fake_midtrans):
    deposit = create_intent(booking.id, Payment.Type.DEPOSIT)
    result = settle(deposit)

    assert result.applied is True
    assert result.outcome == "success"
    booking.refresh_from_db()
    assert booking.status == Booking.Status.DEPOSIT_PAID
    assert booking.payment_status == Booking.PaymentStatus.PARTIALLY_PAID
    assert booking.paid_amount == Decimal("450000.00")

    full = create_intent(booking.id, Payment.Type.FULL)
    assert full.amount == Decimal("1050000.00")
    settle(full)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment_status == Booking.PaymentStatus.PAID
    assert booking.paid_amount == booking.total_amount
    assert booking.has_consistent_payment_status()


def test_full_payment_confirms_directly(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.FULL)
    settle(payment)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment_status == Booking.PaymentStatus.PAID


def test_repeated_notification_is_applied_once(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    settle(payment)

    second = settle(payment)

    assert second.applied is False
    assert second.outcome == "duplicate"
    booking.refresh_from_db()
    assert booking.paid_amount == Decimal("450000.00")


def test_late_success_for_expired_payment_is_not_applied(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    reconcile(payment.order_id, "expire")

    result = settle(payment)

    assert result.applied is False
    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.EXPIRED
    assert booking.paid_amount == Decimal("0")


def test_reused_transaction_id_is_ignored(booking, booking_factory, other_customer, fake_midtrans):
    first = create_intent(booking.id, Payment.Type.DEPOSIT)
    settle(first, transaction_id="tx-shared")

    other_booking = booking_factory(
        customer_override=other_customer,
        check_in_date=timezone.localdate() + timedelta(days=120),
    )
    second = create_intent(other_booking.id, Payment.Type.DEPOSIT)
    result = settle(second, transaction_id="tx-shared")

    assert result.outcome == "duplicate"
    second.refresh_from_db()
    other_booking.refresh_from_db()
    assert second.status == Payment.Status.PENDING
    assert other_booking.paid_amount == Decimal("0")


def test_second_pending_intent_is_rejected(booking, fake_midtrans):
    create_intent(booking.id, Payment.Type.DEPOSIT)

    with pytest.raises(BusinessRuleViolation):
        create_intent(booking.id, Payment.Type.DEPOSIT)
    with pytest.raises(BusinessRuleViolation):
        create_intent(booking.id, Payment.Type.FULL)
    assert booking.payments.count() == 1


def test_deposit_cannot_be_paid_twice(booking, fake_midtrans):
    settle(create_intent(booking.id, Payment.Type.DEPOSIT))

    with pytest.raises(BusinessRuleViolation):
        create_intent(booking.id, Payment.Type.DEPOSIT)


def test_fully_paid_booking_takes_no_more_payments(booking, fake_midtrans):
    settle(create_intent(booking.id, Payment.Type.FULL))

    with pytest.raises(BusinessRuleViolation):
        create_intent(booking.id, Payment.Type.FULL)


def test_cancelled_booking_takes_no_payments(booking, fake_midtrans):
    domain.cancel(booking.id)

    with pytest.raises(BusinessRuleViolation):
        create_intent(booking.id, Payment.Type.FULL)


def test_failed_payment_allows_retry(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    result = reconcile(payment.order_id, "deny")

    assert result.outcome == "failed"
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING
    retry = create_intent(booking.id, Payment.Type.DEPOSIT)
    assert retry.order_id != payment.order_id


def test_pending_notification_keeps_payment_open(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    result = reconcile(payment.order_id, "pending", payment_method="bank_transfer")

    assert result.applied is False
    assert result.outcome == "pending"
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING
    assert payment.payment_method == "bank_transfer"


def test_unhandled_status_is_ignored(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    result = reconcile(payment.order_id, "refund")

    assert result.outcome == "ignored"
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_gross_amount_mismatch_is_rejected(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    with pytest.raises(BusinessRuleViolation):
        reconcile(payment.order_id, "settlement", gross_amount="1.00")

    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_unknown_order_is_not_found():
    with pytest.raises(NotFound):
        reconcile("DEP-UNKNOWN-0", "settlement")


def test_success_on_cancelled_booking_is_recorded_without_status_change(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    domain.cancel(booking.id, "changed my mind")

    result = settle(payment)

    assert result.applied is True
    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.SUCCESS
    assert booking.status == Booking.Status.CANCELLED
    assert booking.paid_amount == Decimal("450000.00")


def test_overpayment_credits_only_the_remainder(booking_factory):
    booking = booking_factory(
        status=Booking.Status.DEPOSIT_PAID,
        payment_status=Booking.PaymentStatus.PARTIALLY_PAID,
        paid_amount=Decimal("450000.00"),
    )
    payment = Payment.objects.create(
        booking=booking,
        order_id="FULL-TEST0001-1",
        payment_type=Payment.Type.FULL,
        amount=Decimal("1500000.00"),
    )

    settle(payment)

    booking.refresh_from_db()
    assert booking.paid_amount == booking.total_amount
    assert booking.status == Booking.Status.CONFIRMED


def test_success_queues_confirmation_email_after_commit(
    booking, fake_midtrans, monkeypatch, django_capture_on_commit_callbacks
):
    calls = []
    monkeypatch.setattr(notification_tasks.send_payment_confirmed_email, "delay", calls.append)
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    with django_capture_on_commit_callbacks(execute=True):
        settle(payment)

    assert calls == [payment.id]


def test_gateway_failure_leaves_no_trace(booking, fake_midtrans):
    fake_midtrans.create_error = midtrans.MidtransTransientError("timeout")

    with pytest.raises(ExternalGatewayError):
        create_intent(booking.id, Payment.Type.DEPOSIT)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.UNPAID
    assert not booking.payments.exists()


def test_refresh_applies_gateway_status(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    fake_midtrans.statuses[payment.order_id] = {
        "order_id": payment.order_id,
        "transaction_status": "settlement",
        "transaction_id": "tx-refresh",
        "gross_amount": "450000.00",
        "payment_type": "qris",
        "settlement_time": "2024-08-01 10:05:00",
    }

    result = refresh_from_gateway(payment.order_id)

    assert result.outcome == "success"
    payment.refresh_from_db()
    assert payment.status == Payment.Status.SUCCESS
    assert payment.payment_method == "qris"
    assert payment.transaction_id == "tx-refresh"
    assert payment.last_notification["_source"] == "refresh"


def test_refresh_of_unused_token_waits_until_expiry(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    result = refresh_from_gateway(payment.order_id)

    assert result.outcome == "pending"
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_refresh_of_lapsed_unused_token_expires_it(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    Payment.objects.filter(pk=payment.pk).update(expiry_time=timezone.now() - timedelta(minutes=1))

    result = refresh_from_gateway(payment.order_id)

    assert result.outcome == "expired"
    payment.refresh_from_db()
    assert payment.status == Payment.Status.EXPIRED


def test_void_marks_payment_failed_and_allows_new_intent(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)

    result = void_intent(payment.order_id)

    assert fake_midtrans.cancelled == [payment.order_id]
    assert result.payment.status == Payment.Status.FAILED
    assert create_intent(booking.id, Payment.Type.FULL).status == Payment.Status.PENDING


def test_void_of_unused_token_is_recorded_locally(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    fake_midtrans.cancel_error = midtrans.MidtransRequestError("Transaction doesn't exist.")

    result = void_intent(payment.order_id)

    assert result.payment.status == Payment.Status.FAILED
    assert result.payment.last_notification["_source"] == "void"


def test_void_after_settlement_applies_the_settlement(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    fake_midtrans.cancel_error = midtrans.MidtransRequestError("Transaction cannot be cancelled.")
    fake_midtrans.statuses[payment.order_id] = {
        "order_id": payment.order_id,
        "transaction_status": "settlement",
        "transaction_id": "tx-void-race",
        "gross_amount": "450000.00",
    }

    with pytest.raises(BusinessRuleViolation):
        void_intent(payment.order_id)

    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.SUCCESS
    assert booking.status == Booking.Status.DEPOSIT_PAID


def test_void_requires_pending_payment(booking, fake_midtrans):
    payment = create_intent(booking.id, Payment.Type.DEPOSIT)
    settle(payment)

    with pytest.raises(BusinessRuleViolation):
        void_intent(payment.order_id)
