"""Celery tasks for bookings."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.errors import DomainError, ExternalGatewayError
from payments.models import Payment
from payments.reconciliation import reconcile, refresh_from_gateway

from . import domain
from .models import Booking

logger = logging.getLogger(__name__)

COMPLETE_AFTER = timedelta(days=1)


def _settle_lapsed_payments(booking: Booking, now) -> bool:
    """
    Reconcile the booking's lapsed PENDING payments.

    Returns False when a payment is still inside its window or the gateway
    could not be asked, in which case the booking is left for the next run.
    """
    pending = list(booking.payments.filter(status=Payment.Status.PENDING))
    if any(p.expiry_time is None or p.expiry_time > now for p in pending):
        return False
    for payment in pending:
        try:
            result = refresh_from_gateway(payment.order_id)
        except ExternalGatewayError:
            logger.warning(
                "bookings: gateway unavailable while sweeping",
                extra={"booking_id": booking.id, "order_id": payment.order_id},
            )
            return False
        if result.payment.status == Payment.Status.PENDING:
            reconcile(payment.order_id, "expire", source="sweep")
    return True


@shared_task(name="bookings.expire_lapsed_bookings")
def expire_lapsed_bookings() -> int:
    """
    Expire UNPAID/PENDING bookings whose payment window is over.

    Returns the number of bookings expired.
    """
    now = timezone.now()
    ttl_cutoff = now - timedelta(hours=int(settings.BOOKING_UNPAID_TTL_HOURS))
    candidates = (
        Booking.objects.filter(status__in=domain.EXPIRABLE_STATUSES)
        .exclude(payments__status=Payment.Status.SUCCESS)
        .order_by("created_at")
    )

    expired_count = 0
    for booking in candidates:
        has_pending = booking.payments.filter(status=Payment.Status.PENDING).exists()
        if has_pending:
            if not _settle_lapsed_payments(booking, now):
                continue
        elif booking.created_at > ttl_cutoff:
            continue

        booking.refresh_from_db(fields=["status"])
        if booking.status not in domain.EXPIRABLE_STATUSES:
            continue
        if booking.payments.filter(
            status__in=(Payment.Status.SUCCESS, Payment.Status.PENDING)
        ).exists():
            continue
        try:
            domain.expire(booking.id)
        except DomainError:
            logger.info(
                "bookings: skip expiring booking that moved on",
                extra={"booking_id": booking.id},
                exc_info=True,
            )
            continue
        expired_count += 1

    if expired_count:
        logger.info("bookings: expired lapsed bookings", extra={"count": expired_count})
    return expired_count


@shared_task(name="bookings.complete_checked_out_bookings")
def complete_checked_out_bookings() -> int:
    """Promote bookings checked out more than a day ago to COMPLETED."""
    cutoff = timezone.now() - COMPLETE_AFTER
    booking_ids = list(
        Booking.objects.filter(
            status=Booking.Status.CHECKED_OUT,
            actual_check_out_at__lte=cutoff,
        ).values_list("id", flat=True)
    )
    completed = 0
    for booking_id in booking_ids:
        try:
            domain.complete(booking_id)
        except DomainError:
            logger.info(
                "bookings: skip completing booking",
                extra={"booking_id": booking_id},
                exc_info=True,
            )
            continue
        completed += 1
    return completed
