from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from properties.models import LeaseType, Property, Room


def generate_booking_code() -> str:
    """Return a human-readable code such as ``BK20240801A1B2C3``."""
    stamp = timezone.localdate().strftime("%Y%m%d")
    return f"BK{stamp}{secrets.token_hex(3).upper()}"


class Booking(models.Model):
    """A reservation of one room by one customer under a lease type."""

    class Status(models.TextChoices):
        UNPAID = "UNPAID", "Unpaid"
        PENDING = "PENDING", "Payment pending"
        DEPOSIT_PAID = "DEPOSIT_PAID", "Deposit paid"
        CONFIRMED = "CONFIRMED", "Confirmed"
        CHECKED_IN = "CHECKED_IN", "Checked in"
        CHECKED_OUT = "CHECKED_OUT", "Checked out"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"
        EXPIRED = "EXPIRED", "Expired"

    class PaymentStatus(models.TextChoices):
        UNPAID = "UNPAID", "Unpaid"
        PENDING = "PENDING", "Pending"
        PARTIALLY_PAID = "PARTIALLY_PAID", "Partially paid"
        PAID = "PAID", "Paid"

    TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.CANCELLED, Status.EXPIRED})
    # Statuses that occupy the room for overlap detection.
    BLOCKING_STATUSES = (
        Status.UNPAID,
        Status.PENDING,
        Status.DEPOSIT_PAID,
        Status.CONFIRMED,
        Status.CHECKED_IN,
    )
    # Payment statuses each booking status may be paired with; terminal
    # statuses keep whatever the money said when they were reached.
    ALLOWED_PAYMENT_STATUSES = {
        Status.UNPAID: frozenset({PaymentStatus.UNPAID}),
        Status.PENDING: frozenset({PaymentStatus.PENDING}),
        Status.DEPOSIT_PAID: frozenset({PaymentStatus.PARTIALLY_PAID}),
        Status.CONFIRMED: frozenset({PaymentStatus.PARTIALLY_PAID, PaymentStatus.PAID}),
        Status.CHECKED_IN: frozenset({PaymentStatus.PARTIALLY_PAID, PaymentStatus.PAID}),
        Status.CHECKED_OUT: frozenset({PaymentStatus.PARTIALLY_PAID, PaymentStatus.PAID}),
        Status.COMPLETED: frozenset(PaymentStatus.values),
        Status.CANCELLED: frozenset(PaymentStatus.values),
        Status.EXPIRED: frozenset(PaymentStatus.values),
    }

    booking_code = models.CharField(
        max_length=32,
        unique=True,
        default=generate_booking_code,
        editable=False,
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    property = models.ForeignKey(
        Property,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    room = models.ForeignKey(
        Room,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    check_in_date = models.DateField()
    check_out_date = models.DateField(
        null=True,
        blank=True,
        help_text="Exclusive end date; empty for open-ended stays.",
    )
    lease_type = models.CharField(max_length=12, choices=LeaseType.choices)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    deposit_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.UNPAID,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    holds_room = models.BooleanField(
        default=False,
        help_text="Whether this booking flipped the room's availability flag.",
    )
    is_validated = models.BooleanField(default=False)
    validated_at = models.DateTimeField(null=True, blank=True)
    actual_check_in_at = models.DateTimeField(null=True, blank=True)
    actual_check_out_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["room", "status"], name="booking_room_status_idx"),
            models.Index(fields=["customer", "status"], name="booking_customer_status_idx"),
            models.Index(fields=["property", "status"], name="booking_property_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0),
                name="booking_paid_amount_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(paid_amount__lte=F("total_amount")),
                name="booking_paid_amount_within_total",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking {self.booking_code} ({self.status})"

    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def outstanding_amount(self):
        return self.total_amount - self.paid_amount

    def has_consistent_payment_status(self) -> bool:
        allowed = self.ALLOWED_PAYMENT_STATUSES.get(self.status, frozenset())
        return self.payment_status in allowed
