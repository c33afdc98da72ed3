from django.conf import settings
from django.db import models
from django.db.models import F, Q


class Payment(models.Model):
    """One attempt to collect money for a booking through the gateway."""

    class Type(models.TextChoices):
        DEPOSIT = "DEPOSIT", "Deposit"
        FULL = "FULL", "Full payment"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"
        EXPIRED = "EXPIRED", "Expired"

    TERMINAL_STATUSES = frozenset({Status.SUCCESS, Status.FAILED, Status.EXPIRED})

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    order_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Order id sent to the gateway; the idempotency key for notifications.",
    )
    payment_type = models.CharField(max_length=8, choices=Type.choices)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(
        max_length=8,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(max_length=40, blank=True, default="")
    transaction_time = models.DateTimeField(null=True, blank=True)
    transaction_id = models.CharField(
        max_length=80,
        unique=True,
        null=True,
        blank=True,
        help_text="Gateway's own transaction id.",
    )
    snap_token = models.CharField(max_length=120, blank=True, default="")
    redirect_url = models.URLField(max_length=500, blank=True, default="")
    expiry_time = models.DateTimeField(null=True, blank=True)
    last_notification = models.JSONField(default=dict, blank=True)
    is_extension = models.BooleanField(default=False)
    extension_periods = models.PositiveIntegerField(null=True, blank=True)
    extension_check_out_date = models.DateField(null=True, blank=True)
    extension_total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount added to the booking total when the extension is paid.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "payment_type"],
                condition=Q(status="PENDING"),
                name="payment_single_pending_per_type",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment {self.order_id} {self.payment_type} {self.amount} ({self.status})"

    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class BankAccount(models.Model):
    """Owner bank account that payouts are transferred to."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending verification"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    admin_kos = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bank_accounts",
    )
    bank_code = models.CharField(max_length=16)
    bank_name = models.CharField(max_length=80)
    account_number = models.CharField(max_length=40)
    account_name = models.CharField(max_length=120)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.bank_name} {self.account_number} ({self.status})"


class Payout(models.Model):
    """A withdrawal request against an owner's ledger balance."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        COMPLETED = "COMPLETED", "Completed"

    class Source(models.TextChoices):
        SALES = "SALES", "Sales"
        OTHER = "OTHER", "Other"

    admin_kos = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    source = models.CharField(max_length=8, choices=Source.choices, default=Source.SALES)
    balance_before = models.DecimalField(max_digits=14, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    notes = models.TextField(blank=True, default="")
    rejection_reason = models.TextField(blank=True, default="")
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_payouts",
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="payout_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(balance_after=F("balance_before") - F("amount")),
                name="payout_balance_after_matches",
            ),
            models.CheckConstraint(
                condition=Q(balance_after__gte=0),
                name="payout_balance_after_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout #{self.pk} {self.amount} ({self.status})"


class PayoutAttachment(models.Model):
    """Proof-of-transfer file recorded against a payout."""

    payout = models.ForeignKey(Payout, on_delete=models.CASCADE, related_name="attachments")
    file_url = models.URLField(max_length=1024)
    file_name = models.CharField(max_length=255, blank=True, default="")
    file_type = models.CharField(max_length=120, blank=True, default="")
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.file_name or self.file_url
