from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class LeaseType(models.TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    QUARTERLY = "QUARTERLY", "Quarterly"
    YEARLY = "YEARLY", "Yearly"


class Property(models.Model):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="properties",
    )
    name = models.CharField(max_length=140)
    address = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=80, blank=True, default="")
    is_approved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "properties"

    def __str__(self) -> str:
        return self.name


def _price_field():
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )


class Room(models.Model):
    class DepositType(models.TextChoices):
        PERCENTAGE = "PERCENTAGE", "Percentage"
        FIXED = "FIXED", "Fixed amount"

    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="rooms")
    room_number = models.CharField(max_length=32)
    room_type = models.CharField(max_length=60, blank=True, default="")
    daily_price = _price_field()
    weekly_price = _price_field()
    monthly_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    quarterly_price = _price_field()
    yearly_price = _price_field()
    deposit_required = models.BooleanField(default=False)
    deposit_type = models.CharField(
        max_length=12,
        choices=DepositType.choices,
        blank=True,
        default="",
    )
    deposit_value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["property", "room_number"],
                name="room_number_unique_per_property",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.property.name} #{self.room_number}"
