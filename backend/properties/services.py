"""Read-only pricing facts the booking core needs from the room catalog."""

from decimal import Decimal

from django.conf import settings

from core.errors import ValidationFailed
from core.money import ZERO, quantize_money, round_to_unit

from .models import LeaseType, Room

# Multipliers applied to the monthly price when a room has no explicit price
# for the requested lease type.
_DERIVED_FROM_MONTHLY = {
    LeaseType.DAILY: Decimal("1") / Decimal("30"),
    LeaseType.WEEKLY: Decimal("7") / Decimal("30"),
    LeaseType.MONTHLY: Decimal("1"),
    LeaseType.QUARTERLY: Decimal("3"),
    LeaseType.YEARLY: Decimal("12"),
}


def price_for_lease(room: Room, lease_type: str) -> Decimal:
    """Price of one lease period, falling back to a monthly-derived price."""
    if lease_type not in LeaseType.values:
        raise ValidationFailed(f"Unknown lease type {lease_type!r}.")

    explicit = getattr(room, f"{lease_type.lower()}_price", None)
    if explicit is not None and explicit > 0:
        return quantize_money(Decimal(explicit))

    monthly = Decimal(room.monthly_price or 0)
    price = round_to_unit(monthly * _DERIVED_FROM_MONTHLY[LeaseType(lease_type)])
    if price <= 0:
        raise ValidationFailed(
            "This room has no price for the selected lease type.",
            details={"room_id": room.id, "lease_type": lease_type},
        )
    return price


def deposit_for(room: Room, amount: Decimal) -> Decimal:
    """
    Deposit owed on ``amount``; never more than the amount itself.

    The room's FIXED or PERCENTAGE rule only applies when the room requires a
    deposit; otherwise the platform default rate is used.
    """
    value = Decimal(room.deposit_value) if room.deposit_value is not None else None
    if room.deposit_required and room.deposit_type == Room.DepositType.FIXED and value:
        deposit = quantize_money(value)
    elif room.deposit_required and room.deposit_type == Room.DepositType.PERCENTAGE and value:
        deposit = round_to_unit(amount * value / Decimal("100"))
    else:
        deposit = round_to_unit(amount * Decimal(settings.BOOKING_DEFAULT_DEPOSIT_RATE))
    return max(ZERO, min(deposit, amount))


def is_exclusive_lease(lease_type: str) -> bool:
    """Exclusive leases take the room off the market while they are active."""
    return lease_type in settings.BOOKING_EXCLUSIVE_LEASE_TYPES
