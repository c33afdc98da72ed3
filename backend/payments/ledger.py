"""Owner balance ledger.

The balance is derived, never stored: successful payments for the owner's
properties minus payouts that are settled (approved or completed) or still
pending. Pending payouts are a hold on the balance until they are decided.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import DecimalField, OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.errors import NotFound
from core.money import ZERO, format_money, quantize_money

from .models import Payment, Payout

User = get_user_model()
MONEY_FIELD = DecimalField(max_digits=16, decimal_places=2)
SETTLED_PAYOUT_STATUSES = (Payout.Status.APPROVED, Payout.Status.COMPLETED)
HELD_PAYOUT_STATUSES = (Payout.Status.PENDING,)


@dataclass(frozen=True)
class BalanceSummary:
    owner_id: int
    total_income: Decimal
    settled_payouts: Decimal
    pending_payouts: Decimal
    available_balance: Decimal
    as_of: datetime

    def as_dict(self) -> dict[str, str | int]:
        return {
            "owner_id": self.owner_id,
            "total_income": format_money(self.total_income),
            "settled_payouts": format_money(self.settled_payouts),
            "pending_payouts": format_money(self.pending_payouts),
            "available_balance": format_money(self.available_balance),
            "as_of": self.as_of.isoformat(),
        }


def _sum_for_owner(queryset, owner_path: str) -> Coalesce:
    totals = (
        queryset.filter(**{owner_path: OuterRef("pk")})
        .order_by()
        .values(owner_path)
        .annotate(total=Sum("amount"))
        .values("total")[:1]
    )
    return Coalesce(
        Subquery(totals, output_field=MONEY_FIELD),
        Value(ZERO),
        output_field=MONEY_FIELD,
    )


def income_queryset():
    """Payments that count as owner income."""
    return Payment.objects.filter(status=Payment.Status.SUCCESS)


def compute_balance(owner_id: int) -> BalanceSummary:
    """
    Compute an owner's balance in one SELECT.

    All three sums are correlated subqueries on the owner's row so they read
    the same snapshot; no payout can slip in between two separate queries.
    """
    row = (
        User.objects.filter(pk=owner_id)
        .annotate(
            total_income=_sum_for_owner(income_queryset(), "booking__property__owner"),
            settled_payouts=_sum_for_owner(
                Payout.objects.filter(status__in=SETTLED_PAYOUT_STATUSES), "admin_kos"
            ),
            pending_payouts=_sum_for_owner(
                Payout.objects.filter(status__in=HELD_PAYOUT_STATUSES), "admin_kos"
            ),
        )
        .values("total_income", "settled_payouts", "pending_payouts")
        .first()
    )
    if row is None:
        raise NotFound("Owner not found.", details={"owner_id": owner_id})

    income = quantize_money(Decimal(row["total_income"] or 0))
    settled = quantize_money(Decimal(row["settled_payouts"] or 0))
    pending = quantize_money(Decimal(row["pending_payouts"] or 0))
    return BalanceSummary(
        owner_id=owner_id,
        total_income=income,
        settled_payouts=settled,
        pending_payouts=pending,
        available_balance=income - settled - pending,
        as_of=timezone.now(),
    )
