"""Payout workflow: owners request withdrawals, superadmins decide them."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from core.errors import BusinessRuleViolation, NotFound, ValidationFailed
from core.money import ZERO, decimal_from_value, format_money
from notifications import tasks as notification_tasks

from .ledger import compute_balance
from .models import BankAccount, Payout, PayoutAttachment

logger = logging.getLogger(__name__)
User = get_user_model()


def _parse_payout_amount(value: Any) -> Decimal:
    amount = decimal_from_value(value, default="-1")
    if amount <= ZERO:
        raise ValidationFailed("Amount must be greater than zero.", details={"amount": str(value)})
    return amount


def _lock_payout(payout_id: int) -> Payout:
    try:
        return Payout.objects.select_for_update().get(pk=payout_id)
    except Payout.DoesNotExist as exc:
        raise NotFound("Payout not found.", details={"payout_id": payout_id}) from exc


def _attach(
    payout: Payout,
    attachments: Iterable[Mapping[str, Any]],
    uploaded_by,
) -> list[PayoutAttachment]:
    rows = [
        PayoutAttachment(
            payout=payout,
            file_url=item["file_url"],
            file_name=item.get("file_name") or "",
            file_type=item.get("file_type") or "",
            uploaded_by=uploaded_by,
        )
        for item in attachments
    ]
    return PayoutAttachment.objects.bulk_create(rows)


def _queue_payout_email(payout_id: int) -> None:
    try:
        notification_tasks.send_payout_processed_email.delay(payout_id)
    except Exception:
        logger.info(
            "notifications: failed to queue payout_processed_email",
            extra={"payout_id": payout_id},
            exc_info=True,
        )


def request_payout(
    *,
    owner,
    bank_account_id: int,
    amount: Any,
    notes: str = "",
    source: str = Payout.Source.SALES,
) -> Payout:
    """
    Create a PENDING payout if the owner's balance covers it.

    The owner's row is locked before the balance is read, so concurrent
    requests from the same owner queue up and each sees the holds placed by
    the ones before it.
    """
    amount = _parse_payout_amount(amount)

    with transaction.atomic():
        User.objects.select_for_update().only("id").get(pk=owner.pk)
        try:
            bank_account = BankAccount.objects.get(pk=bank_account_id, admin_kos=owner)
        except BankAccount.DoesNotExist as exc:
            raise NotFound(
                "Bank account not found.",
                details={"bank_account_id": bank_account_id},
            ) from exc
        if bank_account.status != BankAccount.Status.APPROVED:
            raise BusinessRuleViolation("Bank account has not been approved yet.")

        balance = compute_balance(owner.pk)
        if amount > balance.available_balance:
            logger.info(
                "payouts: insufficient balance",
                extra={
                    "owner_id": owner.pk,
                    "amount": str(amount),
                    "available_balance": str(balance.available_balance),
                },
            )
            raise BusinessRuleViolation(
                "Insufficient balance.",
                details={
                    "available_balance": format_money(balance.available_balance),
                    "requested": format_money(amount),
                },
            )

        payout = Payout.objects.create(
            admin_kos=owner,
            bank_account=bank_account,
            amount=amount,
            source=source,
            balance_before=balance.available_balance,
            balance_after=balance.available_balance - amount,
            notes=(notes or "").strip(),
        )

    logger.info(
        "payouts: requested",
        extra={"payout_id": payout.id, "owner_id": owner.pk, "amount": str(amount)},
    )
    return payout


def approve_payout(payout_id: int, *, approver, attachments: Iterable[Mapping[str, Any]]) -> Payout:
    """PENDING -> APPROVED with proof of transfer; the hold becomes a settled deduction."""
    attachments = list(attachments or [])
    if not attachments:
        raise ValidationFailed("At least one proof-of-transfer attachment is required.")

    with transaction.atomic():
        payout = _lock_payout(payout_id)
        if payout.status != Payout.Status.PENDING:
            raise BusinessRuleViolation(
                "Only pending payouts can be approved.",
                details={"status": payout.status},
            )
        payout.status = Payout.Status.APPROVED
        payout.processed_by = approver
        payout.processed_at = timezone.now()
        payout.save(update_fields=["status", "processed_by", "processed_at", "updated_at"])
        _attach(payout, attachments, approver)
        transaction.on_commit(lambda: _queue_payout_email(payout.id))

    logger.info("payouts: approved", extra={"payout_id": payout.id, "approver_id": approver.pk})
    return payout


def reject_payout(payout_id: int, *, approver, reason: str) -> Payout:
    """PENDING -> REJECTED; the held amount returns to the available balance."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A rejection reason is required.")

    with transaction.atomic():
        payout = _lock_payout(payout_id)
        if payout.status != Payout.Status.PENDING:
            raise BusinessRuleViolation(
                "Only pending payouts can be rejected.",
                details={"status": payout.status},
            )
        payout.status = Payout.Status.REJECTED
        payout.rejection_reason = reason
        payout.processed_by = approver
        payout.processed_at = timezone.now()
        payout.save(
            update_fields=[
                "status",
                "rejection_reason",
                "processed_by",
                "processed_at",
                "updated_at",
            ]
        )
        transaction.on_commit(lambda: _queue_payout_email(payout.id))

    logger.info("payouts: rejected", extra={"payout_id": payout.id, "approver_id": approver.pk})
    return payout


def complete_payout(
    payout_id: int,
    *,
    actor,
    attachments: Iterable[Mapping[str, Any]] = (),
) -> Payout:
    with transaction.atomic():
        payout = _lock_payout(payout_id)
        if payout.status != Payout.Status.APPROVED:
            raise BusinessRuleViolation(
                "Only approved payouts can be completed.",
                details={"status": payout.status},
            )
        payout.status = Payout.Status.COMPLETED
        payout.processed_by = actor
        payout.processed_at = timezone.now()
        payout.save(update_fields=["status", "processed_by", "processed_at", "updated_at"])
        _attach(payout, attachments, actor)

    logger.info("payouts: completed", extra={"payout_id": payout.id, "actor_id": actor.pk})
    return payout
