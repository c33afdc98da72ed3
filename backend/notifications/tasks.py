from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.apps import apps
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from core.money import format_money
from notifications.models import NotificationLog

logger = logging.getLogger(__name__)
User = get_user_model()


def _render(template: str, context: dict) -> str:
    """Render a template relative to the notifications app."""
    return render_to_string(template, context).strip()


def _build_email_context(extra: Optional[dict]) -> dict:
    context = {
        "site_name": getattr(settings, "SITE_NAME", "Kosan"),
        "frontend_origin": (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/"),
        "currency": getattr(settings, "PAYMENT_CURRENCY", "IDR"),
    }
    context.update(extra or {})
    return context


def _prepare_email_bodies(subject: str, template: str, context: dict) -> tuple[str, str | None]:
    context_with_brand = _build_email_context(context)
    context_with_brand["subject"] = subject
    text_template_path = template if template.startswith("email/") else f"email/{template}"
    body = _render(text_template_path, context_with_brand)
    html_template_path = f"{text_template_path.rsplit('.', 1)[0]}.html"
    try:
        html_body = _render(html_template_path, context_with_brand)
    except TemplateDoesNotExist:
        html_body = None
    return body, html_body


def _log_notification(
    type_: str,
    status: str,
    *,
    recipient: str = "",
    user_id: int | None = None,
    booking_id: int | None = None,
    payout_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=NotificationLog.Channel.EMAIL,
            type=type_,
            recipient=recipient,
            status=status,
            user_id=user_id,
            booking_id=booking_id,
            payout_id=payout_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status},
        )


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    template: str,
    context: dict,
    user_id: int | None = None,
    booking_id: int | None = None,
    payout_id: int | None = None,
) -> bool:
    ids = {"user_id": user_id, "booking_id": booking_id, "payout_id": payout_id}
    if not to_email:
        _log_notification(type_, NotificationLog.Status.FAILED, error="missing recipient email", **ids)
        logger.warning("notifications: cannot send email without recipient", extra=ids)
        return False

    text_body, html_body = _prepare_email_bodies(subject, template, context)
    message = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    if html_body:
        message.attach_alternative(html_body, "text/html")

    try:
        message.send(fail_silently=False)
    except Exception as exc:
        logger.exception("notifications: email send failed", extra={"type": type_, **ids})
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            recipient=to_email,
            error=str(exc) or exc.__class__.__name__,
            **ids,
        )
        return False
    _log_notification(type_, NotificationLog.Status.SENT, recipient=to_email, **ids)
    return True


@shared_task(queue="emails")
def send_payment_confirmed_email(payment_id: int):
    """Tell the customer a payment for their booking went through."""
    Payment = apps.get_model("payments", "Payment")
    payment = (
        Payment.objects.select_related(
            "booking__customer",
            "booking__property",
            "booking__room",
        )
        .filter(pk=payment_id)
        .first()
    )
    if payment is None:
        logger.warning("notifications: payment %s no longer exists", payment_id)
        return False

    booking = payment.booking
    customer = booking.customer
    if payment.is_extension:
        payment_label = "extension payment"
    elif payment.payment_type == Payment.Type.DEPOSIT:
        payment_label = "deposit"
    else:
        payment_label = "payment"
    context = {
        "customer_name": customer.display_name,
        "payment_label": payment_label,
        "amount": format_money(payment.amount),
        "booking_code": booking.booking_code,
        "property_name": booking.property.name,
        "room_number": booking.room.room_number,
        "booking_status": booking.get_status_display(),
        "paid_amount": format_money(booking.paid_amount),
        "total_amount": format_money(booking.total_amount),
        "check_out_date": booking.check_out_date.isoformat() if booking.check_out_date else "",
    }
    return _send_email_logged(
        "payment_confirmed",
        to_email=customer.email,
        subject=f"Payment received for booking {booking.booking_code}",
        template="payment_confirmed.txt",
        context=context,
        user_id=customer.id,
        booking_id=booking.id,
    )


@shared_task(queue="emails")
def send_payout_processed_email(payout_id: int):
    """Tell an owner their withdrawal request was approved or rejected."""
    Payout = apps.get_model("payments", "Payout")
    payout = Payout.objects.select_related("admin_kos", "bank_account").filter(pk=payout_id).first()
    if payout is None:
        logger.warning("notifications: payout %s no longer exists", payout_id)
        return False

    owner = payout.admin_kos
    bank_account = payout.bank_account
    context = {
        "owner_name": owner.display_name,
        "payout_id": payout.id,
        "amount": format_money(payout.amount),
        "status_label": payout.get_status_display().lower(),
        "rejection_reason": payout.rejection_reason,
        "bank_name": bank_account.bank_name,
        "account_number": bank_account.account_number,
        "account_name": bank_account.account_name,
    }
    return _send_email_logged(
        "payout_processed",
        to_email=owner.email,
        subject=f"Withdrawal request #{payout.id} {context['status_label']}",
        template="payout_processed.txt",
        context=context,
        user_id=owner.id,
        payout_id=payout.id,
    )
