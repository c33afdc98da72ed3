"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from payments import midtrans
from payments.models import BankAccount
from properties.models import LeaseType, Property, Room

User = get_user_model()

PASSWORD = "testpass"


def _create_user(username: str, role: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        role=role,
        **extra,
    )


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def auth():
    """Return a factory that logs a user in through the token endpoint."""

    def _auth(user) -> APIClient:
        client = APIClient()
        token_resp = client.post(
            "/api/users/token/",
            {"identifier": user.username, "password": PASSWORD},
            format="json",
        )
        assert token_resp.status_code == 200, token_resp.data
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token_resp.data['access']}")
        return client

    return _auth


@pytest.fixture
def owner():
    return _create_user("owner", User.Roles.ADMINKOS)


@pytest.fixture
def other_owner():
    return _create_user("other-owner", User.Roles.ADMINKOS)


@pytest.fixture
def customer():
    return _create_user("customer", User.Roles.CUSTOMER, first_name="Sari")


@pytest.fixture
def other_customer():
    return _create_user("other-customer", User.Roles.CUSTOMER)


@pytest.fixture
def superadmin():
    return _create_user("superadmin", User.Roles.SUPERADMIN)


@pytest.fixture
def kos(owner):
    return Property.objects.create(
        owner=owner,
        name="Kos Melati",
        address="Jl. Kaliurang 12",
        city="Yogyakarta",
        is_approved=True,
    )


@pytest.fixture
def receptionist(kos):
    return _create_user("receptionist", User.Roles.RECEPTIONIST, assigned_property=kos)


@pytest.fixture
def room(kos):
    return Room.objects.create(
        property=kos,
        room_number="A1",
        room_type="Standard",
        monthly_price=Decimal("1500000.00"),
        daily_price=Decimal("100000.00"),
    )


@pytest.fixture
def approved_bank_account(owner):
    return BankAccount.objects.create(
        admin_kos=owner,
        bank_code="BCA",
        bank_name="Bank Central Asia",
        account_number="1234567890",
        account_name="Owner Kos",
        status=BankAccount.Status.APPROVED,
    )


def future(days: int):
    return timezone.localdate() + timedelta(days=days)


@pytest.fixture
def booking_factory(customer, room) -> Callable[..., Booking]:
    """Insert bookings directly, bypassing the lifecycle guards."""

    def _create_booking(
        *,
        room_override: Room | None = None,
        customer_override=None,
        check_in_date=None,
        check_out_date=None,
        lease_type=LeaseType.MONTHLY,
        status=Booking.Status.UNPAID,
        total_amount=Decimal("1500000.00"),
        deposit_amount=Decimal("450000.00"),
        **extra_fields,
    ) -> Booking:
        selected_room = room_override or room
        check_in_date = check_in_date or future(3)
        return Booking.objects.create(
            customer=customer_override or customer,
            property=selected_room.property,
            room=selected_room,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            lease_type=lease_type,
            status=status,
            total_amount=total_amount,
            deposit_amount=deposit_amount,
            **extra_fields,
        )

    return _create_booking


class FakeMidtrans:
    """In-memory stand-in for the Midtrans adapter calls."""

    def __init__(self):
        self._counter = itertools.count(1)
        self.created: list[dict] = []
        self.cancelled: list[str] = []
        self.statuses: dict[str, dict] = {}
        self.cancel_error: Exception | None = None
        self.create_error: Exception | None = None

    def create_snap_transaction(self, payload):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        n = next(self._counter)
        return {
            "token": f"snap-token-{n}",
            "redirect_url": f"https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-token-{n}",
        }

    def get_transaction_status(self, order_id):
        if order_id not in self.statuses:
            raise midtrans.MidtransRequestError("Transaction doesn't exist.")
        return dict(self.statuses[order_id])

    def cancel_transaction(self, order_id):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(order_id)
        return {"order_id": order_id, "transaction_status": "cancel", "status_code": "200"}


@pytest.fixture
def fake_midtrans(monkeypatch):
    fake = FakeMidtrans()
    monkeypatch.setattr(midtrans, "create_snap_transaction", fake.create_snap_transaction)
    monkeypatch.setattr(midtrans, "get_transaction_status", fake.get_transaction_status)
    monkeypatch.setattr(midtrans, "cancel_transaction", fake.cancel_transaction)
    return fake


def _notification_for(payment, transaction_status: str, **extra) -> dict:
    """Build a signed Midtrans notification body for ``payment``."""
    status_code = "200" if transaction_status in ("settlement", "capture") else "201"
    if transaction_status in ("deny", "cancel", "expire", "failure"):
        status_code = "202"
    gross_amount = f"{payment.amount:.2f}"
    body = {
        "order_id": payment.order_id,
        "transaction_status": transaction_status,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "transaction_id": f"tx-{payment.order_id.lower()}",
        "payment_type": "bank_transfer",
        "transaction_time": "2024-08-01 10:00:00",
        "signature_key": midtrans.compute_signature(payment.order_id, status_code, gross_amount),
    }
    body.update(extra)
    return body


@pytest.fixture
def signed_notification():
    return _notification_for
