"""Tests for the actor context used by booking and payout endpoints."""

from __future__ import annotations

import pytest

from core.authz import ActorContext, require_booking_access, require_front_desk
from core.errors import Forbidden

pytestmark = pytest.mark.django_db


def test_customer_sees_only_own_booking(booking_factory, customer, other_customer):
    booking = booking_factory()

    assert ActorContext.for_user(customer).can_access_booking(booking)
    with pytest.raises(Forbidden):
        require_booking_access(ActorContext.for_user(other_customer), booking)


def test_owner_and_receptionist_are_front_desk(booking_factory, owner, receptionist):
    booking = booking_factory()

    assert ActorContext.for_user(owner).is_front_desk_for(booking)
    assert ActorContext.for_user(receptionist).is_front_desk_for(booking)


def test_other_owner_is_not_front_desk(booking_factory, other_owner):
    booking = booking_factory()

    with pytest.raises(Forbidden):
        require_front_desk(ActorContext.for_user(other_owner), booking)


def test_superadmin_accesses_everything(booking_factory, superadmin):
    booking = booking_factory()
    actor = ActorContext.for_user(superadmin)

    assert actor.is_superadmin
    assert actor.can_access_booking(booking)
    assert actor.is_front_desk_for(booking)


def test_customer_is_not_front_desk_for_own_booking(booking_factory, customer):
    booking = booking_factory()

    with pytest.raises(Forbidden):
        require_front_desk(ActorContext.for_user(customer), booking)
