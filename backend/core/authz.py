"""Typed actor context and role-based permissions.

Each request resolves its actor once; the services and views only ask the
context questions instead of re-deriving role strings per branch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from rest_framework.permissions import BasePermission

from .errors import Forbidden


class Role:
    CUSTOMER = "CUSTOMER"
    ADMINKOS = "ADMINKOS"
    RECEPTIONIST = "RECEPTIONIST"
    SUPERADMIN = "SUPERADMIN"


@dataclass(frozen=True)
class ActorContext:
    user: Any
    role: str
    assigned_property_id: int | None = None

    @classmethod
    def for_user(cls, user) -> "ActorContext":
        return cls(
            user=user,
            role=getattr(user, "role", "") or "",
            assigned_property_id=getattr(user, "assigned_property_id", None),
        )

    @classmethod
    def from_request(cls, request) -> "ActorContext":
        cached = getattr(request, "_actor_context", None)
        if cached is not None:
            return cached
        actor = cls.for_user(request.user)
        request._actor_context = actor
        return actor

    @property
    def user_id(self) -> int | None:
        return getattr(self.user, "id", None)

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN

    @property
    def is_owner(self) -> bool:
        return self.role == Role.ADMINKOS

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER

    @property
    def is_receptionist(self) -> bool:
        return self.role == Role.RECEPTIONIST

    def owns_property(self, property_obj) -> bool:
        return self.is_owner and property_obj.owner_id == self.user_id

    def staffs_property(self, property_obj) -> bool:
        return self.is_receptionist and self.assigned_property_id == property_obj.id

    def is_front_desk_for(self, booking) -> bool:
        """Owner, receptionist or superadmin responsible for the booking's property."""
        if self.is_superadmin:
            return True
        prop = booking.property
        return self.owns_property(prop) or self.staffs_property(prop)

    def can_access_booking(self, booking) -> bool:
        if booking.customer_id == self.user_id:
            return True
        return self.is_front_desk_for(booking)


def require_booking_access(actor: ActorContext, booking) -> None:
    if not actor.can_access_booking(booking):
        raise Forbidden("You don't have access to this booking.")


def require_front_desk(actor: ActorContext, booking) -> None:
    if not actor.is_front_desk_for(booking):
        raise Forbidden("Only the property's staff can perform this action.")


def require_booking_customer(actor: ActorContext, booking) -> None:
    if not (actor.is_customer and booking.customer_id == actor.user_id):
        raise Forbidden("Only the customer who made this booking can do this.")


class HasRole(BasePermission):
    """
    Allows access to authenticated users whose role is in the required roles.
    """

    required_roles: Sequence[str] = ()
    message = "Your role does not allow this action."

    def __init__(self, roles: Iterable[str] | None = None):
        if roles is not None:
            self.required_roles = tuple(roles)

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        if not self.required_roles:
            return False
        return ActorContext.from_request(request).role in self.required_roles

    @classmethod
    def with_roles(cls, roles: Iterable[str]):
        """
        Helper to build a permission class with baked-in required roles.
        """

        role_tuple = tuple(roles)

        class _HasRole(cls):
            required_roles = role_tuple

        _HasRole.__name__ = f"{cls.__name__}WithRoles"
        return _HasRole
