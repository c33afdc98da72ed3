from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models

from core.authz import Role


class User(AbstractUser):
    """Account for customers, kos owners, receptionists and platform admins."""

    class Roles(models.TextChoices):
        CUSTOMER = Role.CUSTOMER, "Customer"
        ADMINKOS = Role.ADMINKOS, "Kos owner"
        RECEPTIONIST = Role.RECEPTIONIST, "Receptionist"
        SUPERADMIN = Role.SUPERADMIN, "Super admin"

    role = models.CharField(
        max_length=16,
        choices=Roles.choices,
        default=Roles.CUSTOMER,
        db_index=True,
    )
    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    assigned_property = models.ForeignKey(
        "properties.Property",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receptionists",
        help_text="Property a receptionist works at.",
    )

    def is_owner(self) -> bool:
        return self.role == self.Roles.ADMINKOS

    def is_customer(self) -> bool:
        return self.role == self.Roles.CUSTOMER

    @property
    def display_name(self) -> str:
        return self.get_full_name().strip() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"
