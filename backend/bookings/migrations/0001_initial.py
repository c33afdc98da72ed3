import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import bookings.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("properties", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "booking_code",
                    models.CharField(
                        default=bookings.models.generate_booking_code,
                        editable=False,
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("check_in_date", models.DateField()),
                (
                    "check_out_date",
                    models.DateField(
                        blank=True,
                        help_text="Exclusive end date; empty for open-ended stays.",
                        null=True,
                    ),
                ),
                (
                    "lease_type",
                    models.CharField(
                        choices=[
                            ("DAILY", "Daily"),
                            ("WEEKLY", "Weekly"),
                            ("MONTHLY", "Monthly"),
                            ("QUARTERLY", "Quarterly"),
                            ("YEARLY", "Yearly"),
                        ],
                        max_length=12,
                    ),
                ),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("deposit_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("UNPAID", "Unpaid"),
                            ("PENDING", "Payment pending"),
                            ("DEPOSIT_PAID", "Deposit paid"),
                            ("CONFIRMED", "Confirmed"),
                            ("CHECKED_IN", "Checked in"),
                            ("CHECKED_OUT", "Checked out"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                            ("EXPIRED", "Expired"),
                        ],
                        db_index=True,
                        default="UNPAID",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("UNPAID", "Unpaid"),
                            ("PENDING", "Pending"),
                            ("PARTIALLY_PAID", "Partially paid"),
                            ("PAID", "Paid"),
                        ],
                        default="UNPAID",
                        max_length=16,
                    ),
                ),
                (
                    "holds_room",
                    models.BooleanField(
                        default=False,
                        help_text="Whether this booking flipped the room's availability flag.",
                    ),
                ),
                ("is_validated", models.BooleanField(default=False)),
                ("validated_at", models.DateTimeField(blank=True, null=True)),
                ("actual_check_in_at", models.DateTimeField(blank=True, null=True)),
                ("actual_check_out_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "property",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="properties.property",
                    ),
                ),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="properties.room",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["room", "status"], name="booking_room_status_idx"),
                    models.Index(fields=["customer", "status"], name="booking_customer_status_idx"),
                    models.Index(fields=["property", "status"], name="booking_property_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("paid_amount__gte", 0)),
                        name="booking_paid_amount_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("paid_amount__lte", models.F("total_amount"))),
                        name="booking_paid_amount_within_total",
                    ),
                ],
            },
        ),
    ]
