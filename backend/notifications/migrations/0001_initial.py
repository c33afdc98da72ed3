import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="NotificationLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "channel",
                    models.CharField(choices=[("email", "Email")], default="email", max_length=8),
                ),
                ("type", models.CharField(max_length=64)),
                ("recipient", models.EmailField(blank=True, default="", max_length=254)),
                ("booking_id", models.BigIntegerField(blank=True, null=True)),
                ("payout_id", models.BigIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(choices=[("sent", "Sent"), ("failed", "Failed")], max_length=8),
                ),
                ("error", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="notification_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking_id", "created_at"], name="notif_booking_created_idx"),
                    models.Index(fields=["payout_id", "created_at"], name="notif_payout_created_idx"),
                    models.Index(fields=["type", "status"], name="notif_type_status_idx"),
                ],
            },
        ),
    ]
