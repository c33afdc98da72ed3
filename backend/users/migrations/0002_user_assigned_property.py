import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("users", "0001_initial"),
        ("properties", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="assigned_property",
            field=models.ForeignKey(
                blank=True,
                help_text="Property a receptionist works at.",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="receptionists",
                to="properties.property",
            ),
        ),
    ]
