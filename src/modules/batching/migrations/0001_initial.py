from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import uuid6
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Batch",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        db_index=True, default=django.utils.timezone.now
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("region_key", models.CharField(db_index=True, max_length=120)),
                ("sequence", models.PositiveIntegerField()),
                (
                    "accumulated_weight",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=12
                    ),
                ),
                ("capacity", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("collecting", "Collecting"),
                            ("ready", "Ready for dispatch"),
                            ("assigned", "Assigned"),
                            ("in_transit", "In transit"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="collecting",
                        max_length=20,
                    ),
                ),
                ("ready_at", models.DateTimeField(blank=True, null=True)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("in_transit_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "assigned_driver",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="delivery_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "delivery_batches",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["region_key", "status", "created_at"],
                        name="batches_region_status_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("region_key", "sequence"),
                        name="batches_region_sequence_unique",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(accumulated_weight__gte=0),
                        name="batches_weight_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            accumulated_weight__lte=models.F("capacity")
                        ),
                        name="batches_weight_within_capacity",
                    ),
                ],
            },
        ),
    ]
