import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import bookings.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("studios", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Client",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("email", models.EmailField(max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "studio",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="clients",
                        to="studios.studio",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "email"],
                "unique_together": {("studio", "email")},
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "service_type",
                    models.CharField(
                        choices=[("wedding", "Wedding"), ("portrait", "Portrait")],
                        default="wedding",
                        max_length=20,
                    ),
                ),
                ("event_date", models.DateField(blank=True, null=True)),
                (
                    "total_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "deposit_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=10,
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("PENDING_DEPOSIT", "Pending deposit"),
                            ("DEPOSIT_PAID", "Deposit paid"),
                            ("partial", "Partially paid"),
                            ("paid", "Paid"),
                            ("pending", "Pending"),
                        ],
                        default="PENDING_DEPOSIT",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("Inquiry", "Inquiry"),
                            ("PROPOSAL_SENT", "Proposal sent"),
                            ("Active", "Active"),
                            ("completed", "Completed"),
                        ],
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("payment_milestones", models.JSONField(blank=True, default=list)),
                ("payment_due_date", models.DateField(blank=True, null=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, max_length=255)),
                ("client_email", models.EmailField(blank=True, max_length=254)),
                (
                    "portal_token",
                    models.CharField(default=bookings.models.generate_portal_token, max_length=64, unique=True),
                ),
                ("contract_text", models.TextField(blank=True)),
                ("contract_signed_at", models.DateTimeField(blank=True, null=True)),
                ("client_signature_name", models.CharField(blank=True, max_length=200)),
                ("last_reminder_sent", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "client",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings",
                        to="bookings.client",
                    ),
                ),
                (
                    "studio",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to="studios.studio",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payment_status", "payment_due_date"], name="booking_payment_due_idx"),
                ],
            },
        ),
    ]
