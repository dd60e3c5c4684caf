import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(choices=[("deposit", "Deposit"), ("milestone", "Milestone")], max_length=20),
                ),
                ("milestone_id", models.CharField(blank=True, max_length=64)),
                ("base_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("transaction_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="usd", max_length=10)),
                ("stripe_checkout_session", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("stripe_payment_intent", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(max_length=30)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
