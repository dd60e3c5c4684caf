from django.db import models

from bookings.statuses import PaymentKind


class Payment(models.Model):
    """Ledger entry for one checkout session or payment intent against a booking."""

    UNPAID = "unpaid"
    PAID = "paid"

    booking = models.ForeignKey("bookings.Booking", on_delete=models.CASCADE, related_name="payments")
    kind = models.CharField(max_length=20, choices=PaymentKind.choices)
    milestone_id = models.CharField(max_length=64, blank=True)
    base_amount = models.DecimalField(max_digits=10, decimal_places=2)
    transaction_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=10, default="usd")
    stripe_checkout_session = models.CharField(max_length=255, unique=True, null=True, blank=True)
    stripe_payment_intent = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=30)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.kind} {self.amount} {self.currency} ({self.status})"
