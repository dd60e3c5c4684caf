import secrets
import uuid

from django.core.validators import MinValueValidator
from django.db import models

from .milestones import effective_deposit_amount, parse_milestones
from .statuses import BookingStatus, PaymentStatus


def generate_portal_token() -> str:
    return secrets.token_urlsafe(24)


class Client(models.Model):
    """A person or couple a studio photographs."""

    studio = models.ForeignKey("studios.Studio", on_delete=models.CASCADE, related_name="clients")
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "email"]
        unique_together = ("studio", "email")

    def __str__(self):
        return self.name or self.email


class Booking(models.Model):
    """A photography engagement with its contract and payment schedule."""

    WEDDING = "wedding"
    PORTRAIT = "portrait"
    SERVICE_TYPES = [
        (WEDDING, "Wedding"),
        (PORTRAIT, "Portrait"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    studio = models.ForeignKey("studios.Studio", on_delete=models.CASCADE, related_name="bookings")
    client = models.ForeignKey(
        "Client",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    service_type = models.CharField(max_length=20, choices=SERVICE_TYPES, default=WEDDING)
    event_date = models.DateField(null=True, blank=True)
    total_price = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(0)]
    )
    deposit_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING_DEPOSIT
    )
    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.DRAFT)
    payment_milestones = models.JSONField(default=list, blank=True)
    payment_due_date = models.DateField(null=True, blank=True)
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True)
    client_email = models.EmailField(blank=True)
    portal_token = models.CharField(max_length=64, unique=True, default=generate_portal_token)
    contract_text = models.TextField(blank=True)
    contract_signed_at = models.DateTimeField(null=True, blank=True)
    client_signature_name = models.CharField(max_length=200, blank=True)
    last_reminder_sent = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payment_status", "payment_due_date"], name="booking_payment_due_idx"),
        ]

    def __str__(self):
        client_name = self.client.name if self.client else "Unassigned"
        return f"{self.get_service_type_display()} booking for {client_name}"

    @property
    def milestones(self):
        return parse_milestones(self.payment_milestones)

    @property
    def effective_deposit_amount(self):
        return effective_deposit_amount(self.total_price, self.deposit_amount)

    @property
    def contact_email(self) -> str:
        if self.client_email:
            return self.client_email
        return self.client.email if self.client else ""

    @property
    def contract_signed(self) -> bool:
        return self.contract_signed_at is not None
