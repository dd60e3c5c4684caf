from django.conf import settings
from django.db import models


class Studio(models.Model):
    """A photographer's business: the owner of clients, bookings and payouts."""

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="studio",
    )
    business_name = models.CharField(max_length=200)
    slug = models.SlugField(unique=True)
    contact_email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    billing_stripe_account = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.business_name


class StudioStripeAccount(models.Model):
    studio = models.OneToOneField(
        Studio,
        on_delete=models.CASCADE,
        related_name="stripe_account",
    )
    account_id = models.CharField(max_length=255, unique=True)
    livemode = models.BooleanField(default=False)
    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)
    default_currency = models.CharField(max_length=10, blank=True)
    account_email = models.EmailField(blank=True)
    requirements = models.JSONField(default=dict, blank=True)
    express_dashboard_url = models.URLField(blank=True)
    onboarding_link_url = models.URLField(blank=True)
    onboarding_expires_at = models.DateTimeField(null=True, blank=True)
    last_webhook_received_at = models.DateTimeField(null=True, blank=True)
    last_webhook_error_at = models.DateTimeField(null=True, blank=True)
    last_webhook_error_message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.studio.business_name} Stripe Account"
