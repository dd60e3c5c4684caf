from django.contrib import admin

from .models import Studio, StudioStripeAccount


@admin.register(Studio)
class StudioAdmin(admin.ModelAdmin):
    list_display = ("business_name", "slug", "contact_email", "billing_stripe_account")
    search_fields = ("business_name", "slug", "contact_email")


@admin.register(StudioStripeAccount)
class StudioStripeAccountAdmin(admin.ModelAdmin):
    list_display = (
        "studio",
        "account_id",
        "charges_enabled",
        "payouts_enabled",
        "updated_at",
    )
    readonly_fields = (
        "created_at",
        "updated_at",
        "last_webhook_received_at",
        "last_webhook_error_at",
        "last_webhook_error_message",
    )
    search_fields = ("account_id", "studio__business_name")
