from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("booking", "kind", "amount", "currency", "status", "paid_at", "created_at")
    list_filter = ("kind", "status")
    search_fields = ("stripe_checkout_session", "stripe_payment_intent", "booking__id")
