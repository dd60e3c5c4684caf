from django.contrib import admin

from payments.models import Payment

from .models import Booking, Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "phone", "studio", "updated_at")
    search_fields = ("name", "email", "studio__business_name")
    ordering = ("name", "email")


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ("kind", "milestone_id", "amount", "status", "stripe_checkout_session", "paid_at")
    readonly_fields = fields


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "studio", "client", "event_date", "total_price", "payment_status", "status")
    list_filter = ("payment_status", "status", "service_type")
    search_fields = ("client__name", "client__email", "client_email", "studio__business_name")
    readonly_fields = ("portal_token", "version", "created_at", "updated_at")
    inlines = [PaymentInline]
