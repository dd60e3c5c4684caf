from django.contrib import admin

from .models import OutboxNotification


@admin.register(OutboxNotification)
class OutboxNotificationAdmin(admin.ModelAdmin):
    list_display = ("kind", "recipient", "status", "attempts", "next_attempt_at", "sent_at")
    list_filter = ("kind", "status")
    search_fields = ("recipient", "subject", "dedupe_key")
    readonly_fields = ("dedupe_key", "created_at", "sent_at", "last_error")
