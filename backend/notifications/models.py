from django.db import models


class OutboxNotification(models.Model):
    """An email queued in the same transaction as the state change that caused it."""

    PAYMENT_SUCCESS = "payment_success"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    FINAL_BALANCE_PAID = "final_balance_paid"
    PAYMENT_REMINDER = "payment_reminder"
    PROPOSAL_SENT = "proposal_sent"
    KINDS = [
        (PAYMENT_SUCCESS, "Payment success (client)"),
        (DEPOSIT_CONFIRMED, "Deposit confirmed (photographer)"),
        (FINAL_BALANCE_PAID, "Final balance paid (photographer)"),
        (PAYMENT_REMINDER, "Payment reminder (client)"),
        (PROPOSAL_SENT, "Proposal sent (client)"),
    ]

    PENDING = "pending"
    RETRY = "retry"
    SENT = "sent"
    DEAD = "dead"
    STATUSES = [
        (PENDING, "Pending"),
        (RETRY, "Retry"),
        (SENT, "Sent"),
        (DEAD, "Dead"),
    ]
    DELIVERABLE_STATUSES = (PENDING, RETRY)

    kind = models.CharField(max_length=32, choices=KINDS)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    recipient = models.EmailField()
    subject = models.CharField(max_length=255)
    html_body = models.TextField()
    text_body = models.TextField()
    reply_to = models.EmailField(blank=True)
    dedupe_key = models.CharField(max_length=255, unique=True)
    status = models.CharField(max_length=16, choices=STATUSES, default=PENDING)
    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(null=True, blank=True)
    last_error = models.CharField(max_length=255, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="outbox_status_due_idx"),
        ]

    def __str__(self):
        return f"{self.kind} -> {self.recipient} ({self.status})"
