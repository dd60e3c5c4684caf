from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from bookings.milestones import outstanding_total, readable
from bookings.models import Booking
from bookings.statuses import PaymentStatus, UnknownStatusError, normalize_payment_status
from notifications.emails import payment_reminder_email
from notifications.models import OutboxNotification
from notifications.services.outbox import deliver_after_commit, enqueue_notification

logger = logging.getLogger(__name__)

REMINDER_COOLDOWN = timedelta(hours=24)
SETTLED_STATUSES = [PaymentStatus.PAID.value, PaymentStatus.DEPOSIT_PAID.value]


@dataclass(frozen=True)
class ReminderResult:
    booking_id: str
    recipient: str
    amount_due: Decimal
    queued: bool


def bookings_due_for_reminder(*, today: date, now: datetime):
    window_end = today + timedelta(days=settings.PAYMENT_REMINDER_WINDOW_DAYS)
    return (
        Booking.objects.select_related("client", "studio")
        .exclude(payment_status__in=SETTLED_STATUSES)
        .filter(payment_due_date__gte=today, payment_due_date__lte=window_end)
        .filter(Q(last_reminder_sent__isnull=True) | Q(last_reminder_sent__lt=now - REMINDER_COOLDOWN))
        .order_by("payment_due_date")
    )


def _format_date(value: date | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:%B} {value.day}, {value.year}"


def amount_due(booking: Booking) -> Decimal:
    if normalize_payment_status(booking.payment_status) == PaymentStatus.PENDING_DEPOSIT:
        return booking.effective_deposit_amount
    milestones = list(readable(booking.milestones))
    if milestones:
        return outstanding_total(milestones)
    return Decimal(booking.total_price)


def queue_reminder(booking: Booking, *, today: date, now: datetime) -> ReminderResult | None:
    recipient = booking.contact_email
    if not recipient:
        logger.warning("Booking %s has no client email; skipping reminder.", booking.pk)
        return None
    try:
        due = amount_due(booking)
    except UnknownStatusError as exc:
        logger.error("Booking %s holds invalid data: %s", booking.pk, exc)
        return None

    content = payment_reminder_email(
        client_name=booking.client.name if booking.client else "",
        photographer_name=booking.studio.business_name,
        amount_due=due,
        due_date=_format_date(booking.payment_due_date),
        booking_id=str(booking.pk),
        portal_token=booking.portal_token,
    )
    with transaction.atomic():
        notification, created = enqueue_notification(
            kind=OutboxNotification.PAYMENT_REMINDER,
            recipient=recipient,
            content=content,
            dedupe_key=f"{OutboxNotification.PAYMENT_REMINDER}:{booking.pk}:{today.isoformat()}",
            booking_id=booking.pk,
            reply_to=booking.studio.contact_email,
        )
        Booking.objects.filter(pk=booking.pk).update(last_reminder_sent=now)
        if created:
            deliver_after_commit([notification.pk])
    return ReminderResult(booking_id=str(booking.pk), recipient=recipient, amount_due=due, queued=created)


def send_payment_reminders(*, now: datetime | None = None) -> list[ReminderResult]:
    now = now or timezone.now()
    today = timezone.localdate(now)
    results = []
    for booking in bookings_due_for_reminder(today=today, now=now):
        result = queue_reminder(booking, today=today, now=now)
        if result is not None:
            results.append(result)
    logger.info("Queued %s payment reminders", sum(1 for r in results if r.queued))
    return results
