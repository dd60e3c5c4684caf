"""
Post-commit email delivery.

Callers enqueue notifications inside the transaction that changes booking
state; delivery is attempted once that transaction commits. A failed send
never propagates: the row is rescheduled with exponential backoff and picked
up again by ``process_pending`` (the ``deliver_notifications`` command).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from notifications.emails import EmailContent
from notifications.models import OutboxNotification

from .dispatcher import send_email

logger = logging.getLogger(__name__)


def _backoff_delay(attempt: int) -> timedelta:
    base = settings.NOTIFICATION_OUTBOX_BACKOFF_SECONDS
    return timedelta(seconds=base * max(1, 2 ** max(0, attempt - 1)))


def enqueue_notification(
    *,
    kind: str,
    recipient: str,
    content: EmailContent,
    dedupe_key: str,
    booking_id=None,
    reply_to: str = "",
) -> tuple[OutboxNotification, bool]:
    """Queue an email. A second call with the same ``dedupe_key`` returns the existing row."""
    notification, created = OutboxNotification.objects.get_or_create(
        dedupe_key=dedupe_key,
        defaults={
            "kind": kind,
            "booking_id": booking_id,
            "recipient": recipient,
            "subject": content.subject,
            "html_body": content.html,
            "text_body": content.text,
            "reply_to": reply_to,
            "status": OutboxNotification.PENDING,
            "next_attempt_at": timezone.now(),
        },
    )
    if not created:
        logger.info("Notification %s already queued; skipping duplicate.", dedupe_key)
    return notification, created


def deliver_notification(notification: OutboxNotification, *, now: datetime | None = None) -> bool:
    if notification.status not in OutboxNotification.DELIVERABLE_STATUSES:
        return notification.status == OutboxNotification.SENT

    now = now or timezone.now()
    notification.attempts += 1
    try:
        send_email(
            to=notification.recipient,
            subject=notification.subject,
            html=notification.html_body,
            text=notification.text_body,
            reply_to=notification.reply_to or None,
        )
    except Exception as exc:  # noqa: BLE001 - any backend failure is retried later
        logger.exception(
            "Failed to send %s notification %s to %s", notification.kind, notification.pk, notification.recipient
        )
        notification.last_error = f"{type(exc).__name__}: {exc}"[:255]
        if notification.attempts >= settings.NOTIFICATION_OUTBOX_MAX_ATTEMPTS:
            notification.status = OutboxNotification.DEAD
            notification.next_attempt_at = None
        else:
            notification.status = OutboxNotification.RETRY
            notification.next_attempt_at = now + _backoff_delay(notification.attempts)
        delivered = False
    else:
        notification.status = OutboxNotification.SENT
        notification.sent_at = now
        notification.next_attempt_at = None
        notification.last_error = ""
        delivered = True

    notification.save(
        update_fields=["attempts", "status", "sent_at", "next_attempt_at", "last_error"]
    )
    return delivered


def deliver_notifications(notification_ids: Iterable[int]) -> int:
    delivered = 0
    for notification in OutboxNotification.objects.filter(pk__in=list(notification_ids)):
        if deliver_notification(notification):
            delivered += 1
    return delivered


def _deliver_committed(notification_ids: list[int]) -> None:
    try:
        deliver_notifications(notification_ids)
    except Exception:  # noqa: BLE001 - rows stay queued for the next process_pending run
        logger.exception("Post-commit delivery of notifications %s failed", notification_ids)


def deliver_after_commit(notification_ids: Iterable[int]) -> None:
    """Attempt delivery once the surrounding transaction commits."""
    ids = list(notification_ids)
    if not ids:
        return
    transaction.on_commit(lambda: _deliver_committed(ids))


def process_pending(*, limit: int | None = None, now: datetime | None = None) -> dict[str, int]:
    now = now or timezone.now()
    limit = limit or settings.NOTIFICATION_OUTBOX_BATCH_SIZE
    due = OutboxNotification.objects.filter(
        status__in=OutboxNotification.DELIVERABLE_STATUSES,
        next_attempt_at__lte=now,
    ).order_by("next_attempt_at", "pk")[:limit]

    counts = {"sent": 0, "failed": 0}
    for notification in due:
        if deliver_notification(notification, now=now):
            counts["sent"] += 1
        else:
            counts["failed"] += 1
    return counts
