"""
Apply a verified payment event to its booking.

The booking update, the payment ledger row and the queued notifications are
written in one transaction. Email delivery is attempted only after that
transaction commits, so a failing mail backend can neither roll back the
booking nor fail the webhook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from bookings.statuses import UnknownStatusError
from bookings.store import BookingSnapshot, BookingStore, DjangoBookingStore, StaleBookingError
from notifications import emails
from notifications.models import OutboxNotification
from notifications.services.outbox import deliver_after_commit, enqueue_notification
from payments.events import PaymentEvent
from payments.models import Payment
from payments.reconciliation import CLIENT, NotificationIntent, Reconciliation, reconcile

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

APPLIED = "applied"
NOT_FOUND = "not_found"
REJECTED = "rejected"


class SettlementConflictError(Exception):
    """The booking kept changing underneath us; the event should be redelivered."""


@dataclass(frozen=True)
class SettlementResult:
    outcome: str
    booking_id: str
    reconciliation: Reconciliation | None = None
    notification_ids: tuple[int, ...] = field(default=())

    @property
    def applied(self) -> bool:
        return self.outcome == APPLIED


def _content_for(
    intent: NotificationIntent,
    booking: BookingSnapshot,
    event: PaymentEvent,
    result: Reconciliation,
) -> emails.EmailContent:
    if intent.kind == OutboxNotification.PAYMENT_SUCCESS:
        return emails.payment_success_email(
            client_name=booking.client_name,
            photographer_name=booking.photographer_name,
            amount=event.amount_paid,
            booking_id=booking.id,
            portal_token=booking.portal_token,
        )
    if intent.kind == OutboxNotification.DEPOSIT_CONFIRMED:
        return emails.deposit_confirmed_email(
            client_name=booking.client_name,
            amount=event.amount_paid,
            booking_id=booking.id,
        )
    if intent.kind == OutboxNotification.FINAL_BALANCE_PAID:
        return emails.final_balance_paid_email(
            client_name=booking.client_name,
            amount=event.amount_paid,
            total_paid=result.total_paid,
            booking_id=booking.id,
        )
    raise ValueError(f"No email template for notification kind {intent.kind!r}")


def _record_payment(event: PaymentEvent, booking_id: str, paid_at: datetime) -> Payment:
    fee = event.amount_paid - event.base_amount if event.base_amount else 0
    defaults = {
        "booking_id": booking_id,
        "kind": event.kind,
        "milestone_id": event.milestone_id or "",
        "base_amount": event.base_amount or event.amount_paid,
        "transaction_fee": max(fee, 0),
        "amount": event.amount_paid,
        "currency": event.currency,
        "stripe_payment_intent": event.payment_intent_id or "",
        "status": Payment.PAID,
        "paid_at": paid_at,
    }
    if event.checkout_session_id:
        payment = Payment.objects.filter(stripe_checkout_session=event.checkout_session_id).first()
    else:
        payment = Payment.objects.filter(
            booking_id=booking_id, stripe_payment_intent=event.payment_intent_id
        ).first()

    if payment is None:
        return Payment.objects.create(stripe_checkout_session=event.checkout_session_id, **defaults)
    if payment.status == Payment.PAID:
        return payment
    for key, value in defaults.items():
        setattr(payment, key, value)
    payment.save()
    return payment


def _enqueue(
    booking: BookingSnapshot, event: PaymentEvent, result: Reconciliation
) -> list[int]:
    ids = []
    for intent in result.notifications:
        notification, _ = enqueue_notification(
            kind=intent.kind,
            recipient=intent.recipient,
            content=_content_for(intent, booking, event, result),
            dedupe_key=f"{intent.kind}:{booking.id}:{event.reference}",
            booking_id=booking.id,
            reply_to=booking.photographer_email if intent.audience == CLIENT else "",
        )
        if notification.status in OutboxNotification.DELIVERABLE_STATUSES:
            ids.append(notification.pk)
    return ids


def _settle_once(event: PaymentEvent, store: BookingStore, now: datetime) -> SettlementResult:
    booking = store.get(event.booking_id)
    if booking is None:
        logger.warning("Payment event for unknown booking %s; acknowledging.", event.booking_id)
        return SettlementResult(outcome=NOT_FOUND, booking_id=event.booking_id)

    result = reconcile(event, booking, now=now)
    if not result.target_found:
        logger.warning(
            "Booking %s has no milestone for %s payment %s",
            booking.id,
            event.kind,
            event.milestone_id or "deposit",
        )

    store.update(booking.id, result.patch(), expected_version=booking.version)
    _record_payment(event, booking.id, now)
    notification_ids = _enqueue(booking, event, result)
    deliver_after_commit(notification_ids)

    logger.info(
        "Settled %s payment for booking %s: %s/%s, total paid %s",
        event.kind,
        booking.id,
        result.payment_status,
        result.status,
        result.total_paid,
    )
    return SettlementResult(
        outcome=APPLIED,
        booking_id=booking.id,
        reconciliation=result,
        notification_ids=tuple(notification_ids),
    )


def settle_payment_event(
    event: PaymentEvent,
    *,
    store: BookingStore | None = None,
    now: datetime | None = None,
) -> SettlementResult:
    """
    Reconcile ``event`` against its booking and persist the outcome.

    Database errors propagate so the caller can ask Stripe to redeliver.
    """
    store = store or DjangoBookingStore()
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                return _settle_once(event, store, now or timezone.now())
        except StaleBookingError as exc:
            logger.warning(
                "Booking %s changed during settlement (attempt %s of %s)",
                exc.booking_id,
                attempt,
                MAX_ATTEMPTS,
            )
        except UnknownStatusError as exc:
            logger.error("Booking %s holds invalid data: %s", event.booking_id, exc)
            return SettlementResult(outcome=REJECTED, booking_id=event.booking_id)
    raise SettlementConflictError(
        f"Booking {event.booking_id} could not be settled after {MAX_ATTEMPTS} attempts"
    )
