"""
Milestone reconciliation.

``reconcile`` is a pure function of a payment event and the current booking
snapshot. It returns the next payment schedule, the aggregate statuses and the
notifications that should follow once the new state is stored. It never talks
to the database, Stripe or an email backend, and running it again on its own
output with the same event changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from bookings.milestones import Milestone, ScheduleEntry, find_deposit, paid_total
from bookings.statuses import BookingStatus, PaymentKind, PaymentStatus
from bookings.store import BookingPatch, BookingSnapshot
from notifications.models import OutboxNotification

from .events import PaymentEvent

CLIENT = "client"
PHOTOGRAPHER = "photographer"


@dataclass(frozen=True)
class NotificationIntent:
    kind: str
    audience: str
    recipient: str


@dataclass(frozen=True)
class Reconciliation:
    booking_id: str
    milestones: tuple[ScheduleEntry, ...]
    payment_status: PaymentStatus
    status: BookingStatus
    stripe_payment_intent_id: str
    total_paid: Decimal
    is_final_payment: bool
    target: Milestone | None
    newly_paid: bool
    notifications: tuple[NotificationIntent, ...] = ()

    @property
    def target_found(self) -> bool:
        return self.target is not None

    def patch(self) -> BookingPatch:
        return BookingPatch(
            payment_milestones=self.milestones,
            payment_status=self.payment_status,
            status=self.status,
            stripe_payment_intent_id=self.stripe_payment_intent_id,
        )


def _is_target(milestone: ScheduleEntry, event: PaymentEvent) -> bool:
    if not isinstance(milestone, Milestone):
        return False
    if event.kind == PaymentKind.DEPOSIT:
        return milestone.is_deposit
    return milestone.id == event.milestone_id


def apply_payment(
    milestones: tuple[ScheduleEntry, ...], event: PaymentEvent, *, paid_at: str
) -> tuple[tuple[ScheduleEntry, ...], Milestone | None, bool]:
    """
    Mark the event's target milestone paid.

    Returns the new schedule, the target after the update (``None`` when no
    milestone matches) and whether this call changed it.
    """
    updated = []
    target = None
    newly_paid = False
    for milestone in milestones:
        if target is None and _is_target(milestone, event):
            paid = milestone.mark_paid(
                paid_at=paid_at,
                checkout_session_id=event.checkout_session_id,
                payment_intent_id=event.payment_intent_id,
            )
            newly_paid = paid is not milestone
            target = paid
            updated.append(paid)
        else:
            updated.append(milestone)
    return tuple(updated), target, newly_paid


def total_paid_for(
    milestones: tuple[ScheduleEntry, ...], booking: BookingSnapshot, event: PaymentEvent
) -> Decimal:
    total = paid_total(milestones)
    # bookings created before deposits were tracked as milestones keep the
    # deposit on the booking row only
    legacy_deposit = (
        event.kind == PaymentKind.DEPOSIT or booking.payment_status == PaymentStatus.DEPOSIT_PAID
    )
    if legacy_deposit and find_deposit(milestones) is None:
        total += booking.effective_deposit_amount
    return total


def _next_statuses(
    booking: BookingSnapshot, event: PaymentEvent, total_paid: Decimal, is_final: bool
) -> tuple[PaymentStatus, BookingStatus]:
    if event.kind == PaymentKind.DEPOSIT:
        return PaymentStatus.DEPOSIT_PAID, BookingStatus.ACTIVE
    if is_final:
        return PaymentStatus.PAID, BookingStatus.COMPLETED
    if total_paid > 0:
        return PaymentStatus.PARTIAL, booking.status
    return booking.payment_status, booking.status


def _notifications_for(
    booking: BookingSnapshot,
    event: PaymentEvent,
    payment_status: PaymentStatus,
    is_final: bool,
) -> tuple[NotificationIntent, ...]:
    intents = []
    if is_final and booking.client_email:
        intents.append(
            NotificationIntent(OutboxNotification.PAYMENT_SUCCESS, CLIENT, booking.client_email)
        )
    if booking.photographer_email:
        if event.kind == PaymentKind.DEPOSIT and payment_status == PaymentStatus.DEPOSIT_PAID:
            intents.append(
                NotificationIntent(
                    OutboxNotification.DEPOSIT_CONFIRMED, PHOTOGRAPHER, booking.photographer_email
                )
            )
        elif is_final:
            intents.append(
                NotificationIntent(
                    OutboxNotification.FINAL_BALANCE_PAID, PHOTOGRAPHER, booking.photographer_email
                )
            )
    return tuple(intents)


def reconcile(event: PaymentEvent, booking: BookingSnapshot, *, now: datetime) -> Reconciliation:
    milestones, target, newly_paid = apply_payment(
        booking.milestones, event, paid_at=now.isoformat()
    )
    total_paid = total_paid_for(milestones, booking, event)
    is_final = total_paid >= booking.total_price
    payment_status, status = _next_statuses(booking, event, total_paid, is_final)

    return Reconciliation(
        booking_id=booking.id,
        milestones=milestones,
        payment_status=payment_status,
        status=status,
        stripe_payment_intent_id=event.payment_intent_id or booking.stripe_payment_intent_id,
        total_paid=total_paid,
        is_final_payment=is_final,
        target=target,
        newly_paid=newly_paid,
        notifications=_notifications_for(booking, event, payment_status, is_final),
    )
