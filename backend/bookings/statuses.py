"""
Closed status vocabularies for bookings and their payment schedules.

Stored rows may still carry spellings written by older versions of the
product (``contract_sent``, ``Sent`` ...). Those are mapped onto the current
values by the ``normalize_*`` helpers, which the booking store applies when
reading rows so that the rest of the code only ever compares enum members.
"""

from __future__ import annotations

from django.db import models


class UnknownStatusError(ValueError):
    """A stored status string matches neither a current value nor a legacy alias."""


class BookingStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    INQUIRY = "Inquiry", "Inquiry"
    PROPOSAL_SENT = "PROPOSAL_SENT", "Proposal sent"
    ACTIVE = "Active", "Active"
    COMPLETED = "completed", "Completed"


class PaymentStatus(models.TextChoices):
    PENDING_DEPOSIT = "PENDING_DEPOSIT", "Pending deposit"
    DEPOSIT_PAID = "DEPOSIT_PAID", "Deposit paid"
    PARTIAL = "partial", "Partially paid"
    PAID = "paid", "Paid"
    PENDING = "pending", "Pending"


class MilestoneStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    OVERDUE = "overdue", "Overdue"


class PaymentKind(models.TextChoices):
    DEPOSIT = "deposit", "Deposit"
    MILESTONE = "milestone", "Milestone"


LEGACY_BOOKING_STATUSES = {
    "contract_sent": BookingStatus.PROPOSAL_SENT,
    "Sent": BookingStatus.PROPOSAL_SENT,
    "contract_signed": BookingStatus.PROPOSAL_SENT,
    "payment_pending": BookingStatus.PROPOSAL_SENT,
}


def normalize_booking_status(value: str | None) -> BookingStatus:
    if not value:
        return BookingStatus.DRAFT
    if value in BookingStatus.values:
        return BookingStatus(value)
    try:
        return LEGACY_BOOKING_STATUSES[value]
    except KeyError:
        raise UnknownStatusError(f"Unknown booking status: {value!r}") from None


def normalize_payment_status(value: str | None) -> PaymentStatus:
    if not value:
        return PaymentStatus.PENDING
    if value in PaymentStatus.values:
        return PaymentStatus(value)
    raise UnknownStatusError(f"Unknown payment status: {value!r}")


def normalize_milestone_status(value: str | None) -> MilestoneStatus:
    if not value:
        return MilestoneStatus.PENDING
    if value in MilestoneStatus.values:
        return MilestoneStatus(value)
    raise UnknownStatusError(f"Unknown milestone status: {value!r}")
