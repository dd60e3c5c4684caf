"""
Data access for payment reconciliation.

``BookingStore`` is the only way the payment services read or write a
booking. Reads return an immutable ``BookingSnapshot`` with statuses already
normalized; writes are a compare-and-swap on ``Booking.version`` so two
concurrent reconciliations of the same booking cannot silently overwrite each
other's milestone updates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from .milestones import ScheduleEntry, dump_milestones, effective_deposit_amount, parse_milestones
from .models import Booking
from .statuses import (
    BookingStatus,
    PaymentStatus,
    normalize_booking_status,
    normalize_payment_status,
)

logger = logging.getLogger(__name__)


class StaleBookingError(Exception):
    """The booking changed between read and write."""

    def __init__(self, booking_id: str, expected_version: int):
        super().__init__(f"Booking {booking_id} is no longer at version {expected_version}")
        self.booking_id = booking_id
        self.expected_version = expected_version


@dataclass(frozen=True)
class BookingSnapshot:
    id: str
    total_price: Decimal
    deposit_amount: Decimal | None
    payment_status: PaymentStatus
    status: BookingStatus
    milestones: tuple[ScheduleEntry, ...]
    version: int = 0
    stripe_payment_intent_id: str = ""
    client_name: str = ""
    client_email: str = ""
    photographer_name: str = ""
    photographer_email: str = ""
    portal_token: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def effective_deposit_amount(self) -> Decimal:
        return effective_deposit_amount(self.total_price, self.deposit_amount)


@dataclass(frozen=True)
class BookingPatch:
    payment_milestones: tuple[ScheduleEntry, ...]
    payment_status: PaymentStatus
    status: BookingStatus
    stripe_payment_intent_id: str

    def as_fields(self) -> dict[str, Any]:
        return {
            "payment_milestones": dump_milestones(self.payment_milestones),
            "payment_status": self.payment_status.value,
            "status": self.status.value,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
        }


class BookingStore(Protocol):
    def get(self, booking_id: str) -> BookingSnapshot | None:
        ...

    def update(self, booking_id: str, patch: BookingPatch, *, expected_version: int) -> None:
        ...


def snapshot_from_booking(booking: Booking) -> BookingSnapshot:
    """Raises ``UnknownStatusError`` when the row holds an unrecognized status."""
    client = booking.client
    studio = booking.studio
    return BookingSnapshot(
        id=str(booking.pk),
        total_price=Decimal(booking.total_price),
        deposit_amount=Decimal(booking.deposit_amount) if booking.deposit_amount is not None else None,
        payment_status=normalize_payment_status(booking.payment_status),
        status=normalize_booking_status(booking.status),
        milestones=tuple(parse_milestones(booking.payment_milestones)),
        version=booking.version,
        stripe_payment_intent_id=booking.stripe_payment_intent_id or "",
        client_name=client.name if client else "",
        client_email=booking.contact_email,
        photographer_name=studio.business_name,
        photographer_email=studio.contact_email or studio.owner.email,
        portal_token=booking.portal_token,
        extra={
            "service_type": booking.service_type,
            "event_date": booking.event_date,
        },
    )


class DjangoBookingStore:
    def get(self, booking_id: str) -> BookingSnapshot | None:
        try:
            booking = Booking.objects.select_related("client", "studio__owner").get(pk=booking_id)
        except (Booking.DoesNotExist, ValidationError, ValueError):
            return None
        return snapshot_from_booking(booking)

    def update(self, booking_id: str, patch: BookingPatch, *, expected_version: int) -> None:
        updated = Booking.objects.filter(pk=booking_id, version=expected_version).update(
            **patch.as_fields(),
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            raise StaleBookingError(booking_id, expected_version)
        logger.debug("Booking %s written at version %s", booking_id, expected_version + 1)


def save_booking_fields(booking: Booking, **fields: Any) -> Booking:
    """
    Write ``fields`` to ``booking`` only if nobody else has written it since it
    was loaded, then reload it. Raises ``StaleBookingError`` otherwise.
    """
    updated = Booking.objects.filter(pk=booking.pk, version=booking.version).update(
        **fields,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if not updated:
        raise StaleBookingError(str(booking.pk), booking.version)
    booking.refresh_from_db()
    return booking
