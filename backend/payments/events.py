"""
Typed view of the Stripe objects that settle booking payments.

Checkout sessions are created with metadata ``{bookingId, type, milestoneId,
baseAmount}``; this module turns a completed session (or a succeeded payment
intent carrying the same keys) back into a ``PaymentEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from bookings.statuses import PaymentKind


class EventDataError(ValueError):
    """The event is well-formed JSON but cannot be applied to any booking."""


@dataclass(frozen=True)
class PaymentEvent:
    booking_id: str
    kind: PaymentKind
    amount_paid: Decimal
    base_amount: Decimal = Decimal("0")
    milestone_id: str | None = None
    checkout_session_id: str | None = None
    payment_intent_id: str | None = None
    currency: str = "usd"

    @property
    def reference(self) -> str:
        """Stable identifier of the underlying payment, used to deduplicate side effects."""
        return self.checkout_session_id or self.payment_intent_id or f"{self.kind}:{self.milestone_id}"


def _parse_amount(value: Any, field: str) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise EventDataError(f"Invalid {field}: {value!r}") from None
    if not amount.is_finite():
        raise EventDataError(f"Invalid {field}: {value!r}")
    return amount


def cents_to_amount(cents: int | None) -> Decimal | None:
    if not cents:
        return None
    return (Decimal(int(cents)) / 100).quantize(Decimal("0.01"))


def _kind_from_metadata(metadata: Mapping[str, Any]) -> PaymentKind:
    raw_type = metadata.get("type")
    if not raw_type:
        if metadata.get("milestoneId"):
            return PaymentKind.MILESTONE
        raise EventDataError("Missing payment type in metadata")
    try:
        return PaymentKind(raw_type)
    except ValueError:
        raise EventDataError(f"Unknown payment type: {raw_type!r}") from None


def from_checkout_session(session: Mapping[str, Any]) -> PaymentEvent:
    metadata = session.get("metadata") or {}
    booking_id = metadata.get("bookingId")
    if not booking_id:
        raise EventDataError("Missing bookingId in checkout session metadata")

    kind = _kind_from_metadata(metadata)
    milestone_id = metadata.get("milestoneId") or None
    if kind == PaymentKind.MILESTONE and not milestone_id:
        raise EventDataError("Milestone payment without milestoneId")

    base_amount = _parse_amount(metadata.get("baseAmount"), "baseAmount")
    amount_paid = cents_to_amount(session.get("amount_total"))
    return PaymentEvent(
        booking_id=str(booking_id),
        kind=kind,
        amount_paid=amount_paid if amount_paid is not None else base_amount,
        base_amount=base_amount,
        milestone_id=milestone_id,
        checkout_session_id=session.get("id"),
        payment_intent_id=session.get("payment_intent") or None,
        currency=session.get("currency") or "usd",
    )


def from_payment_intent(intent: Mapping[str, Any]) -> PaymentEvent:
    metadata = intent.get("metadata") or {}
    booking_id = metadata.get("bookingId")
    milestone_id = metadata.get("milestoneId")
    if not booking_id or not milestone_id:
        raise EventDataError("Missing bookingId or milestoneId in payment intent metadata")

    base_amount = _parse_amount(metadata.get("baseAmount"), "baseAmount")
    amount_paid = cents_to_amount(intent.get("amount_received") or intent.get("amount"))
    return PaymentEvent(
        booking_id=str(booking_id),
        kind=PaymentKind.MILESTONE,
        amount_paid=amount_paid if amount_paid is not None else base_amount,
        base_amount=base_amount,
        milestone_id=str(milestone_id),
        payment_intent_id=intent.get("id"),
        currency=intent.get("currency") or "usd",
    )
