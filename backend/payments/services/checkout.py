from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from bookings.milestones import CENT, find_deposit, find_milestone
from bookings.models import Booking
from bookings.statuses import PaymentKind, PaymentStatus, normalize_payment_status
from notifications.emails import portal_url
from payments.models import Payment

logger = logging.getLogger(__name__)

TRANSACTION_FEE_RATE = Decimal("0.035")


class CheckoutError(Exception):
    status_code = 400


class MilestoneNotFound(CheckoutError):
    status_code = 404


class AlreadyPaid(CheckoutError):
    pass


class NothingDue(CheckoutError):
    pass


@dataclass(frozen=True)
class CheckoutQuote:
    kind: PaymentKind
    description: str
    base_amount: Decimal
    transaction_fee: Decimal
    milestone_id: str | None = None

    @property
    def total(self) -> Decimal:
        return self.base_amount + self.transaction_fee

    @property
    def amount_cents(self) -> int:
        return int((self.total * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass
class CheckoutSessionStub:
    """
    Stand-in for stripe.checkout.Session when running in stub mode.

    Tests and local development do not hit Stripe; the stub carries predictable
    identifiers so the portal flow behaves as if Stripe responded.
    """

    id: str
    payment_intent: str
    payment_status: str
    url: str


def transaction_fee(base_amount: Decimal) -> Decimal:
    return (Decimal(base_amount) * TRANSACTION_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def _quote(kind: PaymentKind, description: str, base_amount: Decimal, milestone_id=None) -> CheckoutQuote:
    if base_amount <= 0:
        raise NothingDue("Nothing is due for this payment.")
    return CheckoutQuote(
        kind=kind,
        description=description,
        base_amount=base_amount,
        transaction_fee=transaction_fee(base_amount),
        milestone_id=milestone_id,
    )


def quote_payment(booking: Booking, kind: str, milestone_id: str | None = None) -> CheckoutQuote:
    """Work out what the client owes for a deposit or milestone payment, fee included."""
    milestones = booking.milestones
    if kind == PaymentKind.DEPOSIT:
        payment_status = normalize_payment_status(booking.payment_status)
        if payment_status in (PaymentStatus.DEPOSIT_PAID, PaymentStatus.PAID):
            raise AlreadyPaid("The deposit for this booking has already been paid.")
        deposit = find_deposit(milestones)
        if deposit is not None:
            if deposit.is_paid:
                raise AlreadyPaid("The deposit for this booking has already been paid.")
            return _quote(PaymentKind.DEPOSIT, deposit.name, deposit.amount, deposit.id)
        return _quote(PaymentKind.DEPOSIT, "Deposit", booking.effective_deposit_amount)

    if kind == PaymentKind.MILESTONE:
        milestone = find_milestone(milestones, milestone_id or "")
        if milestone is None:
            raise MilestoneNotFound("Payment milestone not found.")
        if milestone.is_paid:
            raise AlreadyPaid("This milestone has already been paid.")
        return _quote(PaymentKind.MILESTONE, milestone.name, milestone.amount, milestone.id)

    raise CheckoutError(f"Unknown payment type: {kind!r}")


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def _should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def _return_url(booking: Booking, outcome: str) -> str:
    return f"{portal_url(booking.portal_token)}?payment={outcome}"


def _stub_checkout_session(*, booking: Booking, quote: CheckoutQuote) -> CheckoutSessionStub:
    return CheckoutSessionStub(
        id=f"cs_test_{uuid4().hex}",
        payment_intent=f"pi_test_{uuid4().hex}",
        payment_status="unpaid",
        url=f"{_return_url(booking, 'preview')}&amount={quote.amount_cents}",
    )


def checkout_metadata(booking: Booking, quote: CheckoutQuote) -> dict[str, str]:
    """Metadata read back by the webhook when the session completes."""
    return {
        "bookingId": str(booking.pk),
        "type": quote.kind.value,
        "milestoneId": quote.milestone_id or "",
        "baseAmount": str(quote.base_amount),
        "transactionFee": str(quote.transaction_fee),
        "photographerId": str(booking.studio_id),
    }


def create_checkout_session(*, booking: Booking, quote: CheckoutQuote):
    """
    Create a Stripe Checkout session (or stub equivalent) for a booking payment.

    Returns an object with the subset of attributes (`id`, `payment_intent`,
    `payment_status`, `url`) the portal needs.
    """

    if _should_use_stub():
        return _stub_checkout_session(booking=booking, quote=quote)

    api_key = _get_stripe_api_key()
    if not api_key:
        raise RuntimeError("Stripe secret key is not configured.")

    stripe.api_key = api_key
    studio = booking.studio
    stripe_kwargs = {}
    if studio.billing_stripe_account:
        stripe_kwargs["stripe_account"] = studio.billing_stripe_account

    metadata = checkout_metadata(booking, quote)
    return stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        customer_email=booking.contact_email or None,
        line_items=[
            {
                "quantity": 1,
                "price_data": {
                    "currency": settings.STRIPE_CURRENCY,
                    "unit_amount": quote.amount_cents,
                    "product_data": {
                        "name": f"{studio.business_name}: {quote.description}",
                        "description": f"Includes {transaction_fee_label()} processing fee",
                    },
                },
            }
        ],
        success_url=_return_url(booking, "success"),
        cancel_url=_return_url(booking, "cancelled"),
        metadata=metadata,
        **stripe_kwargs,
    )


def transaction_fee_label() -> str:
    return f"{(TRANSACTION_FEE_RATE * 100).normalize()}%"


def start_checkout(booking: Booking, kind: str, milestone_id: str | None = None):
    """
    Quote the payment, open a checkout session and record the pending payment.

    Raises ``CheckoutError`` subclasses for requests that cannot be paid and lets
    ``stripe.StripeError`` propagate.
    """
    quote = quote_payment(booking, kind, milestone_id)
    session = create_checkout_session(booking=booking, quote=quote)
    payment = Payment.objects.create(
        booking=booking,
        kind=quote.kind,
        milestone_id=quote.milestone_id or "",
        base_amount=quote.base_amount,
        transaction_fee=quote.transaction_fee,
        amount=quote.total,
        currency=settings.STRIPE_CURRENCY,
        stripe_checkout_session=session.id,
        stripe_payment_intent=getattr(session, "payment_intent", None) or "",
        status=Payment.UNPAID,
    )
    logger.info(
        "Opened %s checkout %s for booking %s (%s)",
        quote.kind,
        session.id,
        booking.pk,
        quote.total,
    )
    return quote, session, payment
