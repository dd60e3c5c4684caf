from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.statuses import BookingStatus, normalize_booking_status
from bookings.store import save_booking_fields
from notifications.emails import proposal_email
from notifications.models import OutboxNotification
from notifications.services.outbox import deliver_after_commit, enqueue_notification

logger = logging.getLogger(__name__)

PRE_BOOKING_STATUSES = {BookingStatus.DRAFT, BookingStatus.INQUIRY, BookingStatus.PROPOSAL_SENT}


class ProposalError(Exception):
    pass


def send_proposal(booking: Booking) -> Booking:
    """Email the client a link to their portal and mark the proposal as sent."""
    recipient = booking.contact_email
    if not recipient:
        raise ProposalError("Booking has no client email.")
    if not booking.contract_text:
        raise ProposalError("Booking does not have a contract. Add contract text before sending.")

    studio = booking.studio
    current = normalize_booking_status(booking.status)
    next_status = BookingStatus.PROPOSAL_SENT if current in PRE_BOOKING_STATUSES else current

    with transaction.atomic():
        booking = save_booking_fields(booking, status=next_status.value)
        content = proposal_email(
            client_name=booking.client.name if booking.client else "",
            photographer_name=studio.business_name,
            total_price=booking.total_price,
            deposit_amount=booking.effective_deposit_amount,
            portal_token=booking.portal_token,
        )
        notification, _ = enqueue_notification(
            kind=OutboxNotification.PROPOSAL_SENT,
            recipient=recipient,
            content=content,
            dedupe_key=f"{OutboxNotification.PROPOSAL_SENT}:{booking.pk}:{booking.version}",
            booking_id=booking.pk,
            reply_to=studio.contact_email,
        )
        deliver_after_commit([notification.pk])

    logger.info("Proposal for booking %s queued to %s", booking.pk, recipient)
    return booking


def sign_contract(booking: Booking, *, signature_name: str) -> Booking:
    if booking.contract_signed_at is not None:
        raise ProposalError("The contract has already been signed.")
    if not booking.contract_text:
        raise ProposalError("There is no contract to sign for this booking.")

    current = normalize_booking_status(booking.status)
    next_status = BookingStatus.PROPOSAL_SENT if current in PRE_BOOKING_STATUSES else current
    booking = save_booking_fields(
        booking,
        contract_signed_at=timezone.now(),
        client_signature_name=signature_name,
        status=next_status.value,
    )
    logger.info("Contract for booking %s signed by %s", booking.pk, signature_name)
    return booking
