import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from accounts.models import User
from bookings.models import Booking, Client
from bookings.statuses import BookingStatus, PaymentKind, PaymentStatus
from bookings.store import DjangoBookingStore, StaleBookingError
from notifications.models import OutboxNotification
from payments.events import PaymentEvent
from payments.models import Payment
from payments.services import settlement
from payments.services.settlement import SettlementConflictError, settle_payment_event
from studios.services import create_studio_for_user

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def studio(db):
    owner = User.objects.create_user(
        username="studio@example.com",
        email="studio@example.com",
        password="examplepass",
    )
    return create_studio_for_user(owner, business_name="Golden Hour Studio")


@pytest.fixture
def booking(studio):
    client = Client.objects.create(studio=studio, name="Avery", email="avery@example.com")
    return Booking.objects.create(
        studio=studio,
        client=client,
        client_email=client.email,
        total_price=Decimal("1000.00"),
        deposit_amount=Decimal("200.00"),
        payment_status=PaymentStatus.PENDING_DEPOSIT,
        status=BookingStatus.PROPOSAL_SENT,
        payment_milestones=[
            {"id": "m1", "name": "Deposit", "amount": "200.00", "status": "pending"},
            {"id": "m2", "name": "Final Payment", "amount": "800.00", "status": "pending"},
        ],
    )


def _deposit(booking, **overrides):
    values = dict(
        booking_id=str(booking.pk),
        kind=PaymentKind.DEPOSIT,
        amount_paid=Decimal("207.00"),
        base_amount=Decimal("200.00"),
        checkout_session_id="cs_test_1",
        payment_intent_id="pi_test_1",
    )
    values.update(overrides)
    return PaymentEvent(**values)


@pytest.mark.django_db
def test_deposit_updates_booking_and_notifies_after_commit(
    booking, mailoutbox, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        result = settle_payment_event(_deposit(booking), now=NOW)

    assert result.applied
    assert len(callbacks) == 1

    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    assert booking.status == BookingStatus.ACTIVE
    assert booking.version == 1
    assert booking.stripe_payment_intent_id == "pi_test_1"
    assert booking.payment_milestones[0]["status"] == "paid"
    assert booking.payment_milestones[0]["stripe_checkout_session_id"] == "cs_test_1"

    payment = Payment.objects.get(booking=booking)
    assert payment.status == Payment.PAID
    assert payment.amount == Decimal("207.00")
    assert payment.transaction_fee == Decimal("7.00")

    notification = OutboxNotification.objects.get(booking=booking)
    assert notification.kind == OutboxNotification.DEPOSIT_CONFIRMED
    assert notification.status == OutboxNotification.SENT
    assert [message.to for message in mailoutbox] == [["studio@example.com"]]
    assert "Deposit received" in mailoutbox[0].subject


@pytest.mark.django_db
def test_replayed_event_changes_nothing_and_sends_once(
    booking, mailoutbox, django_capture_on_commit_callbacks
):
    event = _deposit(booking)
    with django_capture_on_commit_callbacks(execute=True):
        settle_payment_event(event, now=NOW)
    booking.refresh_from_db()
    first_milestones = booking.payment_milestones

    with django_capture_on_commit_callbacks(execute=True):
        settle_payment_event(event, now=datetime(2026, 5, 2, tzinfo=timezone.utc))

    booking.refresh_from_db()
    assert booking.payment_milestones == first_milestones
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    assert Payment.objects.filter(booking=booking).count() == 1
    assert OutboxNotification.objects.filter(booking=booking).count() == 1
    assert len(mailoutbox) == 1


@pytest.mark.django_db
def test_final_payment_notifies_client_and_photographer(
    booking, mailoutbox, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        settle_payment_event(_deposit(booking), now=NOW)
        settle_payment_event(
            PaymentEvent(
                booking_id=str(booking.pk),
                kind=PaymentKind.MILESTONE,
                milestone_id="m2",
                amount_paid=Decimal("828.00"),
                base_amount=Decimal("800.00"),
                checkout_session_id="cs_test_2",
            ),
            now=NOW,
        )

    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.status == BookingStatus.COMPLETED
    kinds = set(OutboxNotification.objects.values_list("kind", "recipient"))
    assert kinds == {
        (OutboxNotification.DEPOSIT_CONFIRMED, "studio@example.com"),
        (OutboxNotification.PAYMENT_SUCCESS, "avery@example.com"),
        (OutboxNotification.FINAL_BALANCE_PAID, "studio@example.com"),
    }
    client_mail = next(message for message in mailoutbox if message.to == ["avery@example.com"])
    assert client_mail.reply_to == ["studio@example.com"]


@pytest.mark.django_db
@pytest.mark.parametrize("booking_id", [lambda: str(uuid.uuid4()), lambda: "not-a-uuid"])
def test_unknown_booking_is_acknowledged_without_writes(booking_id, studio):
    event = PaymentEvent(booking_id=booking_id(), kind=PaymentKind.DEPOSIT, amount_paid=Decimal("10"))

    result = settle_payment_event(event, now=NOW)

    assert result.outcome == settlement.NOT_FOUND
    assert Booking.objects.count() == 0
    assert Payment.objects.count() == 0
    assert OutboxNotification.objects.count() == 0


@pytest.mark.django_db
def test_unrecognized_status_is_rejected(booking):
    Booking.objects.filter(pk=booking.pk).update(status="archived")

    result = settle_payment_event(_deposit(booking), now=NOW)

    assert result.outcome == settlement.REJECTED
    booking.refresh_from_db()
    assert booking.version == 0
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_legacy_status_is_normalized_when_settling(booking):
    Booking.objects.filter(pk=booking.pk).update(status="contract_signed")

    settle_payment_event(_deposit(booking), now=NOW)

    booking.refresh_from_db()
    assert booking.status == BookingStatus.ACTIVE


class FlakyStore(DjangoBookingStore):
    """Loses the compare-and-swap ``conflicts`` times before writing."""

    def __init__(self, conflicts):
        self.conflicts = conflicts
        self.attempts = 0

    def update(self, booking_id, patch, *, expected_version):
        self.attempts += 1
        if self.attempts <= self.conflicts:
            raise StaleBookingError(booking_id, expected_version)
        return super().update(booking_id, patch, expected_version=expected_version)


@pytest.mark.django_db
def test_stale_write_is_retried(booking):
    store = FlakyStore(conflicts=1)

    result = settle_payment_event(_deposit(booking), store=store, now=NOW)

    assert result.applied
    assert store.attempts == 2
    booking.refresh_from_db()
    assert booking.version == 1
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    assert Payment.objects.count() == 1


@pytest.mark.django_db
def test_persistent_conflict_raises_for_redelivery(booking):
    store = FlakyStore(conflicts=settlement.MAX_ATTEMPTS)

    with pytest.raises(SettlementConflictError):
        settle_payment_event(_deposit(booking), store=store, now=NOW)

    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.PENDING_DEPOSIT
    assert Payment.objects.count() == 0
    assert OutboxNotification.objects.count() == 0


@pytest.mark.django_db
def test_email_failure_does_not_undo_settlement(
    booking, monkeypatch, mailoutbox, django_capture_on_commit_callbacks
):
    def broken_send(**kwargs):
        raise ConnectionError("smtp down")

    monkeypatch.setattr("notifications.services.outbox.send_email", broken_send)

    with django_capture_on_commit_callbacks(execute=True):
        result = settle_payment_event(_deposit(booking), now=NOW)

    assert result.applied
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    notification = OutboxNotification.objects.get(booking=booking)
    assert notification.status == OutboxNotification.RETRY
    assert notification.attempts == 1
    assert "smtp down" in notification.last_error
    assert mailoutbox == []


@pytest.mark.django_db
def test_checkout_payment_row_is_marked_paid(booking):
    Payment.objects.create(
        booking=booking,
        kind=PaymentKind.DEPOSIT,
        milestone_id="m1",
        base_amount=Decimal("200.00"),
        transaction_fee=Decimal("7.00"),
        amount=Decimal("207.00"),
        stripe_checkout_session="cs_test_1",
        status=Payment.UNPAID,
    )

    settle_payment_event(_deposit(booking), now=NOW)

    payment = Payment.objects.get()
    assert payment.status == Payment.PAID
    assert payment.paid_at == NOW
    assert payment.stripe_payment_intent == "pi_test_1"
