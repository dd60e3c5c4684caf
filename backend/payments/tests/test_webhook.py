import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from django.db import DatabaseError
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import User
from bookings.models import Booking, Client
from bookings.statuses import BookingStatus, PaymentStatus
from notifications.models import OutboxNotification
from payments.models import Payment
from payments.services.settlement import SettlementConflictError
from studios.models import StudioStripeAccount
from studios.services import create_studio_for_user

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def stripe_settings(settings):
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.STRIPE_SECRET_KEY = "sk_test"


@pytest.fixture
def api_client():
    return APIClient()


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
    )


def _sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _event(event_type, data_object, **extra):
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
        **extra,
    }


def _checkout_completed(booking_id, **metadata):
    return _event(
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "object": "checkout.session",
            "amount_total": 20700,
            "currency": "usd",
            "payment_intent": "pi_test_1",
            "payment_status": "paid",
            "metadata": {"bookingId": str(booking_id), "type": "deposit", "baseAmount": "200.00", **metadata},
        },
    )


def _post(api_client, event, signature=None, **headers):
    payload = json.dumps(event)
    if signature is None:
        signature = _sign(payload)
    if signature:
        headers["HTTP_STRIPE_SIGNATURE"] = signature
    return api_client.post(
        reverse("stripe-webhook"),
        data=payload,
        content_type="application/json",
        **headers,
    )


@pytest.mark.django_db
def test_checkout_completed_settles_deposit(api_client, booking):
    response = _post(api_client, _checkout_completed(booking.pk))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    assert booking.status == BookingStatus.ACTIVE
    assert Payment.objects.get().stripe_checkout_session == "cs_test_1"


@pytest.mark.django_db
def test_deposit_keeps_schedule_entries_it_cannot_read(api_client, booking):
    cancelled = {"id": "m2", "name": "Engagement Shoot", "amount": "300.00", "status": "cancelled"}
    booking.payment_milestones = [
        {"id": "m1", "name": "Deposit", "amount": "200.00", "status": "pending"},
        cancelled,
        {"id": "m3", "name": "Final Payment", "amount": "500.00", "status": "pending"},
    ]
    booking.save(update_fields=["payment_milestones"])

    response = _post(api_client, _checkout_completed(booking.pk))

    assert response.status_code == 200
    booking.refresh_from_db()
    assert len(booking.payment_milestones) == 3
    assert booking.payment_milestones[0]["status"] == "paid"
    assert booking.payment_milestones[1] == cancelled
    assert booking.payment_milestones[2]["status"] == "pending"
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID


@pytest.mark.django_db
def test_missing_signature_is_rejected(api_client, booking):
    response = _post(api_client, _checkout_completed(booking.pk), signature="")

    assert response.status_code == 400
    assert "error" in response.json()
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.PENDING_DEPOSIT


@pytest.mark.django_db
def test_invalid_signature_is_rejected(api_client, booking):
    event = _checkout_completed(booking.pk)
    response = _post(api_client, event, signature=_sign(json.dumps(event), secret="whsec_other"))

    assert response.status_code == 400
    booking.refresh_from_db()
    assert booking.version == 0


@pytest.mark.django_db
def test_unparsable_payload_is_rejected(api_client):
    payload = "{not json"
    response = api_client.post(
        reverse("stripe-webhook"),
        data=payload,
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=_sign(payload),
    )

    assert response.status_code == 400


@pytest.mark.django_db
def test_unconfigured_secret_is_a_server_error(api_client, settings, booking):
    settings.STRIPE_WEBHOOK_SECRET = ""

    response = _post(api_client, _checkout_completed(booking.pk), signature="t=1,v1=abc")

    assert response.status_code == 500


@pytest.mark.django_db
def test_unknown_booking_is_acknowledged(api_client, studio):
    response = _post(api_client, _checkout_completed("00000000-0000-0000-0000-000000000000"))

    assert response.status_code == 200
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_malformed_metadata_is_acknowledged(api_client, booking):
    response = _post(api_client, _checkout_completed(booking.pk, type="refund"))

    assert response.status_code == 200
    booking.refresh_from_db()
    assert booking.version == 0


@pytest.mark.django_db
def test_unpaid_checkout_is_not_settled(api_client, booking):
    event = _checkout_completed(booking.pk)
    event["data"]["object"]["payment_status"] = "unpaid"

    response = _post(api_client, event)

    assert response.status_code == 200
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.PENDING_DEPOSIT


@pytest.mark.django_db
def test_database_failure_asks_stripe_to_retry(api_client, booking, monkeypatch):
    def failing_settle(event):
        raise DatabaseError("connection lost")

    monkeypatch.setattr("payments.webhooks.settle_payment_event", failing_settle)

    response = _post(api_client, _checkout_completed(booking.pk))

    assert response.status_code == 500


@pytest.mark.django_db(transaction=True)
def test_delivery_failure_after_commit_still_acknowledges(api_client, booking, monkeypatch):
    original_save = OutboxNotification.save

    def failing_save(self, *args, **kwargs):
        if kwargs.get("update_fields"):
            raise DatabaseError("connection lost")
        return original_save(self, *args, **kwargs)

    monkeypatch.setattr(OutboxNotification, "save", failing_save)

    response = _post(api_client, _checkout_completed(booking.pk))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.DEPOSIT_PAID
    assert OutboxNotification.objects.filter(status=OutboxNotification.PENDING).exists()


@pytest.mark.django_db
def test_settlement_conflict_asks_stripe_to_retry(api_client, booking, monkeypatch):
    def conflicting_settle(event):
        raise SettlementConflictError("busy")

    monkeypatch.setattr("payments.webhooks.settle_payment_event", conflicting_settle)

    response = _post(api_client, _checkout_completed(booking.pk))

    assert response.status_code == 500


@pytest.mark.django_db
def test_milestone_payment_intent_is_settled(api_client, booking):
    booking.payment_milestones = [
        {"id": "m1", "name": "Deposit", "amount": "200.00", "status": "paid"},
        {"id": "m2", "name": "Final Payment", "amount": "800.00", "status": "pending"},
    ]
    booking.payment_status = PaymentStatus.DEPOSIT_PAID
    booking.save()
    event = _event(
        "payment_intent.succeeded",
        {
            "id": "pi_test_9",
            "object": "payment_intent",
            "amount_received": 82800,
            "currency": "usd",
            "metadata": {"bookingId": str(booking.pk), "milestoneId": "m2", "baseAmount": "800.00"},
        },
    )

    response = _post(api_client, event)

    assert response.status_code == 200
    booking.refresh_from_db()
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.status == BookingStatus.COMPLETED
    assert booking.stripe_payment_intent_id == "pi_test_9"


@pytest.mark.django_db
def test_checkout_payment_intents_are_ignored(api_client, booking):
    event = _event("payment_intent.succeeded", {"id": "pi_test_1", "object": "payment_intent", "metadata": {}})

    response = _post(api_client, event)

    assert response.status_code == 200
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_unhandled_event_type_is_acknowledged(api_client):
    response = _post(api_client, _event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert response.json() == {"received": True}


def _mock_stripe_account(account_id="acct_123", **overrides):
    values = dict(
        id=account_id,
        livemode=False,
        charges_enabled=True,
        payouts_enabled=False,
        details_submitted=True,
        default_currency="usd",
        email="studio@example.com",
        requirements={"currently_due": ["external_account"]},
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.django_db
def test_account_updated_syncs_connected_account(api_client, monkeypatch, studio):
    account = StudioStripeAccount.objects.create(studio=studio, account_id="acct_123")
    monkeypatch.setattr("payments.webhooks.stripe.Account.retrieve", lambda account_id: _mock_stripe_account())

    response = _post(api_client, _event("account.updated", {"id": "acct_123", "object": "account"}, account="acct_123"))

    assert response.status_code == 200
    account.refresh_from_db()
    assert account.charges_enabled is True
    assert account.requirements == {"currently_due": ["external_account"]}
    assert account.last_webhook_received_at is not None
    assert account.last_webhook_error_at is None


@pytest.mark.django_db
def test_account_sync_failure_is_recorded(api_client, monkeypatch, studio):
    import stripe

    account = StudioStripeAccount.objects.create(studio=studio, account_id="acct_123")

    def failing_retrieve(account_id):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr("payments.webhooks.stripe.Account.retrieve", failing_retrieve)

    response = _post(api_client, _event("account.updated", {"id": "acct_123", "object": "account"}))

    assert response.status_code == 200
    account.refresh_from_db()
    assert account.last_webhook_error_at is not None
    assert "network down" in account.last_webhook_error_message


@pytest.mark.django_db
def test_deauthorized_account_is_removed(api_client, studio):
    StudioStripeAccount.objects.create(studio=studio, account_id="acct_123")
    studio.billing_stripe_account = "acct_123"
    studio.save(update_fields=["billing_stripe_account"])

    response = _post(
        api_client,
        _event("account.application.deauthorized", {"id": "ca_1", "object": "application"}, account="acct_123"),
    )

    assert response.status_code == 200
    assert StudioStripeAccount.objects.filter(studio=studio).exists() is False
    studio.refresh_from_db()
    assert studio.billing_stripe_account == ""
