import hashlib
import hmac
import json
import time
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from notifications.models import OutboxNotification


def _signed(payload, secret):
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _complete_checkout(client, secret, booking_id, checkout):
    event = {
        "id": f"evt_{checkout['session_id']}",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": checkout["session_id"],
                "object": "checkout.session",
                "amount_total": int(float(checkout["total"]) * 100),
                "currency": "usd",
                "payment_intent": f"pi_{checkout['session_id']}",
                "payment_status": "paid",
                "metadata": {
                    "bookingId": booking_id,
                    "type": checkout["type"],
                    "milestoneId": checkout["milestone_id"] or "",
                    "baseAmount": checkout["base_amount"],
                },
            }
        },
    }
    payload = json.dumps(event)
    return client.post(
        "/api/webhooks/stripe/",
        data=payload,
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE=_signed(payload, secret),
    )


@pytest.mark.django_db
def test_end_to_end_booking_payment_flow(settings, mailoutbox, django_capture_on_commit_callbacks):
    settings.STRIPE_WEBHOOK_SECRET = "whsec_e2e"
    settings.STRIPE_USE_STUB = True
    client = APIClient()

    # Register photographer
    register_response = client.post(
        "/api/auth/register/",
        {
            "email": "maya@example.com",
            "password": "pass12345",
            "first_name": "Maya",
            "last_name": "Shutter",
            "business_name": "Maya Shutter Photo",
        },
        format="json",
    )
    assert register_response.status_code == 201
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {register_response.data['access']}")

    # Add a client and a booking with the default schedule
    client_response = client.post("/api/clients/", {"name": "Avery Lane", "email": "avery@example.com"}, format="json")
    assert client_response.status_code == 201
    event_date = timezone.localdate() + timedelta(days=90)
    booking_response = client.post(
        "/api/bookings/",
        {
            "client_id": client_response.data["id"],
            "event_date": event_date.isoformat(),
            "total_price": "2500.00",
            "contract_text": "Full day coverage.",
        },
        format="json",
    )
    assert booking_response.status_code == 201
    booking = booking_response.json()
    booking_id = booking["id"]
    token = booking["portal_url"].rsplit("/", 1)[-1]
    final_milestone = booking["payment_milestones"][1]

    # Send the proposal
    with django_capture_on_commit_callbacks(execute=True):
        proposal_response = client.post(f"/api/bookings/{booking_id}/send-proposal/")
    assert proposal_response.status_code == 200
    assert mailoutbox[-1].to == ["avery@example.com"]

    portal = APIClient()

    # Client signs and pays the deposit
    sign_response = portal.post(
        f"/api/portal/{token}/sign/", {"signature_name": "Avery Lane", "agree": True}, format="json"
    )
    assert sign_response.status_code == 200
    deposit_checkout = portal.post(f"/api/portal/{token}/checkout/", {"type": "deposit"}, format="json")
    assert deposit_checkout.status_code == 201
    assert deposit_checkout.json()["total"] == "517.50"

    with django_capture_on_commit_callbacks(execute=True):
        webhook_response = _complete_checkout(portal, "whsec_e2e", booking_id, deposit_checkout.json())
    assert webhook_response.status_code == 200

    detail = client.get(f"/api/bookings/{booking_id}/").json()
    assert detail["payment_status"] == "DEPOSIT_PAID"
    assert detail["status"] == "Active"
    assert detail["total_paid"] == "500.00"
    assert mailoutbox[-1].to == ["maya@example.com"]

    # Client pays the remaining balance
    final_checkout = portal.post(
        f"/api/portal/{token}/checkout/",
        {"type": "milestone", "milestone_id": final_milestone["id"]},
        format="json",
    )
    assert final_checkout.status_code == 201

    with django_capture_on_commit_callbacks(execute=True):
        _complete_checkout(portal, "whsec_e2e", booking_id, final_checkout.json())

    detail = client.get(f"/api/bookings/{booking_id}/").json()
    assert detail["payment_status"] == "paid"
    assert detail["status"] == "completed"
    assert detail["balance_due"] == "0.00"
    assert set(OutboxNotification.objects.values_list("kind", flat=True)) == {
        OutboxNotification.PROPOSAL_SENT,
        OutboxNotification.DEPOSIT_CONFIRMED,
        OutboxNotification.PAYMENT_SUCCESS,
        OutboxNotification.FINAL_BALANCE_PAID,
    }

    # Nothing left to pay
    again = portal.post(
        f"/api/portal/{token}/checkout/",
        {"type": "milestone", "milestone_id": final_milestone["id"]},
        format="json",
    )
    assert again.status_code == 400
