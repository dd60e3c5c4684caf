from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from accounts.models import User
from bookings.models import Booking, Client
from bookings.services.reminders import send_payment_reminders
from bookings.statuses import PaymentStatus
from notifications.models import OutboxNotification
from studios.services import create_studio_for_user

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reminder_settings(settings):
    settings.PAYMENT_REMINDER_WINDOW_DAYS = 3
    settings.TIME_ZONE = "UTC"


@pytest.fixture
def studio(db):
    owner = User.objects.create_user(username="studio@example.com", email="studio@example.com", password="examplepass")
    return create_studio_for_user(owner, business_name="Golden Hour Studio")


@pytest.fixture
def make_booking(studio):
    def _make(email, due, **extra):
        client = Client.objects.create(studio=studio, name=email.split("@")[0].title(), email=email)
        values = dict(
            studio=studio,
            client=client,
            client_email=email,
            total_price=Decimal("1000.00"),
            deposit_amount=Decimal("200.00"),
            payment_due_date=due,
            payment_status=PaymentStatus.PENDING_DEPOSIT,
        )
        values.update(extra)
        return Booking.objects.create(**values)

    return _make


@pytest.mark.django_db
def test_reminders_go_to_bookings_due_soon(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    due_soon = make_booking("avery@example.com", date(2026, 5, 3))
    partial = make_booking(
        "sam@example.com",
        date(2026, 5, 2),
        payment_status=PaymentStatus.PARTIAL,
        payment_milestones=[
            {"id": "m1", "name": "Deposit", "amount": "200.00", "status": "paid"},
            {"id": "m2", "name": "Second", "amount": "300.00", "status": "paid"},
            {"id": "m3", "name": "Final Payment", "amount": "500.00", "status": "pending"},
        ],
    )
    make_booking("later@example.com", date(2026, 5, 10))
    make_booking("paid@example.com", date(2026, 5, 2), payment_status=PaymentStatus.PAID)
    make_booking("recent@example.com", date(2026, 5, 2), last_reminder_sent=NOW - timedelta(hours=2))

    with django_capture_on_commit_callbacks(execute=True):
        results = send_payment_reminders(now=NOW)

    assert {(r.recipient, r.amount_due) for r in results} == {
        ("avery@example.com", Decimal("200.00")),
        ("sam@example.com", Decimal("500.00")),
    }
    assert sorted(message.to[0] for message in mailoutbox) == ["avery@example.com", "sam@example.com"]
    reminder = next(message for message in mailoutbox if message.to == ["avery@example.com"])
    assert reminder.subject == "Payment Reminder: $200.00 Due Soon"
    assert "May 3, 2026" in reminder.body
    assert reminder.reply_to == ["studio@example.com"]

    due_soon.refresh_from_db()
    partial.refresh_from_db()
    assert due_soon.last_reminder_sent == NOW
    assert partial.last_reminder_sent == NOW


@pytest.mark.django_db
def test_reminders_are_sent_once_per_day(make_booking, mailoutbox, django_capture_on_commit_callbacks):
    booking = make_booking("avery@example.com", date(2026, 5, 3))

    with django_capture_on_commit_callbacks(execute=True):
        send_payment_reminders(now=NOW)
    Booking.objects.filter(pk=booking.pk).update(last_reminder_sent=None)
    with django_capture_on_commit_callbacks(execute=True):
        second = send_payment_reminders(now=NOW + timedelta(hours=1))

    assert [result.queued for result in second] == [False]
    assert OutboxNotification.objects.filter(kind=OutboxNotification.PAYMENT_REMINDER).count() == 1
    assert len(mailoutbox) == 1


@pytest.mark.django_db
def test_bookings_without_email_are_skipped(make_booking, studio):
    booking = make_booking("avery@example.com", date(2026, 5, 3), client_email="")
    booking.client.delete()

    assert send_payment_reminders(now=NOW) == []


@pytest.mark.django_db
def test_reminder_command(make_booking, monkeypatch):
    make_booking("avery@example.com", date(2026, 5, 3))
    monkeypatch.setattr("bookings.services.reminders.timezone.now", lambda: NOW)
    out = StringIO()

    call_command("send_payment_reminders", stdout=out)

    assert "avery@example.com" in out.getvalue()
    assert "Queued 1 payment reminder(s)." in out.getvalue()
