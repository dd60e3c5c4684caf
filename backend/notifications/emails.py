from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.utils.html import escape


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str


def format_money(amount: Decimal | None) -> str:
    return f"${Decimal(amount or 0):,.2f}"


def format_from_email(studio_name: str | None = None) -> str:
    default_from = settings.DEFAULT_FROM_EMAIL
    if not studio_name:
        return default_from
    email_addr = default_from
    if "<" in default_from and default_from.endswith(">"):
        email_addr = default_from.split("<", 1)[1].rstrip(">")
    return f"{studio_name} via Momentum <{email_addr}>"


def portal_url(portal_token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/portal/{portal_token}"


def _html(heading: str, paragraphs: list[str], details: list[tuple[str, str]], link: tuple[str, str] | None = None) -> str:
    parts = [
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">',
        f'<h2 style="color: #333;">{escape(heading)}</h2>',
    ]
    parts.extend(f"<p>{escape(paragraph)}</p>" for paragraph in paragraphs)
    if details:
        parts.append('<div style="background-color: #f5f5f5; padding: 20px; border-radius: 5px; margin: 20px 0;">')
        parts.extend(f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>" for label, value in details)
        parts.append("</div>")
    if link:
        label, href = link
        parts.append(
            f'<p style="text-align: center; margin: 30px 0;"><a href="{escape(href)}" '
            'style="background-color: #007bff; color: white; padding: 12px 24px; '
            f'text-decoration: none; border-radius: 5px;">{escape(label)}</a></p>'
        )
    parts.append(
        '<p style="color: #666; font-size: 12px; margin-top: 30px;">'
        "This is an automated notification from Momentum.</p>"
    )
    parts.append("</div>")
    return "\n".join(parts)


def _text(heading: str, paragraphs: list[str], details: list[tuple[str, str]], link: tuple[str, str] | None = None) -> str:
    lines = [heading, ""]
    for paragraph in paragraphs:
        lines.extend([paragraph, ""])
    lines.extend(f"{label}: {value}" for label, value in details)
    if link:
        lines.extend(["", f"{link[0]}: {link[1]}"])
    lines.extend(["", "The Momentum Team"])
    return "\n".join(lines)


def _build(subject: str, heading: str, paragraphs: list[str], details: list[tuple[str, str]], link=None) -> EmailContent:
    return EmailContent(
        subject=subject,
        html=_html(heading, paragraphs, details, link),
        text=_text(heading, paragraphs, details, link),
    )


def payment_success_email(
    *,
    client_name: str,
    photographer_name: str,
    amount: Decimal,
    booking_id: str,
    portal_token: str,
) -> EmailContent:
    greeting = f"Hi {client_name}," if client_name else "Hi,"
    return _build(
        subject=f"Your booking with {photographer_name} is paid in full",
        heading="Payment received",
        paragraphs=[
            greeting,
            f"Thank you! Your final payment to {photographer_name} has been received and your booking is paid in full.",
        ],
        details=[
            ("Amount", format_money(amount)),
            ("Booking ID", booking_id),
        ],
        link=("View your booking", portal_url(portal_token)),
    )


def deposit_confirmed_email(
    *,
    client_name: str,
    amount: Decimal,
    booking_id: str,
) -> EmailContent:
    who = client_name or "Your client"
    return _build(
        subject=f"Momentum Alert: Deposit received from {who}!",
        heading="Deposit received",
        paragraphs=[
            "Great news! A deposit has been paid and the booking is now active.",
            "You can view the booking details in your Momentum dashboard.",
        ],
        details=[
            ("Client", who),
            ("Amount", format_money(amount)),
            ("Booking ID", booking_id),
        ],
    )


def final_balance_paid_email(
    *,
    client_name: str,
    amount: Decimal,
    total_paid: Decimal,
    booking_id: str,
) -> EmailContent:
    who = client_name or "Your client"
    return _build(
        subject=f"Momentum Alert: {who} has paid in full!",
        heading="Final balance paid",
        paragraphs=[
            "The final payment for this booking has been received. The booking is now paid in full.",
        ],
        details=[
            ("Client", who),
            ("Last payment", format_money(amount)),
            ("Total paid", format_money(total_paid)),
            ("Booking ID", booking_id),
        ],
    )


def payment_reminder_email(
    *,
    client_name: str,
    photographer_name: str,
    amount_due: Decimal,
    due_date: str,
    booking_id: str,
    portal_token: str,
) -> EmailContent:
    greeting = f"Hi {client_name}," if client_name else "Hi,"
    return _build(
        subject=f"Payment Reminder: {format_money(amount_due)} Due Soon",
        heading="Payment reminder",
        paragraphs=[
            greeting,
            f"This is a friendly reminder that you have a payment due soon for your booking with {photographer_name}.",
        ],
        details=[
            ("Amount Due", format_money(amount_due)),
            ("Due Date", due_date),
            ("Booking ID", booking_id),
        ],
        link=("Pay now", portal_url(portal_token)),
    )


def proposal_email(
    *,
    client_name: str,
    photographer_name: str,
    total_price: Decimal,
    deposit_amount: Decimal,
    portal_token: str,
) -> EmailContent:
    greeting = f"Hi {client_name}," if client_name else "Hi,"
    return _build(
        subject=f"{photographer_name} sent you a booking proposal",
        heading="Your booking proposal",
        paragraphs=[
            greeting,
            f"{photographer_name} has prepared your booking. Review and sign the contract, then pay the deposit to lock in your date.",
        ],
        details=[
            ("Total", format_money(total_price)),
            ("Deposit", format_money(deposit_amount)),
        ],
        link=("Review your proposal", portal_url(portal_token)),
    )
