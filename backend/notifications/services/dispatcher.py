from __future__ import annotations

from django.core.mail import EmailMultiAlternatives

from notifications.emails import format_from_email


def send_email(
    *,
    to: str,
    subject: str,
    html: str,
    text: str,
    reply_to: str | None = None,
    from_name: str | None = None,
) -> int:
    """
    Send one message through the configured Django email backend.

    Returns the number of messages sent; backend errors propagate to the caller.
    """
    message = EmailMultiAlternatives(
        subject=subject,
        body=text,
        from_email=format_from_email(from_name),
        to=[to],
        reply_to=[reply_to] if reply_to else None,
    )
    message.attach_alternative(html, "text/html")
    return message.send(fail_silently=False)
