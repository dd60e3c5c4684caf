"""
Stripe webhook verification and event handlers.

Handlers are registered per event type with ``register_handler`` and looked up
by ``dispatch_event``. Event types without a handler are acknowledged and
ignored.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import stripe
from django.db import transaction

from studios.models import StudioStripeAccount
from studios.services import StripeConfigurationError, configure_stripe, sync_account_from_stripe

from .events import EventDataError, from_checkout_session, from_payment_intent
from .services.settlement import SettlementConflictError, settle_payment_event

logger = logging.getLogger(__name__)

WebhookEvent = dict[str, Any]


class WebhookSignatureError(Exception):
    """The request is not a genuine Stripe event."""


class WebhookConfigurationError(Exception):
    """Webhook verification is not configured on this server."""


class RetryableWebhookError(Exception):
    """The event could not be applied now; Stripe should redeliver it."""


def verify_event(payload: bytes, signature: str | None, secret: str) -> WebhookEvent:
    """
    Check the ``Stripe-Signature`` header against the raw request body and
    return the event as plain JSON data.
    """
    if not secret:
        raise WebhookConfigurationError("Stripe webhook secret not configured.")
    if not signature:
        raise WebhookSignatureError("Missing Stripe-Signature header.")
    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as exc:
        raise WebhookSignatureError(f"Invalid payload: {exc}") from exc
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError(f"Invalid signature: {exc}") from exc
    return json.loads(payload)


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], Any]] = {}


def register_handler(*event_types: str) -> Callable:
    def decorator(func: Callable[[WebhookEvent], Any]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_event(event: WebhookEvent) -> Any:
    event_type = event.get("type", "")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return None
    logger.info("Handling Stripe event %s (%s)", event.get("id"), event_type)
    return handler(event)


def _data_object(event: WebhookEvent) -> dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _settle(parse, data_object: dict[str, Any], event: WebhookEvent):
    try:
        payment_event = parse(data_object)
    except EventDataError as exc:
        logger.warning("Ignoring Stripe event %s: %s", event.get("id"), exc)
        return None
    try:
        return settle_payment_event(payment_event)
    except SettlementConflictError as exc:
        raise RetryableWebhookError(str(exc)) from exc


@register_handler("checkout.session.completed")
def handle_checkout_completed(event: WebhookEvent):
    session = _data_object(event)
    if session.get("payment_status") == "unpaid":
        logger.info("Checkout session %s completed without payment yet.", session.get("id"))
        return None
    return _settle(from_checkout_session, session, event)


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(event: WebhookEvent):
    intent = _data_object(event)
    if not (intent.get("metadata") or {}).get("milestoneId"):
        # intents opened by a checkout session settle through checkout.session.completed
        return None
    return _settle(from_payment_intent, intent, event)


def _connected_account(event: WebhookEvent) -> StudioStripeAccount | None:
    account_id = event.get("account") or _data_object(event).get("id")
    if not account_id:
        return None
    return StudioStripeAccount.objects.select_related("studio").filter(account_id=account_id).first()


@register_handler(
    "account.updated",
    "account.external_account.created",
    "account.external_account.deleted",
)
def handle_account_updated(event: WebhookEvent):
    account = _connected_account(event)
    if account is None:
        return None

    now = datetime.now(tz=timezone.utc)
    try:
        configure_stripe()
        stripe_account = stripe.Account.retrieve(account.account_id)
        sync_account_from_stripe(account, stripe_account)
    except (stripe.StripeError, StripeConfigurationError) as exc:
        logger.exception("Error syncing Stripe account %s from webhook: %s", account.account_id, exc)
        account.last_webhook_error_at = now
        account.last_webhook_error_message = str(exc)[:255]
        account.save(
            update_fields=["last_webhook_error_at", "last_webhook_error_message", "updated_at"]
        )
        return account

    account.last_webhook_received_at = now
    account.last_webhook_error_at = None
    account.last_webhook_error_message = ""
    account.save(
        update_fields=[
            "last_webhook_received_at",
            "last_webhook_error_at",
            "last_webhook_error_message",
            "updated_at",
        ]
    )
    return account


@register_handler("account.application.deauthorized")
def handle_account_deauthorized(event: WebhookEvent):
    account = _connected_account(event)
    if account is None:
        return None
    studio = account.studio
    with transaction.atomic():
        account.delete()
        if studio.billing_stripe_account:
            studio.billing_stripe_account = ""
            studio.save(update_fields=["billing_stripe_account"])
    logger.info("Stripe account deauthorized for studio %s", studio.pk)
    return None
