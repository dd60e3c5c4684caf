from __future__ import annotations

import logging
from datetime import datetime, timezone

import stripe
from django.conf import settings
from django.utils.text import slugify

from .models import Studio, StudioStripeAccount

logger = logging.getLogger(__name__)

REQUIREMENT_KEYS = ("past_due", "currently_due", "eventually_due", "current_deadline", "disabled_reason")


class StripeConfigurationError(RuntimeError):
    """Stripe settings needed by this request are missing."""


def configure_stripe():
    if not settings.STRIPE_SECRET_KEY:
        raise StripeConfigurationError("STRIPE_SECRET_KEY is not configured.")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def _unique_slug(base: str) -> str:
    base = slugify(base)[:40] or "studio"
    slug = base
    counter = 2
    while Studio.objects.filter(slug=slug).exists():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def create_studio_for_user(user, *, business_name: str) -> Studio:
    email_local = (user.email or "").split("@", 1)[0]
    return Studio.objects.create(
        owner=user,
        business_name=business_name,
        slug=_unique_slug(business_name or email_local),
        contact_email=user.email,
    )


def _requirements_from_stripe(stripe_account) -> dict:
    raw = getattr(stripe_account, "requirements", None)
    if not raw:
        return {}
    requirements = {}
    for key in REQUIREMENT_KEYS:
        try:
            value = raw[key]
        except (KeyError, TypeError):
            value = getattr(raw, key, None)
        if value is None:
            continue
        requirements[key] = list(value) if isinstance(value, (list, tuple)) else value
    return requirements


def sync_account_from_stripe(
    local_account: StudioStripeAccount, stripe_account: stripe.Account
) -> None:
    changed_fields: list[str] = []
    for field in ("livemode", "charges_enabled", "payouts_enabled", "details_submitted"):
        value = bool(getattr(stripe_account, field, False))
        if getattr(local_account, field) != value:
            setattr(local_account, field, value)
            changed_fields.append(field)

    default_currency = getattr(stripe_account, "default_currency", "") or ""
    if local_account.default_currency != default_currency:
        local_account.default_currency = default_currency
        changed_fields.append("default_currency")

    email = getattr(stripe_account, "email", "") or ""
    if local_account.account_email != email:
        local_account.account_email = email
        changed_fields.append("account_email")

    requirements = _requirements_from_stripe(stripe_account)
    if local_account.requirements != requirements:
        local_account.requirements = requirements
        changed_fields.append("requirements")

    if changed_fields:
        changed_fields.append("updated_at")
        local_account.save(update_fields=changed_fields)
        logger.info(
            "Synced Stripe account %s (%s)", local_account.account_id, ", ".join(changed_fields)
        )


def _account_defaults(stripe_account) -> dict:
    return {
        "livemode": bool(stripe_account.livemode),
        "charges_enabled": bool(stripe_account.charges_enabled),
        "payouts_enabled": bool(stripe_account.payouts_enabled),
        "details_submitted": bool(stripe_account.details_submitted),
        "default_currency": stripe_account.default_currency or "",
        "account_email": stripe_account.email or "",
    }


def ensure_connected_account(studio: Studio) -> StudioStripeAccount:
    """
    Return the studio's connected account, creating it on Stripe the first
    time. Payments are taken on this account, so its id is also stored as the
    studio's billing account.
    """
    account = StudioStripeAccount.objects.filter(studio=studio).first()
    if account is not None:
        sync_account_from_stripe(account, stripe.Account.retrieve(account.account_id))
        return account

    stripe_account = stripe.Account.create(
        type="standard",
        country="US",
        email=studio.contact_email or None,
    )
    account = StudioStripeAccount.objects.create(
        studio=studio,
        account_id=stripe_account.id,
        **_account_defaults(stripe_account),
    )
    studio.billing_stripe_account = stripe_account.id
    studio.save(update_fields=["billing_stripe_account"])
    logger.info("Created Stripe account %s for studio %s", stripe_account.id, studio.pk)
    return account


def onboarding_urls() -> tuple[str, str]:
    """Return the (refresh, return) URLs Stripe sends the photographer back to."""
    if not settings.STRIPE_CONNECT_RETURN_URL or not settings.STRIPE_CONNECT_REFRESH_URL:
        raise StripeConfigurationError(
            "Stripe connect return/refresh URLs are not configured. "
            "Set STRIPE_CONNECT_RETURN_URL and STRIPE_CONNECT_REFRESH_URL."
        )
    return settings.STRIPE_CONNECT_REFRESH_URL, settings.STRIPE_CONNECT_RETURN_URL


def create_onboarding_link(account: StudioStripeAccount) -> StudioStripeAccount:
    refresh_url, return_url = onboarding_urls()
    link = stripe.AccountLink.create(
        account=account.account_id,
        type="account_onboarding",
        refresh_url=refresh_url,
        return_url=return_url,
    )
    account.onboarding_link_url = link.url
    account.onboarding_expires_at = datetime.fromtimestamp(link.expires_at, tz=timezone.utc)
    account.save(update_fields=["onboarding_link_url", "onboarding_expires_at", "updated_at"])
    return account


def refresh_account_status(account: StudioStripeAccount) -> StudioStripeAccount:
    """Pull the latest account state; keep the stored state when Stripe is unreachable."""
    try:
        sync_account_from_stripe(account, stripe.Account.retrieve(account.account_id))
    except stripe.StripeError as exc:
        logger.exception("Failed to refresh Stripe account %s: %s", account.account_id, exc)
        return account

    try:
        login_link = stripe.Account.create_login_link(account.account_id)
    except stripe.StripeError as exc:
        # standard accounts have no express dashboard
        logger.info("No Stripe login link for account %s: %s", account.account_id, exc)
    else:
        account.express_dashboard_url = login_link.url
        account.save(update_fields=["express_dashboard_url", "updated_at"])
    return account


def disconnect_account(account: StudioStripeAccount) -> None:
    studio = account.studio
    stripe.Account.delete(account.account_id)
    account.delete()
    if studio.billing_stripe_account:
        studio.billing_stripe_account = ""
        studio.save(update_fields=["billing_stripe_account"])
    logger.info("Disconnected Stripe account for studio %s", studio.pk)
