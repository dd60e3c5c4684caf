import logging

import stripe
from django.conf import settings
from django.db import DatabaseError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Booking
from bookings.statuses import UnknownStatusError

from .serializers import CheckoutRequestSerializer, CheckoutSessionSerializer
from .services.checkout import CheckoutError, start_checkout
from .webhooks import (
    RetryableWebhookError,
    WebhookConfigurationError,
    WebhookSignatureError,
    dispatch_event,
    verify_event,
)

logger = logging.getLogger(__name__)


class StripeWebhookView(APIView):
    """Receive Stripe webhook events for booking payments and connected accounts."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, *args, **kwargs):
        try:
            event = verify_event(
                request.body,
                request.META.get("HTTP_STRIPE_SIGNATURE"),
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except WebhookConfigurationError as exc:
            logger.error("%s", exc)
            return Response({"error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        except WebhookSignatureError as exc:
            logger.warning("Rejected Stripe webhook: %s", exc)
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            dispatch_event(event)
        except (RetryableWebhookError, DatabaseError) as exc:
            logger.exception("Failed to process Stripe event %s: %s", event.get("id"), exc)
            return Response(
                {"error": "Event could not be processed; retry later."},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response({"received": True})


class PortalCheckoutView(APIView):
    """Open a checkout session for a deposit or milestone from the client portal."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, token, *args, **kwargs):
        booking = get_object_or_404(Booking.objects.select_related("studio", "client"), portal_token=token)
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            quote, session, _payment = start_checkout(
                booking,
                serializer.validated_data["type"],
                serializer.validated_data.get("milestone_id") or None,
            )
        except CheckoutError as exc:
            return Response({"detail": str(exc)}, status=exc.status_code)
        except UnknownStatusError as exc:
            logger.error("Booking %s holds invalid data: %s", booking.pk, exc)
            return Response({"detail": "This booking cannot be paid online."}, status=status.HTTP_409_CONFLICT)
        except stripe.StripeError as exc:
            logger.exception("Failed to create checkout session for booking %s: %s", booking.pk, exc)
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        payload = CheckoutSessionSerializer(
            {
                "session_id": session.id,
                "url": session.url,
                "type": quote.kind.value,
                "milestone_id": quote.milestone_id,
                "base_amount": quote.base_amount,
                "transaction_fee": quote.transaction_fee,
                "total": quote.total,
            }
        ).data
        return Response(payload, status=status.HTTP_201_CREATED)
