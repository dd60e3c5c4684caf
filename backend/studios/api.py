import logging

import stripe
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Studio, StudioStripeAccount
from .permissions import IsStudioOwner
from .serializers import (
    StripeAccountStatusSerializer,
    StripeOnboardingLinkSerializer,
    StudioSerializer,
)
from .services import (
    StripeConfigurationError,
    configure_stripe,
    create_onboarding_link,
    disconnect_account,
    ensure_connected_account,
    onboarding_urls,
    refresh_account_status,
)

logger = logging.getLogger(__name__)


class StudioBaseView(APIView):
    permission_classes = [IsAuthenticated, IsStudioOwner]
    studio: Studio | None = None

    def dispatch(self, request, *args, **kwargs):
        studio_id = kwargs.get("studio_id")
        self.studio = get_object_or_404(Studio, pk=studio_id)
        return super().dispatch(request, *args, **kwargs)


class StudioStripeBaseView(StudioBaseView):
    """Connect endpoints: need a configured Stripe key, answer 502 on Stripe failures."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        configure_stripe()

    def handle_exception(self, exc):
        if isinstance(exc, StripeConfigurationError):
            logger.error("Stripe Connect is not configured: %s", exc)
            return Response({"detail": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        if isinstance(exc, stripe.StripeError):
            logger.exception("Stripe Connect request for studio %s failed: %s", self.studio.pk, exc)
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)
        return super().handle_exception(exc)

    def get_account(self) -> StudioStripeAccount | None:
        return StudioStripeAccount.objects.filter(studio=self.studio).first()


class StudioDetailView(StudioBaseView):
    """Return or update the business profile for a studio."""

    def get(self, request, studio_id, *args, **kwargs):
        return Response(StudioSerializer(self.studio).data)

    def patch(self, request, studio_id, *args, **kwargs):
        serializer = StudioSerializer(self.studio, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class StripeOnboardingLinkView(StudioStripeBaseView):
    """Create the studio's connected account if needed and return a fresh onboarding link."""

    def post(self, request, studio_id, *args, **kwargs):
        onboarding_urls()
        account = create_onboarding_link(ensure_connected_account(self.studio))
        serializer = StripeOnboardingLinkSerializer(
            {
                "url": account.onboarding_link_url,
                "expires_at": account.onboarding_expires_at,
                "account_id": account.account_id,
            }
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class StripeAccountStatusView(StudioStripeBaseView):
    def get(self, request, studio_id, *args, **kwargs):
        account = self.get_account()
        if account is not None:
            account = refresh_account_status(account)
        return Response(StripeAccountStatusSerializer.from_account(account))


class StripeDisconnectView(StudioStripeBaseView):
    def post(self, request, studio_id, *args, **kwargs):
        account = self.get_account()
        if account is not None:
            disconnect_account(account)
        return Response(status=status.HTTP_204_NO_CONTENT)
