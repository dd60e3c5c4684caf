from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import ChangePasswordView, LoginView, MeView, RegisterView
from bookings.api import (
    BookingViewSet,
    ClientViewSet,
    PortalBookingView,
    PortalSignContractView,
)
from payments.api import PortalCheckoutView, StripeWebhookView
from studios.api import (
    StripeAccountStatusView,
    StripeDisconnectView,
    StripeOnboardingLinkView,
    StudioDetailView,
)

router = DefaultRouter()
router.register(r"clients", ClientViewSet, basename="client")
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/register/", RegisterView.as_view(), name="auth-register"),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path(
        "api/auth/change-password/",
        ChangePasswordView.as_view(),
        name="auth-change-password",
    ),
    path("api/auth/me/", MeView.as_view(), name="auth-me"),
    path("api/", include(router.urls)),
    path("api/portal/<str:token>/", PortalBookingView.as_view(), name="portal-booking"),
    path(
        "api/portal/<str:token>/sign/",
        PortalSignContractView.as_view(),
        name="portal-sign",
    ),
    path(
        "api/portal/<str:token>/checkout/",
        PortalCheckoutView.as_view(),
        name="portal-checkout",
    ),
    path(
        "api/studios/<int:studio_id>/stripe/link/",
        StripeOnboardingLinkView.as_view(),
        name="studio-stripe-link",
    ),
    path(
        "api/studios/<int:studio_id>/stripe/status/",
        StripeAccountStatusView.as_view(),
        name="studio-stripe-status",
    ),
    path(
        "api/studios/<int:studio_id>/stripe/disconnect/",
        StripeDisconnectView.as_view(),
        name="studio-stripe-disconnect",
    ),
    path(
        "api/studios/<int:studio_id>/",
        StudioDetailView.as_view(),
        name="studio-detail",
    ),
    path("api/webhooks/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
]
