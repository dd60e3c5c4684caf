import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Booking, Client
from bookings.serializers import (
    BookingConflict,
    BookingSerializer,
    BookingWriteSerializer,
    ClientSerializer,
    ContractSignatureSerializer,
    PortalBookingSerializer,
)
from bookings.services.proposals import ProposalError, send_proposal, sign_contract
from bookings.statuses import UnknownStatusError
from bookings.store import StaleBookingError

logger = logging.getLogger(__name__)


class StudioScopedMixin:
    """Limit querysets to the requesting photographer's studio."""

    def get_studio(self):
        studio = self.request.user.studio_or_none
        if studio is None:
            raise PermissionDenied("Create a studio before managing bookings.")
        return studio

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["studio"] = self.get_studio()
        return context


class ClientViewSet(StudioScopedMixin, viewsets.ModelViewSet):
    serializer_class = ClientSerializer
    permission_classes = [permissions.IsAuthenticated]
    search_fields = ["name", "email"]
    ordering_fields = ["name", "created_at"]

    def get_queryset(self):
        return Client.objects.filter(studio=self.get_studio()).order_by("name", "email")

    def perform_create(self, serializer):
        serializer.save(studio=self.get_studio())


class BookingViewSet(StudioScopedMixin, viewsets.ModelViewSet):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ["get", "post", "patch", "put", "head", "options"]
    filterset_fields = ["status", "payment_status", "service_type", "client"]
    ordering_fields = ["event_date", "created_at", "total_price"]

    def get_queryset(self):
        queryset = Booking.objects.filter(studio=self.get_studio()).select_related("client", "studio")
        query = self.request.query_params.get("q", "").strip()
        if query:
            queryset = queryset.filter(
                Q(client__name__icontains=query)
                | Q(client__email__icontains=query)
                | Q(client_email__icontains=query)
            )
        return queryset

    def get_serializer_class(self):
        if self.action in {"create", "update", "partial_update"}:
            return BookingWriteSerializer
        return super().get_serializer_class()

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        logger.info("Booking %s created for studio %s", booking.pk, booking.studio_id)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="send-proposal")
    def send_proposal(self, request, pk=None):
        booking = self.get_object()
        try:
            booking = send_proposal(booking)
        except ProposalError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except UnknownStatusError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except StaleBookingError:
            raise BookingConflict()
        serializer = BookingSerializer(booking, context=self.get_serializer_context())
        return Response(serializer.data, status=status.HTTP_200_OK)


class PortalBaseView(APIView):
    permission_classes = []  # portal token access
    authentication_classes = []

    def get_booking(self, token) -> Booking:
        return get_object_or_404(Booking.objects.select_related("client", "studio"), portal_token=token)


class PortalBookingView(PortalBaseView):
    def get(self, request, token):
        booking = self.get_booking(token)
        return Response(PortalBookingSerializer(booking).data)


class PortalSignContractView(PortalBaseView):
    def post(self, request, token):
        booking = self.get_booking(token)
        serializer = ContractSignatureSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking = sign_contract(booking, signature_name=serializer.validated_data["signature_name"])
        except ProposalError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except UnknownStatusError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except StaleBookingError:
            raise BookingConflict()
        return Response(PortalBookingSerializer(booking).data)
