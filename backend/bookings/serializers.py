from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers, status
from rest_framework.exceptions import APIException

from bookings.milestones import (
    Milestone,
    calculate_deposit_amount,
    dump_milestones,
    generate_standard_milestones,
    new_milestone_id,
    outstanding_total,
    paid_total,
    readable,
    scheduled_total,
    to_money,
)
from bookings.models import Booking, Client
from bookings.statuses import MilestoneStatus
from bookings.store import StaleBookingError, save_booking_fields
from notifications.emails import portal_url
from payments.services.checkout import TRANSACTION_FEE_RATE


class BookingConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The booking was changed by another request. Reload and try again."
    default_code = "conflict"


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ["id", "name", "email", "phone", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_email(self, value):
        studio = self.context["studio"]
        queryset = Client.objects.filter(studio=studio, email__iexact=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A client with this email already exists.")
        return value


class MilestoneSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(max_length=120)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    status = serializers.CharField(read_only=True)
    paid_at = serializers.CharField(read_only=True, allow_null=True)

    def to_representation(self, instance):
        if isinstance(instance, Milestone):
            return instance.to_dict()
        return super().to_representation(instance)


def _milestones_from_input(items) -> list[Milestone]:
    return [
        Milestone(
            id=item.get("id") or new_milestone_id(),
            name=item["name"],
            amount=to_money(item["amount"]),
            due_date=item["due_date"].isoformat() if item.get("due_date") else None,
            percentage=item.get("percentage"),
            status=MilestoneStatus.PENDING,
        )
        for item in items
    ]


class BookingSerializer(serializers.ModelSerializer):
    client = ClientSerializer(read_only=True)
    payment_milestones = serializers.SerializerMethodField()
    effective_deposit_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    total_paid = serializers.SerializerMethodField()
    balance_due = serializers.SerializerMethodField()
    portal_url = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "client",
            "service_type",
            "event_date",
            "total_price",
            "deposit_amount",
            "effective_deposit_amount",
            "payment_status",
            "status",
            "payment_milestones",
            "payment_due_date",
            "client_email",
            "contract_text",
            "contract_signed_at",
            "client_signature_name",
            "total_paid",
            "balance_due",
            "portal_url",
            "last_reminder_sent",
            "created_at",
            "updated_at",
        ]

    def get_payment_milestones(self, obj):
        return dump_milestones(obj.milestones)

    def get_total_paid(self, obj):
        return str(to_money(paid_total(obj.milestones)))

    def get_balance_due(self, obj):
        milestones = list(readable(obj.milestones))
        if milestones:
            return str(to_money(outstanding_total(milestones)))
        return str(to_money(obj.total_price))

    def get_portal_url(self, obj):
        return portal_url(obj.portal_token)


class BookingWriteSerializer(serializers.ModelSerializer):
    client_id = serializers.PrimaryKeyRelatedField(
        queryset=Client.objects.none(), source="client", required=False, allow_null=True
    )
    milestones = MilestoneSerializer(many=True, required=False)

    class Meta:
        model = Booking
        fields = [
            "client_id",
            "service_type",
            "event_date",
            "total_price",
            "deposit_amount",
            "payment_due_date",
            "client_email",
            "contract_text",
            "milestones",
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        studio = self.context.get("studio")
        if studio is not None:
            self.fields["client_id"].queryset = Client.objects.filter(studio=studio)

    def validate(self, attrs):
        total_price = attrs.get("total_price", getattr(self.instance, "total_price", None))
        if total_price is None:
            raise serializers.ValidationError({"total_price": "This field is required."})
        total_price = to_money(total_price)

        deposit = attrs.get("deposit_amount", getattr(self.instance, "deposit_amount", None))
        if deposit is not None and deposit > total_price:
            raise serializers.ValidationError({"deposit_amount": "Deposit cannot exceed the total price."})

        if "milestones" in attrs:
            if self.instance is not None and paid_total(self.instance.milestones) > 0:
                raise serializers.ValidationError(
                    {"milestones": "The payment schedule cannot change once a payment has been made."}
                )
            milestones = _milestones_from_input(attrs["milestones"])
            if milestones and scheduled_total(milestones) != total_price:
                raise serializers.ValidationError(
                    {"milestones": f"Milestone amounts must add up to the total price ({total_price})."}
                )
            attrs["milestones"] = milestones
        return attrs

    def _with_defaults(self, validated_data):
        if validated_data.get("deposit_amount") is None:
            validated_data["deposit_amount"] = calculate_deposit_amount(validated_data["total_price"])
        milestones = validated_data.pop("milestones", None)
        if not milestones and validated_data.get("event_date"):
            milestones = generate_standard_milestones(
                validated_data["total_price"],
                validated_data["deposit_amount"],
                validated_data["event_date"],
                today=timezone.localdate(),
            )
        validated_data["payment_milestones"] = dump_milestones(milestones or [])
        return validated_data

    def create(self, validated_data):
        client = validated_data.get("client")
        if client is not None and not validated_data.get("client_email"):
            validated_data["client_email"] = client.email
        return Booking.objects.create(studio=self.context["studio"], **self._with_defaults(validated_data))

    def update(self, instance, validated_data):
        fields = dict(validated_data)
        if "milestones" in fields:
            fields["payment_milestones"] = dump_milestones(fields.pop("milestones"))
        try:
            return save_booking_fields(instance, **fields)
        except StaleBookingError:
            raise BookingConflict() from None

    def to_representation(self, instance):
        return BookingSerializer(instance, context=self.context).data


class PortalBookingSerializer(serializers.ModelSerializer):
    studio_name = serializers.CharField(source="studio.business_name", read_only=True)
    studio_email = serializers.EmailField(source="studio.contact_email", read_only=True)
    client_name = serializers.SerializerMethodField()
    payment_milestones = serializers.SerializerMethodField()
    effective_deposit_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    total_paid = serializers.SerializerMethodField()
    contract_signed = serializers.BooleanField(read_only=True)
    transaction_fee_rate = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "studio_name",
            "studio_email",
            "client_name",
            "service_type",
            "event_date",
            "total_price",
            "effective_deposit_amount",
            "payment_status",
            "status",
            "payment_milestones",
            "total_paid",
            "contract_text",
            "contract_signed",
            "contract_signed_at",
            "client_signature_name",
            "transaction_fee_rate",
        ]

    def get_client_name(self, obj):
        return obj.client.name if obj.client else ""

    def get_payment_milestones(self, obj):
        return dump_milestones(obj.milestones)

    def get_total_paid(self, obj):
        return str(to_money(paid_total(obj.milestones)))

    def get_transaction_fee_rate(self, obj):
        return str(TRANSACTION_FEE_RATE)


class ContractSignatureSerializer(serializers.Serializer):
    signature_name = serializers.CharField(max_length=200)
    agree = serializers.BooleanField()

    def validate_agree(self, value):
        if not value:
            raise serializers.ValidationError("You must agree to the contract terms.")
        return value
