from rest_framework import serializers

from bookings.statuses import PaymentKind


class CheckoutRequestSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=PaymentKind.choices)
    milestone_id = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs["type"] == PaymentKind.MILESTONE and not attrs.get("milestone_id"):
            raise serializers.ValidationError({"milestone_id": "This field is required for milestone payments."})
        return attrs


class CheckoutSessionSerializer(serializers.Serializer):
    session_id = serializers.CharField()
    url = serializers.URLField()
    type = serializers.CharField()
    milestone_id = serializers.CharField(allow_null=True)
    base_amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    transaction_fee = serializers.DecimalField(max_digits=10, decimal_places=2)
    total = serializers.DecimalField(max_digits=10, decimal_places=2)
