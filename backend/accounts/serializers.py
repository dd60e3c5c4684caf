from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from studios.models import Studio
from studios.services import create_studio_for_user

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Expose the public fields for the custom user model."""

    studio_id = serializers.SerializerMethodField()
    business_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "display_name",
            "studio_id",
            "business_name",
        ]
        read_only_fields = ["id", "username", "studio_id", "business_name"]

    def get_studio_id(self, obj) -> int | None:
        studio = obj.studio_or_none
        return studio.id if studio else None

    def get_business_name(self, obj) -> str | None:
        studio = obj.studio_or_none
        return studio.business_name if studio else None


class RegisterSerializer(serializers.ModelSerializer):
    """Validate and create a photographer account together with their studio."""

    password = serializers.CharField(write_only=True, min_length=8)
    business_name = serializers.CharField(required=False, allow_blank=True, max_length=200)

    class Meta:
        model = User
        fields = [
            "email",
            "password",
            "first_name",
            "last_name",
            "display_name",
            "business_name",
        ]

    def validate_email(self, value: str) -> str:
        email = value.lower()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return email

    @transaction.atomic
    def create(self, validated_data):
        """Persist the user record with a normalized email, then open their studio."""
        email = validated_data.pop("email").lower()
        business_name = validated_data.pop("business_name", "").strip()
        user = User.objects.create_user(
            username=email,
            email=email,
            password=validated_data.pop("password"),
            **validated_data,
        )
        if not user.display_name:
            user.display_name = f"{user.first_name} {user.last_name}".strip() or email
            user.save(update_fields=["display_name"])
        create_studio_for_user(user, business_name=business_name or user.display_name)
        return user


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Allow SimpleJWT to accept an email field for authentication."""

    username_field = User.USERNAME_FIELD

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["email"] = serializers.EmailField(required=False)
        self.fields[self.username_field].required = False

    def validate(self, attrs):
        email = attrs.get("email")
        if email and not attrs.get("username"):
            attrs["username"] = email.lower()
        attrs.pop("email", None)
        if not attrs.get("username"):
            raise serializers.ValidationError({"email": "This field is required."})
        data = super().validate(attrs)
        data["user"] = UserSerializer(self.user).data
        return data


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Profile edits for the signed-in photographer.

    The login email doubles as the username. When the studio still uses the
    old login address for client replies and payment alerts, it follows the
    change.
    """

    class Meta:
        model = User
        fields = ["email", "first_name", "last_name", "display_name"]

    def validate_email(self, value: str) -> str:
        email = value.lower()
        taken = User.objects.filter(email__iexact=email).exclude(pk=self.instance.pk)
        if taken.exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return email

    @transaction.atomic
    def update(self, instance, validated_data):
        previous_email = instance.email
        user = super().update(instance, validated_data)
        update_fields = []
        if user.email != previous_email:
            user.username = user.email
            update_fields.append("username")
            Studio.objects.filter(owner=user, contact_email__iexact=previous_email).update(
                contact_email=user.email
            )
        if not user.display_name:
            user.display_name = f"{user.first_name} {user.last_name}".strip() or user.email
            update_fields.append("display_name")
        if update_fields:
            user.save(update_fields=update_fields)
        return user


class PasswordChangeSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8)

    @property
    def user(self):
        return self.context["request"].user

    def validate_current_password(self, value):
        if not self.user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate_new_password(self, value):
        if self.user.check_password(value):
            raise serializers.ValidationError("New password must differ from the current password.")
        return value

    def save(self, **kwargs):
        self.user.set_password(self.validated_data["new_password"])
        self.user.save(update_fields=["password"])
        return self.user
