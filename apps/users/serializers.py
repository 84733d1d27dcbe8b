import re

from django.contrib.auth import password_validation
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import ClientProfile, UserRole


class AddressSerializer(serializers.Serializer):
    street = serializers.CharField(max_length=200)
    number = serializers.CharField(max_length=20)
    neighborhood = serializers.CharField(max_length=120)
    city = serializers.CharField(max_length=120)
    state = serializers.CharField(max_length=60)
    postal_code = serializers.CharField(max_length=20)


class EmergencyContactSerializer(serializers.Serializer):
    name = serializers.CharField(source="emergency_name", max_length=200)
    phone = serializers.CharField(source="emergency_phone", max_length=20)
    relationship = serializers.CharField(source="emergency_relationship", max_length=60)


class ClientProfileSerializer(serializers.ModelSerializer):
    address = AddressSerializer(source="*")
    emergency_contact = EmergencyContactSerializer(source="*")

    class Meta:
        model = ClientProfile
        fields = (
            "id",
            "user",
            "full_name",
            "email",
            "tax_id",
            "phone",
            "address",
            "emergency_contact",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "user", "created_at", "updated_at")

    def validate_tax_id(self, value):
        digits = re.sub(r"\D", "", value)
        if len(digits) != 11 or len(value) > 14:
            raise serializers.ValidationError("CPF must have 11 digits.")
        return value


class UserRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.Role.choices)


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField()


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=150)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    full_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")

    def validate_password(self, value):
        try:
            password_validation.validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class PasswordResetConfirmSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, trim_whitespace=False)
    new_password_confirm = serializers.CharField(write_only=True, trim_whitespace=False)
