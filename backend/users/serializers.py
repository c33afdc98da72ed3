from __future__ import annotations

import logging
import re
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

User = get_user_model()
PHONE_CLEAN_RE = re.compile(r"\D+")

logger = logging.getLogger(__name__)


def normalize_phone(raw_phone: Optional[str]) -> Optional[str]:
    """
    Return a best-effort E.164 number.

    Local Indonesian numbers starting with 0 default to +62; everything else must
    include an explicit country code.
    """
    if not raw_phone:
        return None

    stripped = raw_phone.strip()
    digits = PHONE_CLEAN_RE.sub("", stripped)
    if not digits:
        raise serializers.ValidationError("Enter a phone number.")

    if stripped.startswith("+"):
        normalized = f"+{digits}"
    elif digits.startswith("0"):
        normalized = f"+62{digits[1:]}"
    elif digits.startswith("62"):
        normalized = f"+{digits}"
    else:
        raise serializers.ValidationError("Include country code (e.g. +62...).")

    if len(normalized) < 10 or len(normalized) > 16:
        raise serializers.ValidationError("Enter a valid phone number.")
    return normalized


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "first_name", "last_name", "email", "role"]
        read_only_fields = fields


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "phone",
            "first_name",
            "last_name",
            "role",
            "assigned_property",
        ]
        read_only_fields = ["id", "username", "role", "assigned_property"]

    def validate_phone(self, value):
        return normalize_phone(value)


class SignupSerializer(serializers.ModelSerializer):
    """Public signup; every self-registered account starts as a customer."""

    password = serializers.CharField(write_only=True)
    email = serializers.EmailField()
    phone = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "phone", "password", "first_name", "last_name"]
        extra_kwargs = {"password": {"write_only": True}}

    def validate_password(self, value: str) -> str:
        validate_password(value)
        return value

    def validate_email(self, value: str) -> str:
        email = value.strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return email

    def validate_phone(self, value: str) -> Optional[str]:
        phone = normalize_phone(value)
        if phone and User.objects.filter(phone=phone).exists():
            raise serializers.ValidationError("An account with this phone already exists.")
        return phone

    def create(self, validated_data: dict):
        password = validated_data.pop("password")
        user = User(role=User.Roles.CUSTOMER, **validated_data)
        user.set_password(password)
        user.save()
        logger.info("users: signup", extra={"user_id": user.id})
        return user


class FlexibleTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Accepts email, phone, or username for authentication and returns a JWT pair.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["identifier"] = serializers.CharField(required=False, allow_blank=True)
        if self.username_field in self.fields:
            self.fields[self.username_field].required = False

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["role"] = user.role
        return token

    def validate(self, attrs: dict) -> dict:
        identifier = attrs.get("identifier") or attrs.get(self.username_field) or ""
        password = attrs.get("password")
        if not identifier or not password:
            raise serializers.ValidationError(
                {"non_field_errors": ["Provide credentials to log in."]}
            )

        user = self._resolve_user(identifier)
        if not user:
            raise AuthenticationFailed(self.error_messages["no_active_account"])

        attrs[self.username_field] = user.get_username()
        self.user = user
        data = super().validate(attrs)
        data["role"] = user.role
        return data

    def _resolve_user(self, identifier: str) -> Optional[User]:
        value = identifier.strip()
        if not value:
            return None

        if "@" in value:
            user = User.objects.filter(email__iexact=value).first()
            if user:
                return user

        try:
            phone_candidate = normalize_phone(value)
        except serializers.ValidationError:
            phone_candidate = None
        if phone_candidate:
            user = User.objects.filter(phone=phone_candidate).first()
            if user:
                return user

        return User.objects.filter(username__iexact=value).first()
