"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from rest_framework import serializers

from payments.serializers import PaymentSerializer
from properties.models import LeaseType

from .extensions import DEPOSIT_OPTIONS
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Serialize Booking instances for API usage."""

    property_name = serializers.ReadOnlyField(source="property.name")
    room_number = serializers.ReadOnlyField(source="room.room_number")
    customer_username = serializers.ReadOnlyField(source="customer.username")
    status_label = serializers.CharField(source="get_status_display", read_only=True)
    outstanding_amount = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = (
            "id",
            "booking_code",
            "customer",
            "customer_username",
            "property",
            "property_name",
            "room",
            "room_number",
            "check_in_date",
            "check_out_date",
            "lease_type",
            "total_amount",
            "paid_amount",
            "deposit_amount",
            "outstanding_amount",
            "status",
            "status_label",
            "payment_status",
            "is_validated",
            "validated_at",
            "actual_check_in_at",
            "actual_check_out_at",
            "cancelled_at",
            "cancel_reason",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_outstanding_amount(self, obj: Booking) -> str:
        return f"{obj.outstanding_amount():.2f}"


class BookingDetailSerializer(BookingSerializer):
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ("payments",)
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    room = serializers.IntegerField(min_value=1)
    lease_type = serializers.ChoiceField(choices=LeaseType.choices)
    check_in_date = serializers.DateField()
    check_out_date = serializers.DateField(required=False, allow_null=True)
    open_ended = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        check_out = attrs.get("check_out_date")
        if attrs.get("open_ended") and check_out:
            raise serializers.ValidationError(
                {"check_out_date": ["Open-ended bookings cannot have a check-out date."]}
            )
        if check_out and check_out <= attrs["check_in_date"]:
            raise serializers.ValidationError(
                {"check_out_date": ["Check-out date must be after check-in date."]}
            )
        return attrs


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class ExtensionQuoteQuerySerializer(serializers.Serializer):
    periods = serializers.IntegerField(required=False, default=1)


class ExtensionApplySerializer(serializers.Serializer):
    periods = serializers.IntegerField()
    deposit_option = serializers.ChoiceField(choices=DEPOSIT_OPTIONS, default="full")

    def to_internal_value(self, data):
        # Accept the camelCase spelling used by the web client.
        if hasattr(data, "get") and "depositOption" in data and "deposit_option" not in data:
            data = {**data, "deposit_option": data.get("depositOption")}
        return super().to_internal_value(data)
