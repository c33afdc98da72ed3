from __future__ import annotations

from rest_framework import serializers

from .models import BankAccount, Payment, Payout, PayoutAttachment


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = (
            "id",
            "booking",
            "order_id",
            "payment_type",
            "amount",
            "status",
            "payment_method",
            "transaction_time",
            "transaction_id",
            "snap_token",
            "redirect_url",
            "expiry_time",
            "is_extension",
            "extension_periods",
            "extension_check_out_date",
            "extension_total_amount",
            "created_at",
        )
        read_only_fields = fields


class PaymentIntentSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    payment_type = serializers.ChoiceField(choices=Payment.Type.choices)


class MidtransNotificationSerializer(serializers.Serializer):
    """Fields the webhook needs; everything else in the body is kept as raw payload."""

    order_id = serializers.CharField(max_length=64)
    transaction_status = serializers.CharField(max_length=32)
    status_code = serializers.CharField(max_length=8)
    gross_amount = serializers.CharField(max_length=32)
    signature_key = serializers.CharField(max_length=256)
    transaction_id = serializers.CharField(max_length=80, required=False, allow_blank=True)
    payment_type = serializers.CharField(max_length=40, required=False, allow_blank=True)
    transaction_time = serializers.CharField(max_length=40, required=False, allow_blank=True)
    fraud_status = serializers.CharField(max_length=16, required=False, allow_blank=True)


class ClientConfirmationSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    transaction_status = serializers.CharField(max_length=32)
    transaction_id = serializers.CharField(max_length=80, required=False, allow_blank=True)
    payment_type = serializers.CharField(max_length=40, required=False, allow_blank=True)
    transaction_time = serializers.CharField(max_length=40, required=False, allow_blank=True)
    gross_amount = serializers.CharField(max_length=32, required=False, allow_blank=True)
    fraud_status = serializers.CharField(max_length=16, required=False, allow_blank=True)


class BankAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = BankAccount
        fields = (
            "id",
            "bank_code",
            "bank_name",
            "account_number",
            "account_name",
            "status",
            "created_at",
        )
        read_only_fields = ("id", "status", "created_at")


class PayoutAttachmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutAttachment
        fields = ("id", "file_url", "file_name", "file_type", "created_at")
        read_only_fields = ("id", "created_at")


class PayoutSerializer(serializers.ModelSerializer):
    attachments = PayoutAttachmentSerializer(many=True, read_only=True)
    bank_account = BankAccountSerializer(read_only=True)
    owner_username = serializers.ReadOnlyField(source="admin_kos.username")

    class Meta:
        model = Payout
        fields = (
            "id",
            "admin_kos",
            "owner_username",
            "bank_account",
            "amount",
            "source",
            "balance_before",
            "balance_after",
            "status",
            "notes",
            "rejection_reason",
            "processed_by",
            "processed_at",
            "attachments",
            "created_at",
        )
        read_only_fields = fields


class PayoutRequestSerializer(serializers.Serializer):
    bank_account_id = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")


class PayoutApproveSerializer(serializers.Serializer):
    attachments = PayoutAttachmentSerializer(many=True)


class PayoutCompleteSerializer(serializers.Serializer):
    attachments = PayoutAttachmentSerializer(many=True, required=False)


class PayoutRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)
