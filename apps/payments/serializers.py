from rest_framework import serializers
from .models import PaymentTransaction


class PaymentTransactionSerializer(serializers.ModelSerializer):
    paymentType = serializers.CharField(source="payment_type")
    transactionId = serializers.CharField(source="transaction_id", allow_null=True)
    vaNumber = serializers.CharField(source="va_number", allow_null=True)
    vaBank = serializers.CharField(source="va_bank", allow_null=True)
    qrString = serializers.CharField(source="qr_string", allow_null=True)
    qrImageUrl = serializers.CharField(source="qr_image_url", allow_null=True)
    paymentUrl = serializers.CharField(source="payment_url", allow_null=True)
    expiresAt = serializers.DateTimeField(source="expires_at", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")

    class Meta:
        model = PaymentTransaction
        fields = [
            "id",
            "provider",
            "paymentType",
            "channel",
            "status",
            "amount",
            "transactionId",
            "vaNumber",
            "vaBank",
            "qrString",
            "qrImageUrl",
            "paymentUrl",
            "instructions",
            "expiresAt",
            "createdAt",
        ]
        read_only_fields = fields
