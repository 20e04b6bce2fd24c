from django.db import models

from apps.orders.lifecycle import PaymentStatus
from apps.orders.models import Order
from apps.utils.models import TimestampedModel


class PaymentProvider(models.TextChoices):
    MIDTRANS = "MIDTRANS", "Midtrans"
    OFFLINE = "OFFLINE", "Offline (COD)"


class PaymentTransaction(TimestampedModel):
    """
    Gateway-side record of a payment attempt. An order may collect several
    over time; the newest one is authoritative.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payment_transactions")

    provider = models.CharField(max_length=20, choices=PaymentProvider.choices)
    payment_type = models.CharField(max_length=30, help_text="Gateway payment_type, e.g. bank_transfer, qris, cod")
    channel = models.CharField(max_length=30, blank=True, null=True)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    # The transaction ID from the provider
    transaction_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)

    va_number = models.CharField(max_length=50, blank=True, null=True)
    va_bank = models.CharField(max_length=20, blank=True, null=True)
    qr_string = models.TextField(blank=True, null=True)
    qr_image_url = models.URLField(max_length=500, blank=True, null=True)
    payment_url = models.URLField(max_length=500, blank=True, null=True)
    instructions = models.TextField(blank=True, null=True)
    expires_at = models.DateTimeField(blank=True, null=True)

    raw_response = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "payment_transactions"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.provider} {self.transaction_id or '-'} | {self.amount} | {self.status}"


class WebhookLog(TimestampedModel):
    """
    Idempotency store for gateway notifications.
    """
    event_id = models.CharField(max_length=255, unique=True, help_text="Derived from order, transaction and status")
    provider = models.CharField(max_length=20, choices=PaymentProvider.choices, default=PaymentProvider.MIDTRANS)
    is_processed = models.BooleanField(default=False)
    payload = models.JSONField()

    class Meta:
        db_table = "payment_webhook_logs"

    def __str__(self):
        return f"{self.provider} - {self.event_id}"
