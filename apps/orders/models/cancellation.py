import uuid

from django.conf import settings
from django.db import models

from .order import Order


class OrderCancellation(models.Model):
    """
    Canonical cancellation record: reason and who cancelled
    (customer / payment-timeout job / ops).
    """

    class CancelledBy(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        SYSTEM = "SYSTEM", "System"
        OPS = "OPS", "Operations"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(
        Order,
        related_name="cancellation",
        on_delete=models.CASCADE,
    )

    reason = models.TextField(blank=True)
    reason_code = models.CharField(max_length=50, blank=True)

    cancelled_by = models.CharField(
        max_length=20, choices=CancelledBy.choices, default=CancelledBy.SYSTEM
    )
    cancelled_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="orders_cancelled",
        on_delete=models.SET_NULL,
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_cancellations"
        indexes = [
            models.Index(fields=["cancelled_by", "created_at"], name="order_cancel_by_idx"),
        ]

    def __str__(self):
        return f"Cancellation for {self.order_id} ({self.cancelled_by})"
