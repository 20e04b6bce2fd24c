from decimal import Decimal

from django.conf import settings
from django.db import models

from apps.utils.models import TimestampedModel
from apps.orders.lifecycle import OrderState, OrderStatus, PaymentStatus
from apps.orders.pricing import PaymentType

ZERO = Decimal("0")


def _money(**kwargs):
    return models.DecimalField(max_digits=12, decimal_places=2, default=ZERO, **kwargs)


class Order(TimestampedModel):
    Status = OrderStatus
    PaymentStatus = PaymentStatus
    PaymentMethod = PaymentType

    order_number = models.CharField(max_length=32, unique=True, db_index=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    payment_channel = models.CharField(max_length=50, blank=True)
    payment_label = models.CharField(max_length=120, blank=True)

    # Breakdown components; `total` is derived in save()
    subtotal = _money()
    discount = _money()
    shipping_cost = _money()
    service_fee = _money()
    payment_fee = _money(help_text="Signed: negative is a payment-method discount")
    shipping_discount = _money()
    voucher_discount = _money()
    tax = _money(help_text="Reserved, always 0 and not part of total")
    total = _money(editable=False)
    shipping_reason = models.CharField(max_length=255, blank=True)

    # Snapshot of Address (JSON) to prevent historical drift
    shipping_address = models.JSONField(default=dict)
    notes = models.TextField(blank=True)

    transaction_id = models.CharField(max_length=100, blank=True, null=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "-created_at"], name="order_user_created_idx"),
            models.Index(fields=["status", "payment_status", "created_at"], name="order_status_payment_idx"),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}/{self.payment_status}]"

    def compute_total(self):
        return (
            (self.subtotal or ZERO)
            + (self.shipping_cost or ZERO)
            + (self.service_fee or ZERO)
            + (self.payment_fee or ZERO)
            - (self.shipping_discount or ZERO)
            - (self.voucher_discount or ZERO)
        )

    def save(self, *args, **kwargs):
        self.total = self.compute_total()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "total" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["total"]
        super().save(*args, **kwargs)

    @property
    def state(self) -> OrderState:
        return OrderState.of(self)

    @property
    def can_cancel(self):
        return self.status in (self.Status.PENDING, self.Status.PROCESSING)

    @property
    def is_cod(self):
        return self.payment_method == self.PaymentMethod.COD

    @property
    def latest_payment(self):
        return self.payment_transactions.order_by("-created_at").first()
