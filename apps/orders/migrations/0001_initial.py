import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def money(**kwargs):
    return models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order_number", models.CharField(db_index=True, max_length=32, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("SHIPPED", "Shipped"),
                            ("DELIVERED", "Delivered"),
                            ("CANCELLED", "Cancelled"),
                            ("REFUNDED", "Refunded"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("PAID", "Paid"), ("FAILED", "Failed"), ("REFUNDED", "Refunded")],
                        db_index=True,
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("COD", "Cash on Delivery"),
                            ("VIRTUAL_ACCOUNT", "Virtual Account"),
                            ("QRIS", "QRIS"),
                            ("CREDIT_CARD", "Credit/Debit Card"),
                        ],
                        max_length=20,
                    ),
                ),
                ("payment_channel", models.CharField(blank=True, max_length=50)),
                ("payment_label", models.CharField(blank=True, max_length=120)),
                ("subtotal", money()),
                ("discount", money()),
                ("shipping_cost", money()),
                ("service_fee", money()),
                ("payment_fee", money(help_text="Signed: negative is a payment-method discount")),
                ("shipping_discount", money()),
                ("voucher_discount", money()),
                ("tax", money(help_text="Reserved, always 0 and not part of total")),
                ("total", money(editable=False)),
                ("shipping_reason", models.CharField(blank=True, max_length=255)),
                ("shipping_address", models.JSONField(default=dict)),
                ("notes", models.TextField(blank=True)),
                ("transaction_id", models.CharField(blank=True, max_length=100, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "-created_at"], name="order_user_created_idx"),
                    models.Index(fields=["status", "payment_status", "created_at"], name="order_status_payment_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_name", models.CharField(max_length=255)),
                ("base_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField()),
                ("total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("selected_color", models.CharField(blank=True, max_length=50)),
                ("selected_size", models.CharField(blank=True, max_length=50)),
                ("selected_image_url", models.URLField(blank=True, max_length=500)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="order_items", to="catalog.product"
                    ),
                ),
            ],
            options={"db_table": "order_items"},
        ),
        migrations.CreateModel(
            name="OrderTimeline",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(max_length=20)),
                ("payment_status", models.CharField(blank=True, max_length=20)),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                ("note", models.TextField(blank=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="timeline", to="orders.order"
                    ),
                ),
            ],
            options={"db_table": "order_timeline", "ordering": ["-timestamp"]},
        ),
        migrations.CreateModel(
            name="OrderCancellation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reason", models.TextField(blank=True)),
                ("reason_code", models.CharField(blank=True, max_length=50)),
                (
                    "cancelled_by",
                    models.CharField(
                        choices=[("CUSTOMER", "Customer"), ("SYSTEM", "System"), ("OPS", "Operations")],
                        default="SYSTEM",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "cancelled_by_user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders_cancelled",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE, related_name="cancellation", to="orders.order"
                    ),
                ),
            ],
            options={
                "db_table": "order_cancellations",
                "indexes": [models.Index(fields=["cancelled_by", "created_at"], name="order_cancel_by_idx")],
            },
        ),
        migrations.CreateModel(
            name="Cart",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cart",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"db_table": "carts"},
        ),
        migrations.CreateModel(
            name="CartItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("selected_color", models.CharField(blank=True, max_length=50)),
                ("selected_size", models.CharField(blank=True, max_length=50)),
                ("selected_image_url", models.URLField(blank=True, max_length=500)),
                ("added_at", models.DateTimeField(auto_now_add=True)),
                (
                    "cart",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.cart"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="cart_items", to="catalog.product"
                    ),
                ),
            ],
            options={
                "db_table": "cart_items",
                "ordering": ["added_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("cart", "product", "selected_color", "selected_size"),
                        name="uniq_cart_product_variant",
                    )
                ],
            },
        ),
    ]
