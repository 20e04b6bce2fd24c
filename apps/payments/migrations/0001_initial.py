import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "provider",
                    models.CharField(choices=[("MIDTRANS", "Midtrans"), ("OFFLINE", "Offline (COD)")], max_length=20),
                ),
                (
                    "payment_type",
                    models.CharField(help_text="Gateway payment_type, e.g. bank_transfer, qris, cod", max_length=30),
                ),
                ("channel", models.CharField(blank=True, max_length=30, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("PAID", "Paid"), ("FAILED", "Failed"), ("REFUNDED", "Refunded")],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("transaction_id", models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ("va_number", models.CharField(blank=True, max_length=50, null=True)),
                ("va_bank", models.CharField(blank=True, max_length=20, null=True)),
                ("qr_string", models.TextField(blank=True, null=True)),
                ("qr_image_url", models.URLField(blank=True, max_length=500, null=True)),
                ("payment_url", models.URLField(blank=True, max_length=500, null=True)),
                ("instructions", models.TextField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("raw_response", models.JSONField(blank=True, default=dict)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_transactions",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "payment_transactions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "event_id",
                    models.CharField(
                        help_text="Derived from order, transaction and status", max_length=255, unique=True
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[("MIDTRANS", "Midtrans"), ("OFFLINE", "Offline (COD)")],
                        default="MIDTRANS",
                        max_length=20,
                    ),
                ),
                ("is_processed", models.BooleanField(default=False)),
                ("payload", models.JSONField()),
            ],
            options={
                "db_table": "payment_webhook_logs",
            },
        ),
    ]
