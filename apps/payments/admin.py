from django.contrib import admin
from .models import PaymentTransaction, WebhookLog


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ("transaction_id", "order", "provider", "payment_type", "amount", "status", "created_at")
    list_filter = ("status", "provider", "payment_type", "created_at")
    search_fields = ("transaction_id", "order__order_number", "va_number")
    readonly_fields = ("raw_response",)
    raw_id_fields = ("order",)


@admin.register(WebhookLog)
class WebhookLogAdmin(admin.ModelAdmin):
    list_display = ("event_id", "provider", "is_processed", "created_at")
    list_filter = ("is_processed", "created_at")
    search_fields = ("event_id",)
    readonly_fields = ("payload",)
