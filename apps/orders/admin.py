import json

from django.contrib import admin, messages
from django.utils.safestring import mark_safe

from apps.utils.exceptions import BusinessLogicException
from .lifecycle import OrderStatus
from .models import Cart, CartItem, Order, OrderCancellation, OrderItem, OrderTimeline
from .services import OrderService


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name', 'base_price', 'unit_price', 'quantity', 'total',
                       'selected_color', 'selected_size')
    exclude = ('selected_image_url',)

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'payment_status', 'note', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


def _transition_action(target, description):
    def action(modeladmin, request, queryset):
        done = 0
        for order in queryset:
            try:
                OrderService.update_status(order.order_number, target, user=request.user, note="Admin action")
                done += 1
            except BusinessLogicException as e:
                modeladmin.message_user(request, f"{order.order_number}: {e.message}", level=messages.WARNING)
        if done:
            modeladmin.message_user(request, f"{done} order(s) moved to {target}.")

    action.__name__ = f"mark_{target.lower()}"
    action.short_description = description
    return action


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only order view. State changes only through the actions, which go
    through OrderService like the API does.
    """
    list_display = (
        'order_number',
        'user',
        'status',
        'payment_status',
        'payment_method',
        'total',
        'created_at'
    )
    list_filter = ('status', 'payment_status', 'payment_method', 'created_at')
    search_fields = ('order_number', 'transaction_id', 'user__username', 'user__email')

    inlines = [OrderItemInline, OrderTimelineInline]
    actions = [
        _transition_action(OrderStatus.PROCESSING, "Mark selected orders as processing"),
        _transition_action(OrderStatus.SHIPPED, "Mark selected orders as shipped"),
        _transition_action(OrderStatus.DELIVERED, "Mark selected orders as delivered"),
        _transition_action(OrderStatus.CANCELLED, "Cancel selected orders"),
        _transition_action(OrderStatus.REFUNDED, "Refund selected orders"),
    ]

    readonly_fields = (
        'id',
        'order_number',
        'user',
        'status',
        'payment_status',
        'payment_method',
        'payment_channel',
        'payment_label',
        'subtotal',
        'discount',
        'shipping_cost',
        'service_fee',
        'payment_fee',
        'shipping_discount',
        'voucher_discount',
        'total',
        'shipping_reason',
        'formatted_shipping_address',
        'notes',
        'transaction_id',
        'created_at',
        'updated_at',
        'paid_at',
        'cancelled_at',
        'delivered_at'
    )

    fieldsets = (
        ('Order Details', {
            'fields': ('order_number', 'id', 'status', 'user', 'notes')
        }),
        ('Payment', {
            'fields': ('payment_status', 'payment_method', 'payment_channel', 'payment_label', 'transaction_id')
        }),
        ('Financials', {
            'fields': ('subtotal', 'discount', 'shipping_cost', 'service_fee', 'payment_fee',
                       'shipping_discount', 'voucher_discount', 'total', 'shipping_reason')
        }),
        ('Shipping', {
            'fields': ('formatted_shipping_address',)
        }),
        ('System Data', {
            'fields': ('created_at', 'updated_at', 'paid_at', 'delivered_at', 'cancelled_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False

    def formatted_shipping_address(self, obj):
        if not obj.shipping_address:
            return "-"
        content = json.dumps(obj.shipping_address, indent=2)
        return mark_safe(f"<pre>{content}</pre>")

    formatted_shipping_address.short_description = "Shipping Address Snapshot"


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ('product', 'quantity', 'selected_color', 'selected_size', 'added_at')
    can_delete = False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'updated_at')
    search_fields = ('user__username', 'user__email')
    readonly_fields = ('user', 'created_at', 'updated_at')
    inlines = [CartItemInline]

    def has_add_permission(self, request):
        return False


@admin.register(OrderCancellation)
class OrderCancellationAdmin(admin.ModelAdmin):
    list_display = ('order', 'reason_code', 'cancelled_by', 'created_at')
    list_filter = ('cancelled_by',)
    search_fields = ('order__order_number', 'reason')
    readonly_fields = ('order', 'created_at', 'cancelled_by_user')
