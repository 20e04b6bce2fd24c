from rest_framework import serializers

from apps.catalog.serializers import ProductSerializer
from apps.payments.serializers import PaymentTransactionSerializer
from .lifecycle import OrderStatus
from .models import Cart, CartItem, Order, OrderItem
from .pricing import Breakdown


# ---- input ----
# Field-level rules (required address, VA bank, ...) are enforced by
# CheckoutSession so preview and checkout report the same messages.

class CheckoutSerializer(serializers.Serializer):
    addressId = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    paymentMethod = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    paymentChannel = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    itemIds = serializers.ListField(child=serializers.CharField(), required=False, allow_empty=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class BuyNowSerializer(CheckoutSerializer):
    productId = serializers.CharField(required=False, allow_blank=True)
    quantity = serializers.IntegerField(required=False, default=1)
    color = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    size = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    imageUrl = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CartItemInputSerializer(serializers.Serializer):
    productId = serializers.CharField()
    quantity = serializers.IntegerField(required=False, default=1)
    color = serializers.CharField(required=False, allow_blank=True, default="")
    size = serializers.CharField(required=False, allow_blank=True, default="")
    imageUrl = serializers.CharField(required=False, allow_blank=True, default="")


class CartItemUpdateSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class AdminStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


# ---- output ----

class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSerializer(read_only=True)
    selectedColor = serializers.CharField(source="selected_color")
    selectedSize = serializers.CharField(source="selected_size")
    selectedImageUrl = serializers.CharField(source="selected_image_url")

    class Meta:
        model = CartItem
        fields = ["id", "product", "quantity", "selectedColor", "selectedSize", "selectedImageUrl"]
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    itemCount = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = ["id", "items", "itemCount"]

    def get_itemCount(self, obj):
        return sum(item.quantity for item in obj.items.all())


class OrderItemSerializer(serializers.ModelSerializer):
    productId = serializers.CharField(source="product_id")
    productName = serializers.CharField(source="product_name")
    basePrice = serializers.DecimalField(source="base_price", max_digits=12, decimal_places=2)
    unitPrice = serializers.DecimalField(source="unit_price", max_digits=12, decimal_places=2)
    selectedColor = serializers.CharField(source="selected_color")
    selectedSize = serializers.CharField(source="selected_size")
    selectedImageUrl = serializers.CharField(source="selected_image_url")

    class Meta:
        model = OrderItem
        fields = [
            "id", "productId", "productName", "basePrice", "unitPrice",
            "quantity", "total", "selectedColor", "selectedSize", "selectedImageUrl",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    orderNumber = serializers.CharField(source="order_number")
    paymentStatus = serializers.CharField(source="payment_status")
    paymentMethod = serializers.CharField(source="payment_method")
    itemCount = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at")

    class Meta:
        model = Order
        fields = ["id", "orderNumber", "status", "paymentStatus", "paymentMethod", "total", "itemCount", "createdAt"]
        read_only_fields = fields

    def get_itemCount(self, obj):
        return len(obj.items.all())


class OrderSerializer(OrderListSerializer):
    paymentChannel = serializers.CharField(source="payment_channel")
    paymentLabel = serializers.CharField(source="payment_label")
    shippingCost = serializers.DecimalField(source="shipping_cost", max_digits=12, decimal_places=2)
    serviceFee = serializers.DecimalField(source="service_fee", max_digits=12, decimal_places=2)
    paymentFee = serializers.DecimalField(source="payment_fee", max_digits=12, decimal_places=2)
    shippingDiscount = serializers.DecimalField(source="shipping_discount", max_digits=12, decimal_places=2)
    voucherDiscount = serializers.DecimalField(source="voucher_discount", max_digits=12, decimal_places=2)
    # Storefront renders addresses as a list
    shippingAddress = serializers.SerializerMethodField()
    transactionId = serializers.CharField(source="transaction_id", allow_null=True)
    canCancel = serializers.BooleanField(source="can_cancel")
    items = OrderItemSerializer(many=True, read_only=True)
    paymentTransactions = PaymentTransactionSerializer(source="payment_transactions", many=True, read_only=True)
    breakdown = serializers.SerializerMethodField()
    paidAt = serializers.DateTimeField(source="paid_at", allow_null=True)
    cancelledAt = serializers.DateTimeField(source="cancelled_at", allow_null=True)
    deliveredAt = serializers.DateTimeField(source="delivered_at", allow_null=True)
    updatedAt = serializers.DateTimeField(source="updated_at")

    class Meta:
        model = Order
        fields = OrderListSerializer.Meta.fields + [
            "paymentChannel", "paymentLabel",
            "subtotal", "discount", "shippingCost", "serviceFee", "paymentFee",
            "shippingDiscount", "voucherDiscount",
            "shippingAddress", "notes", "transactionId", "canCancel",
            "items", "paymentTransactions", "breakdown",
            "paidAt", "cancelledAt", "deliveredAt", "updatedAt",
        ]
        read_only_fields = fields

    def get_shippingAddress(self, obj):
        return [obj.shipping_address] if obj.shipping_address else []

    def get_breakdown(self, obj):
        return Breakdown.from_order(obj).as_dict()
