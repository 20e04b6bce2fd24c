# apps/catalog/serializers.py
from rest_framework import serializers
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    salePrice = serializers.DecimalField(source="sale_price", max_digits=12, decimal_places=2, allow_null=True)
    imageUrl = serializers.URLField(source="image_url", allow_null=True)
    stockQuantity = serializers.IntegerField(source="stock_quantity")
    isActive = serializers.BooleanField(source="is_active")
    effectivePrice = serializers.DecimalField(source="effective_price", max_digits=12, decimal_places=2)
    freeShippingThreshold = serializers.DecimalField(
        source="free_shipping_threshold", max_digits=12, decimal_places=2, allow_null=True
    )
    defaultShippingCost = serializers.DecimalField(
        source="default_shipping_cost", max_digits=12, decimal_places=2, allow_null=True
    )
    serviceFee = serializers.DecimalField(source="service_fee", max_digits=12, decimal_places=2, allow_null=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "slug",
            "brand",
            "description",
            "imageUrl",
            "price",
            "salePrice",
            "effectivePrice",
            "stockQuantity",
            "isActive",
            "freeShippingThreshold",
            "defaultShippingCost",
            "serviceFee",
        ]
        read_only_fields = fields
