from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "brand", "price", "sale_price", "stock_quantity", "is_active")
    search_fields = ("name", "brand", "slug")
    readonly_fields = ("sales_count", "created_at", "updated_at")
    fieldsets = (
        ("Product", {"fields": ("name", "slug", "brand", "description", "image_url", "is_active")}),
        ("Pricing & Stock", {"fields": ("price", "sale_price", "stock_quantity", "sales_count")}),
        ("Shipping Policy", {
            "fields": ("free_shipping_threshold", "default_shipping_cost", "service_fee"),
            "description": "Leave blank to fall back to the store-wide shipping settings.",
        }),
        ("System", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )
