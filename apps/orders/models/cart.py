import uuid

from django.conf import settings
from django.db import models


class Cart(models.Model):
    """
    Per-customer cart. One active cart per user.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        related_name="cart",
        on_delete=models.CASCADE,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "carts"

    def __str__(self):
        return f"Cart for {self.user_id}"


class CartItem(models.Model):
    """
    One product + quantity (+ chosen variant) inside a cart. Prices are read
    live from the product at checkout, never stored here.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cart = models.ForeignKey(
        Cart,
        related_name="items",
        on_delete=models.CASCADE,
    )
    product = models.ForeignKey(
        "catalog.Product",
        related_name="cart_items",
        on_delete=models.CASCADE,
    )

    quantity = models.PositiveIntegerField(default=1)
    selected_color = models.CharField(max_length=50, blank=True)
    selected_size = models.CharField(max_length=50, blank=True)
    selected_image_url = models.URLField(max_length=500, blank=True)

    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "cart_items"
        ordering = ["added_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product", "selected_color", "selected_size"],
                name="uniq_cart_product_variant",
            ),
        ]

    def __str__(self):
        return f"{self.cart_id} -> {self.product_id} x {self.quantity}"
