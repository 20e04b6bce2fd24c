# apps/catalog/models.py
import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.text import slugify


class Product(models.Model):
    """
    Sellable product.

    NOTE:
    - price / sale_price feed the effective-price rule at checkout.
    - free_shipping_threshold / default_shipping_cost / service_fee are the
      per-product shipping policy; NULL means "use the store-wide setting".
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True, db_index=True)
    brand = models.CharField(max_length=120, blank=True)
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True, null=True)

    # Pricing
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Base (list) price",
    )
    sale_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Active only when lower than price",
    )

    # Stock
    stock_quantity = models.PositiveIntegerField(default=0)
    sales_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    # Shipping policy overrides
    free_shipping_threshold = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
    )
    default_shipping_cost = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
    )
    service_fee = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "created_at"], name="product_active_created_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def display_name(self):
        return f"{self.brand} - {self.name}" if self.brand else self.name

    @property
    def effective_price(self) -> Decimal:
        if self.sale_price is not None and self.sale_price < self.price:
            return self.sale_price
        return self.price

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.name) or "product"
            slug = base
            i = 1
            while Product.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{i}"
                i += 1
            self.slug = slug
        super().save(*args, **kwargs)
