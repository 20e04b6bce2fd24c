from django.db import models
from .order import Order
from apps.catalog.models import Product


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')

    # Snapshot fields (Critical for audit)
    product_name = models.CharField(max_length=255)
    base_price = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    total = models.DecimalField(max_digits=12, decimal_places=2)

    selected_color = models.CharField(max_length=50, blank=True)
    selected_size = models.CharField(max_length=50, blank=True)
    selected_image_url = models.URLField(max_length=500, blank=True)

    class Meta:
        db_table = "order_items"

    def __str__(self):
        return f"{self.quantity}x {self.product_name}"

    @classmethod
    def from_line(cls, order, line):
        return cls(
            order=order,
            product_id=line.product_id,
            product_name=line.name,
            base_price=line.base_price,
            unit_price=line.unit_price,
            quantity=line.quantity,
            total=line.line_total,
            selected_color=line.color,
            selected_size=line.size,
            selected_image_url=line.image_url,
        )
