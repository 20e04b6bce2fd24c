from django.db import models


class Setting(models.Model):
    """
    Key/value store for admin-editable storefront settings.

    Known keys:
        shipping: freeShippingThreshold, defaultShippingCost
        payment:  paymentMethods (list of method dicts), paymentTimeoutMinutes
        general:  storeName, currency, contactEmail, ...
    """

    class Category(models.TextChoices):
        GENERAL = "general", "General"
        SHIPPING = "shipping", "Shipping"
        PAYMENT = "payment", "Payment"
        SEO = "seo", "SEO"

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(null=True, blank=True)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.GENERAL, db_index=True)
    description = models.CharField(max_length=255, blank=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "settings"
        ordering = ["category", "key"]

    def __str__(self):
        return f"{self.category}:{self.key}"
