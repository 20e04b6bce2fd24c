# apps/orders/apps.py

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.orders"
    # Signal receivers for side effects live in apps.payments (broadcast);
    # order state changes themselves go through OrderService only.
