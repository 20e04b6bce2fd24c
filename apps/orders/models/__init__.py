"""
Orders app models, split by concern:

    from apps.orders.models import Order, OrderItem, Cart
"""

from .order import Order
from .item import OrderItem
from .timeline import OrderTimeline
from .cancellation import OrderCancellation
from .cart import Cart, CartItem

__all__ = [
    "Order",
    "OrderItem",
    "OrderTimeline",
    "OrderCancellation",
    "Cart",
    "CartItem",
]
