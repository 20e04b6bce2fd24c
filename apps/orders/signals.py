# apps/orders/signals.py
from django.dispatch import Signal

# Fired inside the checkout transaction once the order and its items exist.
# args: order
order_placed = Signal()

# Fired whenever status or payment_status moves.
# args: order, old_status, new_status, old_payment_status, new_payment_status, source
order_status_changed = Signal()
