from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
import logging

logger = logging.getLogger(__name__)


def order_group_name(order_number):
    return f"order_{order_number}"


def order_event(order) -> dict:
    return {
        "orderNumber": order.order_number,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "total": str(order.total),
        "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
    }


def broadcast_order_update(order):
    """
    Pushes the order's current state to everyone watching it.
    Best effort: a missing or failing channel layer never breaks the
    request that changed the order.
    """
    channel_layer = get_channel_layer()
    if not channel_layer:
        return

    try:
        async_to_sync(channel_layer.group_send)(
            order_group_name(order.order_number),
            {
                "type": "order.update",  # Matches consumer method
                "payload": order_event(order),
            },
        )
    except Exception as e:
        logger.error(f"Failed to broadcast order update for {order.order_number}: {e}")
