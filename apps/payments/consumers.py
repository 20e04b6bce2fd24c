import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from .realtime import order_group_name

logger = logging.getLogger(__name__)


class OrderStatusConsumer(AsyncWebsocketConsumer):
    """
    Read-only feed of one order's status/payment changes, for its owner.
    """

    async def connect(self):
        self.order_number = self.scope["url_route"]["kwargs"]["order_number"]
        self.group_name = order_group_name(self.order_number)
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        if not await self.owns_order(self.user, self.order_number):
            logger.warning(f"Unauthorized WS access: {self.user.pk} -> {self.order_number}")
            await self.close()
            return

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    @database_sync_to_async
    def owns_order(self, user, order_number):
        from apps.orders.models import Order
        return Order.objects.filter(order_number=order_number, user=user).exists()

    async def order_update(self, event):
        await self.send(text_data=json.dumps({
            "type": "order_update",
            "data": event["payload"],
        }))
