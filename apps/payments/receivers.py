import logging
from functools import partial

from django.db import transaction
from django.dispatch import receiver

from apps.orders.signals import order_placed, order_status_changed
from .realtime import broadcast_order_update

logger = logging.getLogger(__name__)


@receiver(order_status_changed)
def push_order_status(sender, order, old_status, new_status, old_payment_status, new_payment_status, source, **kwargs):
    logger.debug(
        f"{order.order_number}: {old_status}/{old_payment_status} -> {new_status}/{new_payment_status} ({source})"
    )
    transaction.on_commit(partial(broadcast_order_update, order))


@receiver(order_placed)
def push_order_placed(sender, order, **kwargs):
    transaction.on_commit(partial(broadcast_order_update, order))
