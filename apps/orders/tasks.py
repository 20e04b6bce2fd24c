from celery import shared_task
from django.utils import timezone
from datetime import timedelta
import logging

from apps.store.services import StoreSettingsService
from .lifecycle import PaymentStatus
from .models import Order, OrderCancellation
from .services import OrderService

logger = logging.getLogger(__name__)


@shared_task
def auto_cancel_unpaid_orders():
    """
    Runs every 5 minutes.
    Cancels gateway orders still unpaid after the payment timeout, BUT
    double-checks payment status with the gateway first.
    """
    minutes = StoreSettingsService.get_payment_timeout_minutes()
    cutoff = timezone.now() - timedelta(minutes=minutes)

    pending_orders = Order.objects.filter(
        status=Order.Status.PENDING,
        payment_status=PaymentStatus.PENDING,
        created_at__lt=cutoff,
    ).exclude(payment_method=Order.PaymentMethod.COD)

    count = 0
    # Import inside task to ensure app registry is ready
    from apps.payments.services import PaymentService

    for order in pending_orders:
        try:
            # [SAFETY GUARD] Poll gateway before killing the order
            if order.payment_transactions.exclude(transaction_id__isnull=True).exclude(transaction_id="").exists():
                order, _, _ = PaymentService.sync_payment_status(order)
                if order.payment_status != PaymentStatus.PENDING:
                    logger.info(
                        f"Auto-cancel skipped: payment is {order.payment_status} after sync",
                        extra={"order_number": order.order_number},
                    )
                    continue

            OrderService.cancel_order(
                order.order_number,
                reason=f"Payment not received within {minutes} minutes",
                cancelled_by=OrderCancellation.CancelledBy.SYSTEM,
            )
            count += 1

        except Exception as e:
            logger.error(f"Failed to auto-cancel order {order.order_number}: {e}")

    return f"Auto-cancelled {count} orders"
