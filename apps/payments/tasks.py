import logging

from celery import shared_task
from rest_framework.exceptions import APIException

from apps.orders.lifecycle import PaymentStatus
from apps.utils.exceptions import BusinessLogicException
from .services import PaymentService

logger = logging.getLogger(__name__)

RECONCILE_BATCH_SIZE = 100


@shared_task
def reconcile_pending_payments():
    """
    Server-side safety net for missed notifications: asks the gateway about
    every order still waiting on payment.
    """
    checked = settled = 0
    for order in PaymentService.pending_gateway_orders()[:RECONCILE_BATCH_SIZE]:
        checked += 1
        try:
            order, reported, _ = PaymentService.sync_payment_status(order)
        except BusinessLogicException as e:
            logger.warning(f"Reconcile skipped for {order.order_number}: {e.message}")
            continue
        except APIException as e:
            logger.warning(f"Reconcile skipped for {order.order_number}: {e.detail}")
            continue
        except Exception as e:
            logger.error(f"Reconcile failed for {order.order_number}: {e}")
            continue
        if reported != PaymentStatus.PENDING:
            settled += 1

    if checked:
        logger.info(f"Reconciled {checked} pending payments, {settled} settled")
    return {"checked": checked, "settled": settled}
