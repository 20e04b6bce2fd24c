import logging

from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied

from apps.orders.lifecycle import PaymentStatus
from apps.orders.models import Order
from apps.orders.pricing import PaymentType
from apps.orders.services import OrderService  # Explicit Cross-App Import
from apps.utils.exceptions import BusinessLogicException
from .gateway import MidtransGateway, map_transaction_status, offline_instruction, verify_notification_signature
from .models import PaymentProvider, PaymentTransaction, WebhookLog

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Payment side of the order lifecycle: creating the payment instruction at
    checkout and folding gateway status (sync or notification) back into the
    order.
    """

    @staticmethod
    def get_gateway():
        return MidtransGateway()

    @staticmethod
    def create_payment(order: Order) -> PaymentTransaction:
        """
        Called inside the checkout transaction; a gateway failure rolls the
        whole order back.
        """
        if order.payment_method == PaymentType.COD:
            instruction = offline_instruction(order.total)
        elif order.payment_method in (PaymentType.VIRTUAL_ACCOUNT, PaymentType.QRIS):
            instruction = PaymentService.get_gateway().charge(order)
        else:
            raise BusinessLogicException(
                f"Payment method {order.payment_method} is not supported yet",
                code="unsupported_payment_method",
            )

        payment = PaymentTransaction.objects.create(order=order, **instruction.as_model_fields())
        logger.info(
            f"Payment instruction created: {payment.provider} {payment.transaction_id or '-'}",
            extra={"order_number": order.order_number},
        )
        return payment

    @staticmethod
    def sync_payment_status(order: Order):
        """
        Ask the gateway for the latest status and apply it.
        Returns (order, gateway_status, synced).
        """
        payment = (
            order.payment_transactions
            .exclude(transaction_id__isnull=True)
            .exclude(transaction_id="")
            .order_by("-created_at")
            .first()
        )
        if payment is None:
            raise NotFound("Payment transaction not found or no transaction ID")

        data = PaymentService.get_gateway().get_status(payment.transaction_id)
        reported = map_transaction_status(data.get("transaction_status"))

        with transaction.atomic():
            PaymentTransaction.objects.filter(pk=payment.pk).update(status=reported, raw_response=data)
            order, changed = OrderService.apply_gateway_payment_status(
                order.order_number, reported, transaction_id=payment.transaction_id, source="sync"
            )

        logger.info(
            f"Payment synced: gateway={data.get('transaction_status')} mapped={reported} changed={changed}",
            extra={"order_number": order.order_number},
        )
        return order, reported, True

    @staticmethod
    def notification_event_id(payload: dict) -> str:
        return ":".join(
            str(payload.get(k) or "")
            for k in ("order_id", "transaction_id", "transaction_status", "status_code")
        )

    @staticmethod
    def process_notification(payload: dict):
        """
        Signed gateway notification. Idempotent per
        (order, transaction, status, status_code).
        Returns the order, or None for a duplicate.
        """
        if not verify_notification_signature(payload):
            logger.critical(f"Midtrans notification with invalid signature for {payload.get('order_id')}")
            raise PermissionDenied("Invalid signature")

        event_id = PaymentService.notification_event_id(payload)
        if WebhookLog.objects.filter(event_id=event_id, is_processed=True).exists():
            logger.info(f"Skipping duplicate notification: {event_id}")
            return None

        order_number = payload.get("order_id")
        transaction_id = payload.get("transaction_id")
        reported = map_transaction_status(payload.get("transaction_status"))

        with transaction.atomic():
            log, _ = WebhookLog.objects.get_or_create(
                event_id=event_id,
                defaults={"provider": PaymentProvider.MIDTRANS, "payload": payload},
            )

            order = Order.objects.filter(order_number=order_number).first()
            if order is None:
                logger.error(f"Notification for unknown order: {order_number}")
                raise NotFound("Order not found")

            payment = (
                order.payment_transactions.select_for_update().filter(transaction_id=transaction_id).first()
                or order.payment_transactions.select_for_update().order_by("-created_at").first()
            )
            if payment is None:
                logger.error(f"Notification without a payment transaction: {transaction_id}")
                raise NotFound("Payment transaction not found")

            payment.status = reported
            payment.raw_response = payload
            if transaction_id and not payment.transaction_id:
                payment.transaction_id = transaction_id
            payment.save(update_fields=["status", "raw_response", "transaction_id", "updated_at"])

            order, changed = OrderService.apply_gateway_payment_status(
                order.order_number, reported, transaction_id=transaction_id, source="notification"
            )

            log.is_processed = True
            log.save(update_fields=["is_processed", "updated_at"])

        logger.info(
            f"Notification processed: {payload.get('transaction_status')} -> {reported} changed={changed}",
            extra={"order_number": order.order_number},
        )
        return order

    @staticmethod
    def pending_gateway_orders():
        """Orders still waiting on the gateway, oldest first."""
        return (
            Order.objects.filter(payment_status=PaymentStatus.PENDING)
            .exclude(payment_method=PaymentType.COD)
            .exclude(status__in=[Order.Status.CANCELLED, Order.Status.REFUNDED])
            .order_by("created_at")
        )
