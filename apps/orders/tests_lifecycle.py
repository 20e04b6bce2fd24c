from django.test import SimpleTestCase

from apps.utils.exceptions import InvalidStatusTransition, OrderNotCancellable
from . import lifecycle
from .lifecycle import OrderState, OrderStatus, PaymentStatus
from .pricing import PaymentType


def state(status=OrderStatus.PENDING, payment=PaymentStatus.PENDING, method=PaymentType.VIRTUAL_ACCOUNT):
    return OrderState(status, payment, method)


class InitialStateTests(SimpleTestCase):
    def test_every_order_starts_pending(self):
        for method in PaymentType.values:
            initial = lifecycle.initial_state(method)
            self.assertEqual((initial.status, initial.payment_status), (OrderStatus.PENDING, PaymentStatus.PENDING))

    def test_cod_short_circuits_gateway(self):
        self.assertFalse(lifecycle.awaits_gateway(PaymentType.COD))
        self.assertTrue(lifecycle.awaits_gateway(PaymentType.QRIS))
        self.assertFalse(lifecycle.needs_reconciliation(state(method=PaymentType.COD)))

    def test_needs_reconciliation(self):
        self.assertTrue(lifecycle.needs_reconciliation(state()))
        self.assertTrue(lifecycle.needs_reconciliation(state(status=OrderStatus.PROCESSING)))
        self.assertFalse(lifecycle.needs_reconciliation(state(payment=PaymentStatus.PAID)))
        self.assertFalse(lifecycle.needs_reconciliation(state(status=OrderStatus.CANCELLED)))


class CancellationTests(SimpleTestCase):
    def test_cancel_allowed_only_while_pending_or_processing(self):
        for status in OrderStatus.values:
            current = state(status=status)
            if status in (OrderStatus.PENDING, OrderStatus.PROCESSING):
                self.assertEqual(lifecycle.cancel(current).status, OrderStatus.CANCELLED)
            else:
                with self.assertRaises(OrderNotCancellable) as ctx:
                    lifecycle.cancel(current)
                self.assertEqual(ctx.exception.code, "order_not_cancellable")
                self.assertEqual(ctx.exception.message, f"Cannot cancel order with status: {status}")
                # frozen input is untouched
                self.assertEqual(current.status, status)

    def test_cancel_unpaid_fails_payment(self):
        self.assertEqual(lifecycle.cancel(state()).payment_status, PaymentStatus.FAILED)

    def test_cancel_paid_refunds_payment(self):
        cancelled = lifecycle.cancel(state(status=OrderStatus.PROCESSING, payment=PaymentStatus.PAID))
        self.assertEqual(cancelled.payment_status, PaymentStatus.REFUNDED)


class ForwardFlowTests(SimpleTestCase):
    def test_forward_moves(self):
        current = state(payment=PaymentStatus.PAID)
        for target in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            current = lifecycle.advance(current, target)
            self.assertEqual(current.status, target)
        self.assertEqual(current.payment_status, PaymentStatus.PAID)

    def test_skipping_forward_is_allowed(self):
        self.assertEqual(lifecycle.advance(state(), OrderStatus.SHIPPED).status, OrderStatus.SHIPPED)

    def test_backwards_and_same_status_rejected(self):
        with self.assertRaises(InvalidStatusTransition):
            lifecycle.advance(state(status=OrderStatus.SHIPPED), OrderStatus.PROCESSING)
        with self.assertRaises(InvalidStatusTransition):
            lifecycle.advance(state(status=OrderStatus.SHIPPED), OrderStatus.SHIPPED)

    def test_terminal_statuses_do_not_move(self):
        for status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            with self.assertRaises(InvalidStatusTransition):
                lifecycle.advance(state(status=status), OrderStatus.DELIVERED)

    def test_cod_delivery_marks_paid(self):
        delivered = lifecycle.advance(
            state(status=OrderStatus.SHIPPED, method=PaymentType.COD), OrderStatus.DELIVERED
        )
        self.assertEqual(delivered.payment_status, PaymentStatus.PAID)

    def test_gateway_delivery_does_not_touch_payment(self):
        delivered = lifecycle.advance(state(status=OrderStatus.SHIPPED), OrderStatus.DELIVERED)
        self.assertEqual(delivered.payment_status, PaymentStatus.PENDING)


class RefundTests(SimpleTestCase):
    def test_refund_paid_order(self):
        refunded = lifecycle.transition(state(status=OrderStatus.DELIVERED, payment=PaymentStatus.PAID), OrderStatus.REFUNDED)
        self.assertEqual((refunded.status, refunded.payment_status), (OrderStatus.REFUNDED, PaymentStatus.REFUNDED))

    def test_refund_requires_paid(self):
        with self.assertRaises(InvalidStatusTransition):
            lifecycle.refund(state(status=OrderStatus.SHIPPED))

    def test_refund_of_cancelled_order_rejected(self):
        with self.assertRaises(InvalidStatusTransition):
            lifecycle.refund(state(status=OrderStatus.CANCELLED, payment=PaymentStatus.PAID))


class GatewayStatusTests(SimpleTestCase):
    def test_pending_moves_to_paid_or_failed(self):
        paid, changed = lifecycle.apply_gateway_status(state(), PaymentStatus.PAID)
        self.assertTrue(changed)
        self.assertEqual(paid.payment_status, PaymentStatus.PAID)
        self.assertEqual(paid.status, OrderStatus.PENDING)

        failed, changed = lifecycle.apply_gateway_status(state(), PaymentStatus.FAILED)
        self.assertTrue(changed)
        self.assertEqual(failed.payment_status, PaymentStatus.FAILED)

    def test_settled_payment_ignores_late_reports(self):
        current = state(payment=PaymentStatus.PAID)
        self.assertEqual(lifecycle.apply_gateway_status(current, PaymentStatus.FAILED), (current, False))

    def test_pending_report_is_a_no_op(self):
        current = state()
        self.assertEqual(lifecycle.apply_gateway_status(current, PaymentStatus.PENDING), (current, False))
