"""
Order status machine.

Two independent axes:

    status:          PENDING -> PROCESSING -> SHIPPED -> DELIVERED
                     PENDING | PROCESSING -> CANCELLED
                     (non-terminal, payment PAID) -> REFUNDED   [admin]

    payment_status:  PENDING -> PAID | FAILED
                     PAID -> REFUNDED

payment_status becomes PAID only through
  (a) COD delivery confirmation, or
  (b) a gateway-sourced status (sync call / notification).

Functions take an OrderState and return a new one. Persistence, locking and
side effects (stock, timeline, broadcasts) live in OrderService.
"""
from dataclasses import dataclass, replace

from django.db import models

from apps.utils.exceptions import InvalidStatusTransition, OrderNotCancellable
from .pricing import PaymentType


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


FORWARD_FLOW = [
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})
REFUNDABLE = frozenset(FORWARD_FLOW)

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


@dataclass(frozen=True)
class OrderState:
    status: str
    payment_status: str
    payment_method: str = ""

    @classmethod
    def of(cls, order):
        return cls(order.status, order.payment_status, order.payment_method)

    @property
    def is_cod(self):
        return self.payment_method == PaymentType.COD


def initial_state(payment_method) -> OrderState:
    """Every order starts PENDING/PENDING, COD included."""
    return OrderState(OrderStatus.PENDING, PaymentStatus.PENDING, payment_method)


def awaits_gateway(payment_method) -> bool:
    """
    COD orders are confirmed at delivery and never enter reconciliation;
    checkout sends the customer straight to the success view.
    """
    return payment_method != PaymentType.COD


def needs_reconciliation(state: OrderState) -> bool:
    return (
        awaits_gateway(state.payment_method)
        and state.payment_status == PaymentStatus.PENDING
        and state.status not in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)
    )


def can_cancel(state: OrderState) -> bool:
    return state.status in CANCELLABLE


def cancel(state: OrderState) -> OrderState:
    if not can_cancel(state):
        raise OrderNotCancellable(state.status)

    if state.payment_status == PaymentStatus.PAID:
        payment_status = PaymentStatus.REFUNDED
    elif state.payment_status == PaymentStatus.PENDING:
        payment_status = PaymentStatus.FAILED
    else:
        payment_status = state.payment_status
    return replace(state, status=OrderStatus.CANCELLED, payment_status=payment_status)


def advance(state: OrderState, target: str) -> OrderState:
    """
    Forward move along the fulfilment flow (skipping steps allowed, going
    back is not). Delivering a COD order settles its payment.
    """
    if target not in FORWARD_FLOW or state.status not in FORWARD_FLOW:
        raise InvalidStatusTransition(state.status, target)
    if FORWARD_FLOW.index(target) <= FORWARD_FLOW.index(state.status):
        raise InvalidStatusTransition(state.status, target)

    payment_status = state.payment_status
    if (
        target == OrderStatus.DELIVERED
        and state.is_cod
        and state.payment_status == PaymentStatus.PENDING
    ):
        payment_status = PaymentStatus.PAID
    return replace(state, status=target, payment_status=payment_status)


def refund(state: OrderState) -> OrderState:
    if state.payment_status != PaymentStatus.PAID:
        raise InvalidStatusTransition(state.payment_status, PaymentStatus.REFUNDED, axis="payment status")
    if state.status not in REFUNDABLE:
        raise InvalidStatusTransition(state.status, OrderStatus.REFUNDED)
    return replace(state, status=OrderStatus.REFUNDED, payment_status=PaymentStatus.REFUNDED)


def transition(state: OrderState, target: str) -> OrderState:
    """Admin entry point: dispatch on the requested status."""
    if target == OrderStatus.CANCELLED:
        return cancel(state)
    if target == OrderStatus.REFUNDED:
        return refund(state)
    return advance(state, target)


def apply_gateway_status(state: OrderState, reported: str):
    """
    Returns (new_state, changed). Only a PENDING payment moves; anything
    else (late notification, duplicate, refund report) leaves state as is.
    """
    if state.payment_status != PaymentStatus.PENDING:
        return state, False
    if reported not in PAYMENT_TRANSITIONS[PaymentStatus.PENDING]:
        return state, False
    return replace(state, payment_status=reported), True
