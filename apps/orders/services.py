import logging
from collections import OrderedDict

from django.db import transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest
from rest_framework.exceptions import NotFound, ValidationError

from apps.catalog.models import Product
from apps.customers.models import Address
from apps.store.services import StoreSettingsService
from apps.utils.exceptions import BusinessLogicException, OutOfStock
from apps.utils.utils import generate_order_number, now
from . import lifecycle
from .lifecycle import OrderStatus, PaymentStatus
from .models import Cart, CartItem, Order, OrderCancellation, OrderItem, OrderTimeline
from .session import SOURCE_BUY_NOW, SOURCE_CART, CheckoutSession
from .shipping import OrderLine
from .signals import order_placed, order_status_changed

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 10


def _raise_field_errors(errors):
    """[{field, message}] -> DRF ValidationError keyed by field, order kept."""
    detail = OrderedDict()
    for error in errors:
        detail.setdefault(error.get("field") or "non_field_errors", []).append(error["message"])
    raise ValidationError(detail)


def _positive_quantity(value):
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        quantity = 0
    if quantity < 1:
        _raise_field_errors([{"field": "quantity", "message": "Quantity must be positive"}])
    return quantity


def _check_available(product, quantity):
    if not product.is_active:
        raise BusinessLogicException(
            f"Product {product.name} is no longer available", code="product_unavailable"
        )
    if quantity > product.stock_quantity:
        raise OutOfStock(product.name, product.stock_quantity)


class CartService:
    """
    Minimal cart glue: the checkout consumes a user-selected subset of it.
    """

    @staticmethod
    def get_cart(user) -> Cart:
        cart, _ = Cart.objects.get_or_create(user=user)
        return cart

    @staticmethod
    def add_item(user, product_id, quantity=1, color="", size="", image_url="") -> CartItem:
        if not product_id:
            _raise_field_errors([{"field": "productId", "message": "Product ID is required"}])
        quantity = _positive_quantity(quantity)

        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise NotFound("Product not found")

        cart = CartService.get_cart(user)
        item, created = CartItem.objects.get_or_create(
            cart=cart,
            product=product,
            selected_color=color or "",
            selected_size=size or "",
            defaults={"quantity": 0, "selected_image_url": image_url or ""},
        )
        _check_available(product, item.quantity + quantity)
        item.quantity += quantity
        item.save(update_fields=["quantity"])
        return item

    @staticmethod
    def update_item(user, item_id, quantity) -> CartItem:
        quantity = _positive_quantity(quantity)
        item = CartService._get_item(user, item_id)
        _check_available(item.product, quantity)
        item.quantity = quantity
        item.save(update_fields=["quantity"])
        return item

    @staticmethod
    def remove_item(user, item_id):
        CartService._get_item(user, item_id).delete()

    @staticmethod
    def _get_item(user, item_id) -> CartItem:
        try:
            return CartItem.objects.select_related("product").get(id=item_id, cart__user=user)
        except (CartItem.DoesNotExist, ValueError, TypeError):
            raise NotFound("Cart item not found")

    @staticmethod
    def selected_items(user, item_ids=None):
        items = CartItem.objects.select_related("product").filter(cart__user=user)
        if item_ids:
            items = items.filter(id__in=[str(i) for i in item_ids])
        return list(items)

    @staticmethod
    def lines_for(items):
        return [
            OrderLine.from_product(
                item.product,
                item.quantity,
                color=item.selected_color,
                size=item.selected_size,
                image_url=item.selected_image_url,
            )
            for item in items
        ]


class CheckoutService:
    """
    Turns a checkout request into a CheckoutSession, prices it, and places
    the order atomically.
    """

    @staticmethod
    def build_session(user, data: dict, buy_now=False) -> CheckoutSession:
        session = (
            CheckoutSession(source=SOURCE_BUY_NOW if buy_now else SOURCE_CART)
            .with_address(data.get("addressId"))
            .with_payment(data.get("paymentMethod"), data.get("paymentChannel"))
            .with_notes(data.get("notes"))
        )

        if buy_now:
            product_id = data.get("productId")
            if not product_id:
                _raise_field_errors([{"field": "productId", "message": "Product ID is required"}])
            quantity = _positive_quantity(data.get("quantity"))
            product = Product.objects.filter(pk=product_id).first()
            if product is None:
                raise NotFound("Product not found")
            _check_available(product, quantity)
            line = OrderLine.from_product(
                product, quantity,
                color=data.get("color"), size=data.get("size"), image_url=data.get("imageUrl"),
            )
            return session.with_lines([line])

        items = CartService.selected_items(user, data.get("itemIds"))
        for item in items:
            _check_available(item.product, item.quantity)
        return session.with_lines(CartService.lines_for(items), cart_item_ids=[i.id for i in items])

    @staticmethod
    def preview(session: CheckoutSession):
        return session.quote(
            StoreSettingsService.get_payment_catalog(),
            StoreSettingsService.get_global_shipping_settings(),
        )

    @staticmethod
    def generate_unique_order_number():
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order_number = generate_order_number()
            if not Order.objects.filter(order_number=order_number).exists():
                return order_number
        logger.error(f"No free order number after {ORDER_NUMBER_ATTEMPTS} attempts")
        raise BusinessLogicException("Failed to generate order number", code="order_number_unavailable")

    @staticmethod
    def _locked_lines(session: CheckoutSession):
        """
        Re-read every product under a row lock and rebuild the lines from
        live prices, keeping the chosen quantity and variant.
        """
        ids = [line.product_id for line in session.lines]
        products = {str(pk): p for pk, p in Product.objects.select_for_update().in_bulk(ids).items()}

        requested = {}
        for line in session.lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

        lines = []
        for line in session.lines:
            product = products.get(line.product_id)
            if product is None:
                raise BusinessLogicException(f"Item {line.product_id} is no longer available.")
            _check_available(product, requested[line.product_id])
            lines.append(OrderLine.from_product(
                product, line.quantity, color=line.color, size=line.size, image_url=line.image_url,
            ))
        return lines

    @staticmethod
    def place_order(user, session: CheckoutSession) -> Order:
        """
        All-or-nothing: order row, items, stock decrement, payment
        instruction and cart cleanup commit together or not at all.
        """
        errors = session.validation_errors()
        if errors:
            _raise_field_errors(errors)

        address = Address.objects.filter(id=session.address_id, user=user).first()
        if address is None:
            _raise_field_errors([{"field": "addressId", "message": "Invalid address"}])

        from apps.payments.services import PaymentService

        catalog = StoreSettingsService.get_payment_catalog()
        global_shipping = StoreSettingsService.get_global_shipping_settings()
        resolved_payment = catalog.resolve(session.payment)

        with transaction.atomic():
            lines = CheckoutService._locked_lines(session)
            locked_session = session.with_lines(lines, cart_item_ids=session.cart_item_ids)
            breakdown = locked_session.quote(catalog, global_shipping)
            if breakdown.is_empty:
                _raise_field_errors([{"field": "items", "message": "Please select at least one item"}])

            state = lifecycle.initial_state(session.payment.method)
            order = Order.objects.create(
                order_number=CheckoutService.generate_unique_order_number(),
                user=user,
                status=state.status,
                payment_status=state.payment_status,
                payment_method=session.payment.method,
                payment_channel=session.payment.channel or "",
                payment_label=resolved_payment.label,
                subtotal=breakdown.subtotal,
                discount=breakdown.discount,
                shipping_cost=breakdown.shipping_cost,
                service_fee=breakdown.service_fee,
                payment_fee=breakdown.payment_fee,
                shipping_discount=breakdown.shipping_discount,
                voucher_discount=breakdown.voucher_discount,
                shipping_reason=breakdown.shipping_reason[:255],
                shipping_address=address.as_dict(),
                notes=session.notes,
            )
            OrderItem.objects.bulk_create([OrderItem.from_line(order, line) for line in lines])

            for line in lines:
                Product.objects.filter(pk=line.product_id).update(
                    stock_quantity=F("stock_quantity") - line.quantity,
                    sales_count=F("sales_count") + line.quantity,
                )

            payment = PaymentService.create_payment(order)
            if payment.transaction_id:
                order.transaction_id = payment.transaction_id
                order.save(update_fields=["transaction_id", "updated_at"])

            if session.source == SOURCE_CART and session.cart_item_ids:
                CartItem.objects.filter(id__in=session.cart_item_ids, cart__user=user).delete()

            OrderTimeline.objects.create(
                order=order,
                status=order.status,
                payment_status=order.payment_status,
                note="Order placed.",
                created_by=user,
            )
            order_placed.send(sender=Order, order=order)

        logger.info(
            f"Order placed: total={order.total} method={order.payment_method} items={len(lines)}",
            extra={"order_number": order.order_number, "user_id": user.pk},
        )
        return order


class OrderService:

    @staticmethod
    def get_for_user(user, order_number) -> Order:
        try:
            return (
                Order.objects.prefetch_related("items", "payment_transactions")
                .get(order_number=order_number, user=user)
            )
        except Order.DoesNotExist:
            raise NotFound("Order not found")

    @staticmethod
    def _lock(order_number) -> Order:
        try:
            return Order.objects.select_for_update().get(order_number=order_number)
        except Order.DoesNotExist:
            raise NotFound("Order not found")

    @staticmethod
    def _record(order, old_state, note, user=None, source="service"):
        OrderTimeline.objects.create(
            order=order,
            status=order.status,
            payment_status=order.payment_status,
            note=note,
            created_by=user,
        )
        order_status_changed.send(
            sender=Order,
            order=order,
            old_status=old_state.status,
            new_status=order.status,
            old_payment_status=old_state.payment_status,
            new_payment_status=order.payment_status,
            source=source,
        )

    @staticmethod
    def _restore_stock(order):
        for item in order.items.all():
            Product.objects.filter(pk=item.product_id).update(
                stock_quantity=F("stock_quantity") + item.quantity,
                sales_count=Greatest(F("sales_count") - item.quantity, Value(0)),
            )

    @staticmethod
    @transaction.atomic
    def cancel_order(order_number, reason="", cancelled_by=OrderCancellation.CancelledBy.CUSTOMER, user=None):
        """
        PENDING/PROCESSING only. Stock goes back; a paid order is marked
        refunded, an unpaid one failed.
        """
        order = OrderService._lock(order_number)
        old_state = order.state
        new_state = lifecycle.cancel(old_state)

        OrderService._restore_stock(order)

        order.status = new_state.status
        order.payment_status = new_state.payment_status
        order.cancelled_at = now()
        order.save(update_fields=["status", "payment_status", "cancelled_at", "updated_at"])

        OrderCancellation.objects.create(
            order=order,
            reason=reason,
            cancelled_by=cancelled_by,
            cancelled_by_user=user,
        )
        OrderService._record(order, old_state, f"Cancelled: {reason}" if reason else "Cancelled.", user, "cancel")
        logger.info(
            f"Order cancelled by {cancelled_by}: {old_state.status}/{old_state.payment_status} -> "
            f"{order.status}/{order.payment_status}",
            extra={"order_number": order.order_number},
        )
        return order

    @staticmethod
    @transaction.atomic
    def update_status(order_number, target, user=None, note=""):
        """
        Admin transition: forward fulfilment moves, cancel, or refund.
        """
        if target == OrderStatus.CANCELLED:
            return OrderService.cancel_order(
                order_number, reason=note, cancelled_by=OrderCancellation.CancelledBy.OPS, user=user
            )

        order = OrderService._lock(order_number)
        old_state = order.state
        new_state = lifecycle.transition(old_state, target)

        fields = ["status", "payment_status", "updated_at"]
        order.status = new_state.status
        order.payment_status = new_state.payment_status
        if new_state.status == OrderStatus.DELIVERED:
            order.delivered_at = now()
            fields.append("delivered_at")
        if new_state.payment_status == PaymentStatus.PAID and old_state.payment_status != PaymentStatus.PAID:
            # COD settled at delivery
            order.paid_at = now()
            fields.append("paid_at")
        order.save(update_fields=fields)

        OrderService._record(order, old_state, note or f"Status set to {target}.", user, "admin")
        logger.info(
            f"Order status {old_state.status} -> {order.status} (payment {order.payment_status})",
            extra={"order_number": order.order_number},
        )
        return order

    @staticmethod
    @transaction.atomic
    def apply_gateway_payment_status(order_number, reported, transaction_id=None, source="sync"):
        """
        Returns (order, changed). Only a PENDING payment moves.
        """
        order = OrderService._lock(order_number)
        old_state = order.state
        new_state, changed = lifecycle.apply_gateway_status(old_state, reported)

        if not changed:
            if reported != old_state.payment_status:
                logger.info(
                    f"Ignoring gateway status {reported} for payment {old_state.payment_status} ({source})",
                    extra={"order_number": order.order_number},
                )
            return order, False

        fields = ["payment_status", "updated_at"]
        order.payment_status = new_state.payment_status
        if new_state.payment_status == PaymentStatus.PAID:
            order.paid_at = now()
            fields.append("paid_at")
        if transaction_id:
            order.transaction_id = transaction_id
            fields.append("transaction_id")
        order.save(update_fields=fields)

        OrderService._record(order, old_state, f"Payment {order.payment_status.lower()} ({source}).", source=source)
        logger.info(
            f"Payment {old_state.payment_status} -> {order.payment_status} via {source}",
            extra={"order_number": order.order_number},
        )
        return order, True
