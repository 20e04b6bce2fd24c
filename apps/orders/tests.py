from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from apps.catalog.models import Product
from apps.customers.models import Address
from apps.payments.gateway import PaymentInstruction
from apps.payments.models import PaymentProvider, PaymentTransaction
from apps.store.models import Setting
from apps.utils.exceptions import PaymentGatewayError
from .lifecycle import OrderStatus, PaymentStatus
from .models import CartItem, Order, OrderCancellation, OrderTimeline
from .tasks import auto_cancel_unpaid_orders

User = get_user_model()
D = Decimal

GATEWAY = "apps.payments.services.PaymentService.get_gateway"


def va_instruction(transaction_id="tx-123", channel="bca"):
    return PaymentInstruction(
        provider=PaymentProvider.MIDTRANS,
        payment_type="bank_transfer",
        channel=channel,
        amount=D("0"),
        transaction_id=transaction_id,
        va_number="8808123456789",
        va_bank=channel.upper(),
    )


class StorefrontTestCase(APITestCase):
    """
    Cart of the worked example: A (100, sale 80, threshold 150, shipping 10)
    and B (50, shipping 5, service fee 1000).
    """

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(username="budi", email="budi@example.com", password="pass")
        self.other = User.objects.create_user(username="sari", password="pass")
        self.ops = User.objects.create_user(username="ops", password="pass", is_staff=True)
        self.client.force_authenticate(self.user)

        self.address = Address.objects.create(
            user=self.user,
            full_name="Budi Santoso",
            phone="0812-3456-7890",
            address_line1="Jl. Merdeka 1",
            city="Bandung",
            postal_code="40111",
        )
        self.product_a = Product.objects.create(
            name="Batik Shirt", price=D("100"), sale_price=D("80"), stock_quantity=10,
            free_shipping_threshold=D("150"), default_shipping_cost=D("10"),
        )
        self.product_b = Product.objects.create(
            name="Sandals", price=D("50"), stock_quantity=5,
            default_shipping_cost=D("5"), service_fee=D("1000"),
        )
        Setting.objects.create(
            key="paymentMethods",
            category=Setting.Category.PAYMENT,
            value=[
                {"id": "cod", "name": "Cash on Delivery", "type": "COD", "fee": 0},
                {"id": "bca", "name": "BCA Virtual Account", "type": "VIRTUAL_ACCOUNT", "fee": 4000},
                {"id": "qris", "name": "QRIS", "type": "QRIS", "fee": -1500},
            ],
        )

    def add_to_cart(self, product, quantity):
        response = self.client.post(
            "/api/v1/cart/items/", {"productId": str(product.id), "quantity": quantity}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        return response

    def fill_cart(self):
        self.add_to_cart(self.product_a, 2)
        self.add_to_cart(self.product_b, 1)

    def checkout(self, **data):
        payload = {"addressId": str(self.address.id), "paymentMethod": "COD"}
        payload.update(data)
        return self.client.post("/api/v1/checkout/", payload, format="json")

    def place_cod_order(self):
        self.fill_cart()
        response = self.checkout()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        return Order.objects.get(order_number=response.json()["data"]["orderNumber"])

    def place_va_order(self, mock_gateway):
        mock_gateway.return_value.charge.return_value = va_instruction()
        self.fill_cart()
        response = self.checkout(paymentMethod="VIRTUAL_ACCOUNT", paymentChannel="bca")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        return Order.objects.get(order_number=response.json()["data"]["orderNumber"])


class CartAPITests(StorefrontTestCase):
    def test_add_merges_same_variant(self):
        self.add_to_cart(self.product_a, 1)
        response = self.add_to_cart(self.product_a, 2)

        data = response.json()["data"]
        self.assertEqual(len(data["items"]), 1)
        self.assertEqual(data["items"][0]["quantity"], 3)
        self.assertEqual(data["itemCount"], 3)

    def test_add_beyond_stock_rejected(self):
        response = self.client.post(
            "/api/v1/cart/items/", {"productId": str(self.product_b.id), "quantity": 6}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "out_of_stock")

    def test_update_and_remove_item(self):
        self.add_to_cart(self.product_a, 1)
        item = CartItem.objects.get(cart__user=self.user)

        response = self.client.put(f"/api/v1/cart/items/{item.id}/", {"quantity": 4}, format="json")
        self.assertEqual(response.json()["data"]["items"][0]["quantity"], 4)

        response = self.client.delete(f"/api/v1/cart/items/{item.id}/")
        self.assertEqual(response.json()["data"]["items"], [])

    def test_cannot_touch_someone_elses_item(self):
        self.add_to_cart(self.product_a, 1)
        item = CartItem.objects.get(cart__user=self.user)

        self.client.force_authenticate(self.other)
        response = self.client.delete(f"/api/v1/cart/items/{item.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CheckoutCalculateTests(StorefrontTestCase):
    def test_preview_matches_worked_example(self):
        self.fill_cart()
        response = self.client.post("/api/v1/checkout/calculate/", {"paymentMethod": "COD"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()["data"]
        breakdown = {k: D(str(v)) for k, v in data["breakdown"].items() if k in (
            "subtotal", "discount", "shippingCost", "serviceFee", "paymentFee", "total")}
        self.assertEqual(breakdown, {
            "subtotal": D("210"),
            "discount": D("40"),
            "shippingCost": D("0"),
            "serviceFee": D("1000"),
            "paymentFee": D("0"),
            "total": D("1210"),
        })
        self.assertFalse(data["isReady"])
        self.assertEqual([e["field"] for e in data["errors"]], ["addressId"])

    def test_preview_without_threshold(self):
        Product.objects.filter(pk=self.product_a.pk).update(free_shipping_threshold=None)
        self.fill_cart()

        response = self.client.post("/api/v1/checkout/calculate/", {"paymentMethod": "COD"}, format="json")

        breakdown = response.json()["data"]["breakdown"]
        self.assertEqual(D(str(breakdown["shippingCost"])), D("10"))
        self.assertEqual(D(str(breakdown["total"])), D("1220"))

    def test_preview_payment_discount(self):
        self.fill_cart()
        response = self.client.post("/api/v1/checkout/calculate/", {"paymentMethod": "QRIS"}, format="json")

        breakdown = response.json()["data"]["breakdown"]
        self.assertEqual(D(str(breakdown["paymentFee"])), D("-1500"))
        self.assertEqual(breakdown["paymentFeeLabel"], "Discount")
        self.assertEqual(D(str(breakdown["total"])), D("-290"))

    def test_buy_now_preview(self):
        response = self.client.post(
            "/api/v1/checkout/calculate/",
            {"productId": str(self.product_b.id), "quantity": 2, "paymentMethod": "VIRTUAL_ACCOUNT", "paymentChannel": "bca"},
            format="json",
        )

        breakdown = response.json()["data"]["breakdown"]
        self.assertEqual(D(str(breakdown["total"])), D("100") + D("5") + D("1000") + D("4000"))
        self.assertEqual(breakdown["paymentLabel"], "BCA Virtual Account")


class CartCheckoutTests(StorefrontTestCase):
    def test_cod_checkout(self):
        self.fill_cart()
        response = self.checkout(notes="Leave at the gate")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["paymentMethod"], "COD")
        self.assertEqual(body["data"]["next"], "success")

        order = Order.objects.get(order_number=body["data"]["orderNumber"])
        self.assertEqual((order.status, order.payment_status), (OrderStatus.PENDING, PaymentStatus.PENDING))
        self.assertEqual(order.total, D("1210"))
        self.assertEqual(order.discount, D("40"))
        self.assertEqual(order.payment_label, "Cash on Delivery")
        self.assertEqual(order.notes, "Leave at the gate")
        self.assertEqual(order.shipping_address["city"], "Bandung")
        self.assertEqual(order.items.count(), 2)

        payment = order.payment_transactions.get()
        self.assertEqual(payment.provider, PaymentProvider.OFFLINE)
        self.assertIsNone(payment.transaction_id)

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual((self.product_a.stock_quantity, self.product_a.sales_count), (8, 2))
        self.assertEqual((self.product_b.stock_quantity, self.product_b.sales_count), (4, 1))

        self.assertFalse(CartItem.objects.filter(cart__user=self.user).exists())
        self.assertEqual(OrderTimeline.objects.filter(order=order).count(), 1)

        detail = body["data"]["order"]
        self.assertEqual(detail["shippingAddress"][0]["fullName"], "Budi Santoso")
        self.assertEqual(D(str(detail["breakdown"]["total"])), D("1210"))

    def test_checkout_selected_items_only(self):
        self.fill_cart()
        item_a = CartItem.objects.get(cart__user=self.user, product=self.product_a)

        response = self.checkout(itemIds=[str(item_a.id)])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(order_number=response.json()["data"]["orderNumber"])
        self.assertEqual(order.subtotal, D("160"))
        self.assertEqual(list(CartItem.objects.filter(cart__user=self.user).values_list("product_id", flat=True)),
                         [self.product_b.id])

    @patch(GATEWAY)
    def test_virtual_account_checkout(self, mock_gateway):
        mock_gateway.return_value.charge.return_value = va_instruction()
        self.fill_cart()

        response = self.checkout(paymentMethod="VIRTUAL_ACCOUNT", paymentChannel="bca")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        data = response.json()["data"]
        self.assertEqual(data["next"], "payment")
        self.assertEqual(data["order"]["paymentTransactions"][0]["vaNumber"], "8808123456789")
        self.assertEqual(data["order"]["paymentLabel"], "BCA Virtual Account")

        order = Order.objects.get(order_number=data["orderNumber"])
        self.assertEqual(order.transaction_id, "tx-123")
        self.assertEqual(order.payment_fee, D("4000"))
        self.assertEqual(order.total, D("5210"))
        mock_gateway.return_value.charge.assert_called_once()

    @patch(GATEWAY)
    def test_gateway_failure_rolls_everything_back(self, mock_gateway):
        mock_gateway.return_value.charge.side_effect = PaymentGatewayError()
        self.fill_cart()

        response = self.checkout(paymentMethod="QRIS")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.json()["code"], "gateway_error")
        self.assertFalse(Order.objects.exists())
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock_quantity, 10)
        self.assertEqual(CartItem.objects.filter(cart__user=self.user).count(), 2)

    def test_empty_checkout_reports_first_problem(self):
        response = self.client.post("/api/v1/checkout/", {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        body = response.json()
        self.assertEqual(body["code"], "validation_error")
        self.assertEqual(body["error"], "Please select at least one item")
        self.assertEqual(
            [d["field"] for d in body["details"]], ["items", "addressId", "paymentMethod"]
        )

    def test_virtual_account_requires_bank(self):
        self.fill_cart()
        response = self.checkout(paymentMethod="VIRTUAL_ACCOUNT")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["error"], "Virtual account bank is required")

    def test_foreign_address_rejected(self):
        foreign = Address.objects.create(
            user=self.other, full_name="Sari", phone="1", address_line1="x", city="Solo", postal_code="1"
        )
        self.fill_cart()

        response = self.checkout(addressId=str(foreign.id))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["details"], [{"field": "addressId", "message": "Invalid address"}])

    def test_stock_checked_at_checkout(self):
        self.fill_cart()
        Product.objects.filter(pk=self.product_b.pk).update(stock_quantity=0)

        response = self.checkout()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "out_of_stock")
        self.assertFalse(Order.objects.exists())


class BuyNowTests(StorefrontTestCase):
    def buy_now(self, **data):
        payload = {
            "productId": str(self.product_a.id),
            "quantity": 2,
            "addressId": str(self.address.id),
            "paymentMethod": "COD",
            "color": "Navy",
            "size": "L",
        }
        payload.update(data)
        return self.client.post("/api/v1/checkout/buy-now/", payload, format="json")

    def test_buy_now_leaves_cart_alone(self):
        self.add_to_cart(self.product_b, 1)

        response = self.buy_now()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        order = Order.objects.get(order_number=response.json()["data"]["orderNumber"])
        item = order.items.get()
        self.assertEqual((item.quantity, item.unit_price, item.selected_size), (2, D("80"), "L"))
        # 160 >= threshold 150
        self.assertEqual(order.shipping_cost, D("0"))
        self.assertEqual(order.total, D("160"))
        self.assertEqual(CartItem.objects.filter(cart__user=self.user).count(), 1)

    def test_buy_now_requires_product(self):
        response = self.buy_now(productId="")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["error"], "Product ID is required")

    def test_buy_now_quantity_must_be_positive(self):
        response = self.buy_now(quantity=0)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["details"][0]["field"], "quantity")

    def test_buy_now_out_of_stock(self):
        response = self.buy_now(quantity=11)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "out_of_stock")


class OrderReadTests(StorefrontTestCase):
    def test_list_and_detail(self):
        order = self.place_cod_order()

        response = self.client.get("/api/v1/orders/")
        self.assertEqual([o["orderNumber"] for o in response.json()["data"]], [order.order_number])
        self.assertEqual(response.json()["data"][0]["itemCount"], 2)

        response = self.client.get(f"/api/v1/orders/{order.order_number}/")
        data = response.json()["data"]
        self.assertEqual(len(data["items"]), 2)
        self.assertEqual(len(data["shippingAddress"]), 1)
        self.assertTrue(data["canCancel"])
        self.assertIn("free shipping", data["breakdown"]["shippingReason"])

    def test_other_customers_order_is_not_found(self):
        order = self.place_cod_order()
        self.client.force_authenticate(self.other)

        response = self.client.get(f"/api/v1/orders/{order.order_number}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.put(f"/api/v1/orders/{order.order_number}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.json()["success"])


class CancelOrderTests(StorefrontTestCase):
    def test_customer_cancel_restores_stock(self):
        order = self.place_cod_order()

        response = self.client.put(
            f"/api/v1/orders/{order.order_number}/cancel/", {"reason": "Changed my mind"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()["data"]
        self.assertEqual((data["status"], data["paymentStatus"]), (OrderStatus.CANCELLED, PaymentStatus.FAILED))

        self.product_a.refresh_from_db()
        self.assertEqual((self.product_a.stock_quantity, self.product_a.sales_count), (10, 0))

        cancellation = OrderCancellation.objects.get(order=order)
        self.assertEqual(cancellation.cancelled_by, OrderCancellation.CancelledBy.CUSTOMER)
        self.assertEqual(cancellation.reason, "Changed my mind")

    def test_cancel_twice_is_rejected(self):
        order = self.place_cod_order()
        self.client.put(f"/api/v1/orders/{order.order_number}/cancel/", {}, format="json")

        response = self.client.put(f"/api/v1/orders/{order.order_number}/cancel/", {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json(), {
            "success": False,
            "error": "Cannot cancel order with status: CANCELLED",
            "code": "order_not_cancellable",
        })

    def test_shipped_order_cannot_be_cancelled(self):
        order = self.place_cod_order()
        Order.objects.filter(pk=order.pk).update(status=OrderStatus.SHIPPED)

        response = self.client.put(f"/api/v1/orders/{order.order_number}/cancel/", {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.SHIPPED)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock_quantity, 8)


class AdminStatusTests(StorefrontTestCase):
    def set_status(self, order, target):
        return self.client.put(
            f"/api/v1/admin/orders/{order.order_number}/status/", {"status": target}, format="json"
        )

    def test_customers_cannot_change_status(self):
        order = self.place_cod_order()
        self.assertEqual(self.set_status(order, OrderStatus.PROCESSING).status_code, status.HTTP_403_FORBIDDEN)

    def test_cod_delivery_settles_payment(self):
        order = self.place_cod_order()
        self.client.force_authenticate(self.ops)

        for target in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            response = self.set_status(order, target)
            self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)

        order.refresh_from_db()
        self.assertEqual((order.status, order.payment_status), (OrderStatus.DELIVERED, PaymentStatus.PAID))
        self.assertIsNotNone(order.paid_at)
        self.assertIsNotNone(order.delivered_at)
        self.assertEqual(OrderTimeline.objects.filter(order=order).count(), 4)

    def test_backwards_move_rejected(self):
        order = self.place_cod_order()
        self.client.force_authenticate(self.ops)
        self.set_status(order, OrderStatus.SHIPPED)

        response = self.set_status(order, OrderStatus.PROCESSING)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()["code"], "invalid_transition")

    def test_ops_cancel_is_recorded(self):
        order = self.place_cod_order()
        self.client.force_authenticate(self.ops)

        response = self.set_status(order, OrderStatus.CANCELLED)

        self.assertEqual(response.json()["data"]["status"], OrderStatus.CANCELLED)
        self.assertEqual(OrderCancellation.objects.get(order=order).cancelled_by, OrderCancellation.CancelledBy.OPS)

    def test_refund_requires_paid_order(self):
        order = self.place_cod_order()
        self.client.force_authenticate(self.ops)

        self.assertEqual(self.set_status(order, OrderStatus.REFUNDED).status_code, status.HTTP_400_BAD_REQUEST)

        self.set_status(order, OrderStatus.DELIVERED)
        response = self.set_status(order, OrderStatus.REFUNDED)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        order.refresh_from_db()
        self.assertEqual((order.status, order.payment_status), (OrderStatus.REFUNDED, PaymentStatus.REFUNDED))


class SyncPaymentTests(StorefrontTestCase):
    @patch(GATEWAY)
    def test_sync_marks_paid(self, mock_gateway):
        order = self.place_va_order(mock_gateway)
        mock_gateway.return_value.get_status.return_value = {
            "transaction_id": "tx-123", "transaction_status": "settlement", "status_code": "200",
        }

        response = self.client.post(f"/api/v1/orders/{order.order_number}/sync-payment/")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.content)
        data = response.json()["data"]
        self.assertEqual(data["paymentStatus"], PaymentStatus.PAID)
        self.assertTrue(data["synced"])
        self.assertEqual(data["order"]["paymentStatus"], PaymentStatus.PAID)
        mock_gateway.return_value.get_status.assert_called_once_with("tx-123")

        order.refresh_from_db()
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(PaymentTransaction.objects.get(order=order).status, PaymentStatus.PAID)

    @patch(GATEWAY)
    def test_sync_pending_changes_nothing(self, mock_gateway):
        order = self.place_va_order(mock_gateway)
        mock_gateway.return_value.get_status.return_value = {"transaction_status": "pending"}

        response = self.client.post(f"/api/v1/orders/{order.order_number}/sync-payment/")

        self.assertEqual(response.json()["data"]["paymentStatus"], PaymentStatus.PENDING)
        order.refresh_from_db()
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)

    def test_sync_without_gateway_transaction(self):
        order = self.place_cod_order()

        response = self.client.post(f"/api/v1/orders/{order.order_number}/sync-payment/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()["error"], "Payment transaction not found or no transaction ID")


class AutoCancelTaskTests(StorefrontTestCase):
    def age(self, order, minutes=1441):
        Order.objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(minutes=minutes))

    @patch(GATEWAY)
    def test_unpaid_gateway_order_is_cancelled(self, mock_gateway):
        order = self.place_va_order(mock_gateway)
        self.age(order)
        mock_gateway.return_value.get_status.return_value = {"transaction_status": "pending"}

        auto_cancel_unpaid_orders()

        order.refresh_from_db()
        self.assertEqual((order.status, order.payment_status), (OrderStatus.CANCELLED, PaymentStatus.FAILED))
        self.assertEqual(OrderCancellation.objects.get(order=order).cancelled_by, OrderCancellation.CancelledBy.SYSTEM)

    @patch(GATEWAY)
    def test_order_paid_meanwhile_survives(self, mock_gateway):
        order = self.place_va_order(mock_gateway)
        self.age(order)
        mock_gateway.return_value.get_status.return_value = {"transaction_status": "settlement"}

        auto_cancel_unpaid_orders()

        order.refresh_from_db()
        self.assertEqual((order.status, order.payment_status), (OrderStatus.PENDING, PaymentStatus.PAID))

    @patch(GATEWAY)
    def test_recent_and_cod_orders_untouched(self, mock_gateway):
        recent = self.place_va_order(mock_gateway)
        self.age(recent, minutes=10)
        cod = self.place_cod_order()
        self.age(cod)

        auto_cancel_unpaid_orders()

        self.assertEqual(Order.objects.filter(status=OrderStatus.CANCELLED).count(), 0)
        mock_gateway.return_value.get_status.assert_not_called()
