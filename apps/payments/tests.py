import itertools
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from asgiref.sync import async_to_sync, sync_to_async
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from apps.accounts.middleware import TicketAuthMiddleware
from apps.catalog.models import Product
from apps.orders.lifecycle import OrderStatus, PaymentStatus
from apps.orders.models import Order, OrderItem, OrderTimeline
from apps.orders.pricing import PaymentType
from apps.orders.services import OrderService
from apps.utils.exceptions import BusinessLogicException, PaymentGatewayError
from .gateway import (
    MidtransGateway,
    map_transaction_status,
    notification_signature,
    verify_notification_signature,
)
from .models import PaymentProvider, PaymentTransaction, WebhookLog
from .realtime import broadcast_order_update, order_event, order_group_name
from .routing import websocket_urlpatterns
from .services import PaymentService
from .tasks import reconcile_pending_payments

User = get_user_model()
D = Decimal

GATEWAY = "apps.payments.services.PaymentService.get_gateway"

_order_numbers = itertools.count(1)


def fake_response(status_code=200, data=None):
    response = Mock(status_code=status_code, ok=status_code < 400)
    response.json.return_value = data if data is not None else {}
    if status_code >= 500:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    return response


def make_order(user, method=PaymentType.VIRTUAL_ACCOUNT, channel="bca", transaction_id="tx-1", **fields):
    """5210 VA order (two lines, service fee, bank fee) with its gateway transaction."""
    values = dict(
        order_number=f"ORD-TEST-{next(_order_numbers):05d}",
        user=user,
        payment_method=method,
        payment_channel=channel or "",
        subtotal=D("210"),
        discount=D("40"),
        service_fee=D("1000"),
        payment_fee=D("4000"),
        shipping_address={
            "fullName": "Budi Santoso",
            "phone": "+62 812-3456-7890",
            "addressLine1": "Jl. Merdeka 1",
            "city": "Bandung",
            "postalCode": "40111",
            "country": "Indonesia",
        },
        transaction_id=transaction_id,
    )
    values.update(fields)
    order = Order.objects.create(**values)

    shirt = Product.objects.create(name="Batik Shirt", price=D("100"), sale_price=D("80"), stock_quantity=10)
    sandals = Product.objects.create(name="Sandals", price=D("50"), stock_quantity=10)
    OrderItem.objects.create(
        order=order, product=shirt, product_name=shirt.name,
        base_price=D("100"), unit_price=D("80"), quantity=2, total=D("160"),
    )
    OrderItem.objects.create(
        order=order, product=sandals, product_name=sandals.name,
        base_price=D("50"), unit_price=D("50"), quantity=1, total=D("50"),
    )

    if method == PaymentType.COD:
        provider, payment_type = PaymentProvider.OFFLINE, "cod"
    else:
        provider, payment_type = PaymentProvider.MIDTRANS, "bank_transfer"
    PaymentTransaction.objects.create(
        order=order, provider=provider, payment_type=payment_type, channel=channel,
        amount=order.total, transaction_id=transaction_id,
    )
    return order


class GatewayHelperTests(SimpleTestCase):
    def test_status_mapping(self):
        self.assertEqual(map_transaction_status("settlement"), PaymentStatus.PAID)
        self.assertEqual(map_transaction_status("CAPTURE"), PaymentStatus.PAID)
        self.assertEqual(map_transaction_status("expire"), PaymentStatus.FAILED)
        self.assertEqual(map_transaction_status("deny"), PaymentStatus.FAILED)
        self.assertEqual(map_transaction_status("refund"), PaymentStatus.REFUNDED)
        self.assertEqual(map_transaction_status("pending"), PaymentStatus.PENDING)
        self.assertEqual(map_transaction_status(None), PaymentStatus.PENDING)

    def test_signature_verification(self):
        payload = {"order_id": "ORD-1", "status_code": "200", "gross_amount": "5210.00"}
        payload["signature_key"] = notification_signature("ORD-1", "200", "5210.00", "secret")

        self.assertTrue(verify_notification_signature(payload, server_key="secret"))
        self.assertFalse(verify_notification_signature(payload, server_key="other"))
        self.assertFalse(verify_notification_signature(dict(payload, gross_amount="1.00"), server_key="secret"))
        self.assertFalse(verify_notification_signature(payload, server_key=""))

    def test_bank_lookup(self):
        self.assertEqual(MidtransGateway.bank_for("BCA"), "bca")
        with self.assertRaises(BusinessLogicException) as ctx:
            MidtransGateway.bank_for("XYZ")
        self.assertEqual(ctx.exception.code, "unsupported_bank")


class MidtransGatewayTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="budi", email="budi@example.com", password="pass")
        self.session = Mock()
        self.gateway = MidtransGateway(
            server_key="SB-Mid-server-abc", base_url="https://api.midtrans.test", session=self.session
        )

    def sent_payload(self):
        return self.session.request.call_args.kwargs["json"]

    def test_item_details_include_fees(self):
        order = make_order(self.user)

        items = MidtransGateway.item_details(order)

        by_id = {i["id"]: (i["price"], i["quantity"]) for i in items}
        self.assertEqual(by_id.pop("SERVICE_FEE"), (1000, 1))
        self.assertEqual(by_id.pop("PAYMENT_FEE"), (4000, 1))
        # zero shipping and no discounts: no extra lines
        self.assertEqual(sorted(by_id.values()), [(50, 1), (80, 2)])
        self.assertEqual(sum(i["price"] * i["quantity"] for i in items), 5210)

    def test_payment_discount_is_a_negative_line(self):
        order = make_order(self.user, method=PaymentType.QRIS, channel=None, payment_fee=D("-1500"))

        items = {i["id"]: i["price"] for i in MidtransGateway.item_details(order)}

        self.assertEqual(items["PAYMENT_FEE"], -1500)
        self.assertNotIn("SHIPPING", items)

    def test_charge_virtual_account(self):
        order = make_order(self.user, transaction_id=None)
        self.session.request.return_value = fake_response(201, {
            "status_code": "201",
            "transaction_id": "tx-va-1",
            "transaction_status": "pending",
            "gross_amount": "5210.00",
            "va_numbers": [{"bank": "bca", "va_number": "12345678901"}],
            "expiry_time": "2026-10-20 10:00:00",
        })

        instruction = self.gateway.charge(order)

        self.assertEqual(instruction.transaction_id, "tx-va-1")
        self.assertEqual((instruction.va_bank, instruction.va_number), ("BCA", "12345678901"))
        self.assertEqual(instruction.status, PaymentStatus.PENDING)
        self.assertEqual(instruction.amount, D("5210"))
        self.assertIsNotNone(instruction.expires_at.tzinfo)

        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("POST", "https://api.midtrans.test/v2/charge"))
        self.assertEqual(self.session.request.call_args.kwargs["auth"], ("SB-Mid-server-abc", ""))
        payload = self.sent_payload()
        self.assertEqual(payload["payment_type"], "bank_transfer")
        self.assertEqual(payload["bank_transfer"], {"bank": "bca"})
        self.assertEqual(payload["transaction_details"], {"order_id": order.order_number, "gross_amount": 5210})
        self.assertEqual(payload["customer_details"]["first_name"], "Budi")
        self.assertEqual(payload["customer_details"]["phone"], "6281234567890")
        self.assertEqual(payload["customer_details"]["shipping_address"]["country_code"], "IDN")

    def test_charge_qris(self):
        order = make_order(self.user, method=PaymentType.QRIS, channel=None, transaction_id=None)
        self.session.request.return_value = fake_response(201, {
            "status_code": "201",
            "transaction_id": "tx-qr-1",
            "transaction_status": "pending",
            "gross_amount": "5210.00",
            "qr_string": "00020101021126",
            "actions": [
                {"name": "generate-qr-code", "url": "https://api.midtrans.test/qr/tx-qr-1"},
                {"name": "deeplink-redirect", "url": "https://pay.test/tx-qr-1"},
            ],
        })

        instruction = self.gateway.charge(order)

        self.assertEqual(self.sent_payload()["payment_type"], "qris")
        self.assertNotIn("bank_transfer", self.sent_payload())
        self.assertEqual(instruction.qr_string, "00020101021126")
        self.assertEqual(instruction.qr_image_url, "https://api.midtrans.test/qr/tx-qr-1")
        self.assertEqual(instruction.payment_url, "https://pay.test/tx-qr-1")

    def test_rejected_charge(self):
        order = make_order(self.user, transaction_id=None)
        self.session.request.return_value = fake_response(200, {
            "status_code": "406", "status_message": "Duplicate order ID",
        })

        with self.assertRaises(PaymentGatewayError) as ctx:
            self.gateway.charge(order)
        self.assertEqual(ctx.exception.code, "charge_rejected")
        self.assertEqual(ctx.exception.message, "Duplicate order ID")

    def test_client_error(self):
        self.session.request.return_value = fake_response(401, {"status_message": "Unknown merchant"})

        with self.assertRaises(PaymentGatewayError) as ctx:
            self.gateway.get_status("tx-1")
        self.assertEqual(ctx.exception.message, "Unknown merchant")

    def test_network_failure(self):
        self.session.request.side_effect = requests.ConnectionError("down")

        with self.assertRaises(PaymentGatewayError) as ctx:
            self.gateway.get_status("tx-1")
        self.assertEqual(ctx.exception.code, "gateway_error")

    def test_server_error(self):
        self.session.request.return_value = fake_response(503)

        with self.assertRaises(PaymentGatewayError):
            self.gateway.get_status("tx-1")

    def test_unconfigured_gateway(self):
        gateway = MidtransGateway(server_key="", session=self.session)

        with self.assertRaises(PaymentGatewayError) as ctx:
            gateway.get_status("tx-1")
        self.assertEqual(ctx.exception.code, "gateway_not_configured")
        self.session.request.assert_not_called()

    def test_status_lookup(self):
        self.session.request.return_value = fake_response(200, {"transaction_status": "settlement"})

        data = self.gateway.get_status("tx-1")

        self.assertEqual(data["transaction_status"], "settlement")
        self.assertEqual(
            self.session.request.call_args.args, ("GET", "https://api.midtrans.test/v2/tx-1/status")
        )


class MidtransWebhookTests(APITestCase):
    url = "/api/v1/payments/midtrans/"

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(username="budi", password="pass")
        self.order = make_order(self.user)

    def notification(self, transaction_status="settlement", status_code="200", order_id=None, **extra):
        order_id = order_id or self.order.order_number
        payload = {
            "order_id": order_id,
            "transaction_id": "tx-1",
            "transaction_status": transaction_status,
            "status_code": status_code,
            "gross_amount": "5210.00",
            "signature_key": notification_signature(order_id, status_code, "5210.00", settings.MIDTRANS_SERVER_KEY),
        }
        payload.update(extra)
        return payload

    def test_settlement_marks_order_paid(self):
        response = self.client.post(self.url, self.notification(), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["data"], {
            "orderNumber": self.order.order_number, "paymentStatus": PaymentStatus.PAID,
        })
        self.order.refresh_from_db()
        self.assertEqual((self.order.status, self.order.payment_status), (OrderStatus.PENDING, PaymentStatus.PAID))
        self.assertIsNotNone(self.order.paid_at)
        self.assertEqual(PaymentTransaction.objects.get(order=self.order).status, PaymentStatus.PAID)
        self.assertTrue(WebhookLog.objects.get().is_processed)
        self.assertEqual(OrderTimeline.objects.filter(order=self.order).count(), 1)

    def test_duplicate_notification_is_ignored(self):
        self.client.post(self.url, self.notification(), format="json")

        response = self.client.post(self.url, self.notification(), format="json")

        self.assertEqual(response.json(), {"success": True, "message": "Already processed"})
        self.assertEqual(WebhookLog.objects.count(), 1)
        self.assertEqual(OrderTimeline.objects.filter(order=self.order).count(), 1)

    def test_invalid_signature_is_rejected(self):
        response = self.client.post(self.url, self.notification(signature_key="forged"), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PENDING)
        self.assertFalse(WebhookLog.objects.exists())

    def test_unknown_order(self):
        response = self.client.post(self.url, self.notification(order_id="ORD-NOPE"), format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(WebhookLog.objects.exists())

    def test_missing_order_id(self):
        response = self.client.post(self.url, {"transaction_status": "settlement"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_expiry_fails_payment_and_late_settlement_is_ignored(self):
        self.client.post(self.url, self.notification("expire", status_code="407"), format="json")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)

        response = self.client.post(self.url, self.notification(), format="json")

        self.assertEqual(response.json()["data"]["paymentStatus"], PaymentStatus.FAILED)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.paid_at)


class PaymentServiceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="budi", password="pass")

    def test_cod_payment_needs_no_gateway(self):
        order = make_order(self.user, method=PaymentType.COD, channel="COD", transaction_id=None)
        order.payment_transactions.all().delete()

        with patch(GATEWAY) as mock_gateway:
            payment = PaymentService.create_payment(order)

        mock_gateway.assert_not_called()
        self.assertEqual(payment.provider, PaymentProvider.OFFLINE)
        self.assertEqual(payment.amount, order.total)
        self.assertTrue(payment.instructions)

    def test_unsupported_method(self):
        order = make_order(self.user, method=PaymentType.CREDIT_CARD, channel=None)

        with self.assertRaises(BusinessLogicException) as ctx:
            PaymentService.create_payment(order)
        self.assertEqual(ctx.exception.code, "unsupported_payment_method")

    @patch(GATEWAY)
    def test_sync_uses_latest_gateway_transaction(self, mock_gateway):
        order = make_order(self.user)
        mock_gateway.return_value.get_status.return_value = {"transaction_status": "expire"}

        order, reported, synced = PaymentService.sync_payment_status(order)

        self.assertEqual(reported, PaymentStatus.FAILED)
        self.assertTrue(synced)
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(PaymentTransaction.objects.get(order=order).raw_response, {"transaction_status": "expire"})

    def test_pending_gateway_orders(self):
        waiting = make_order(self.user)
        make_order(self.user, method=PaymentType.COD, channel="COD", transaction_id=None)
        make_order(self.user, transaction_id="tx-2", payment_status=PaymentStatus.PAID)
        make_order(self.user, transaction_id="tx-3", status=OrderStatus.CANCELLED)

        self.assertEqual(list(PaymentService.pending_gateway_orders()), [waiting])


class ReconcileTaskTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="budi", password="pass")

    @patch(GATEWAY)
    def test_reconcile_settles_what_it_can(self, mock_gateway):
        paid = make_order(self.user, transaction_id="tx-paid")
        broken = make_order(self.user, transaction_id="tx-broken")
        make_order(self.user, method=PaymentType.COD, channel="COD", transaction_id=None)

        def get_status(transaction_id):
            if transaction_id == "tx-broken":
                raise PaymentGatewayError()
            return {"transaction_status": "settlement"}

        mock_gateway.return_value.get_status.side_effect = get_status

        result = reconcile_pending_payments()

        self.assertEqual(result, {"checked": 2, "settled": 1})
        paid.refresh_from_db()
        broken.refresh_from_db()
        self.assertEqual(paid.payment_status, PaymentStatus.PAID)
        self.assertEqual(broken.payment_status, PaymentStatus.PENDING)

    def test_nothing_to_do(self):
        self.assertEqual(reconcile_pending_payments(), {"checked": 0, "settled": 0})


class RealtimeTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="budi", password="pass")
        self.order = make_order(self.user)

    def test_order_event(self):
        event = order_event(self.order)

        self.assertEqual(event["orderNumber"], self.order.order_number)
        self.assertEqual((event["status"], event["paymentStatus"]), (OrderStatus.PENDING, PaymentStatus.PENDING))
        self.assertEqual(event["total"], "5210.00")

    def test_status_change_is_pushed_after_commit(self):
        with patch("apps.payments.receivers.broadcast_order_update") as broadcast:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                OrderService.apply_gateway_payment_status(self.order.order_number, PaymentStatus.PAID)
                broadcast.assert_not_called()

        self.assertEqual(len(callbacks), 1)
        pushed = broadcast.call_args.args[0]
        self.assertEqual(pushed.payment_status, PaymentStatus.PAID)

    def test_broadcast_reaches_order_group(self):
        order = self.order

        async def listen():
            layer = get_channel_layer()
            channel = await layer.new_channel()
            await layer.group_add(order_group_name(order.order_number), channel)
            await sync_to_async(broadcast_order_update)(order)
            return await layer.receive(channel)

        message = async_to_sync(listen)()

        self.assertEqual(message["type"], "order.update")
        self.assertEqual(message["payload"]["orderNumber"], order.order_number)


class OrderStatusConsumerTests(SimpleTestCase):
    def test_anonymous_socket_is_refused(self):
        async def connect():
            application = TicketAuthMiddleware(URLRouter(websocket_urlpatterns))
            communicator = WebsocketCommunicator(application, "/ws/orders/ORD-TEST-00001/")
            connected, _ = await communicator.connect()
            await communicator.disconnect()
            return connected

        self.assertFalse(async_to_sync(connect)())
