import asyncio
from unittest.mock import Mock

import requests
from django.test import SimpleTestCase, override_settings

from apps.orders.lifecycle import OrderStatus, PaymentStatus
from apps.orders.pricing import PaymentType
from .reconciliation import (
    AsyncStorefrontClient,
    PaymentReconciliationLoop,
    StorefrontAPIError,
    StorefrontClient,
)


def order(payment_status=PaymentStatus.PENDING, status=OrderStatus.PENDING, method=PaymentType.VIRTUAL_ACCOUNT):
    return {
        "orderNumber": "ORD-20261019-00001",
        "status": status,
        "paymentStatus": payment_status,
        "paymentMethod": method,
    }


def synced(payment_status=PaymentStatus.PENDING, **kwargs):
    return {"order": order(payment_status, **kwargs), "paymentStatus": payment_status, "synced": True}


class FakeStorefront:
    """
    Scripted async API. `sync_results` are consumed one per call (the last
    one repeats); an exception instance is raised instead of returned.
    Without an `orders` script, get_order returns the order from the last
    successful sync.
    """

    def __init__(self, sync_results=None, orders=None):
        self.sync_results = list(sync_results or [synced()])
        self.orders = list(orders) if orders else None
        self.current = order()
        self.sync_calls = 0
        self.get_calls = 0

    @staticmethod
    def _next(script):
        return script.pop(0) if len(script) > 1 else script[0]

    async def sync_payment(self, order_number):
        self.sync_calls += 1
        result = self._next(self.sync_results)
        if isinstance(result, Exception):
            raise result
        self.current = result["order"]
        return result

    async def get_order(self, order_number):
        self.get_calls += 1
        if self.orders is None:
            return dict(self.current)
        return dict(self._next(self.orders))


async def finish(loop, timeout=2):
    await asyncio.wait_for(loop._task, timeout)


class ReconciliationLoopTests(SimpleTestCase):
    def test_stops_at_first_paid_response(self):
        api = FakeStorefront([synced(), synced(), synced(PaymentStatus.PAID), synced(PaymentStatus.PAID)])
        paid = []

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0, on_paid=paid.append)
            self.assertTrue(await loop.start(order=order()))
            await finish(loop)
            await asyncio.sleep(0.01)
            return loop

        loop = asyncio.run(scenario())

        self.assertEqual(api.sync_calls, 3)
        self.assertEqual(len(paid), 1)
        self.assertEqual(paid[0]["paymentStatus"], PaymentStatus.PAID)
        self.assertEqual(loop.last_order["paymentStatus"], PaymentStatus.PAID)
        self.assertFalse(loop.is_running)

    def test_order_is_refetched_after_every_sync(self):
        api = FakeStorefront([synced(PaymentStatus.PAID)])

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0)
            return await loop.tick()

        self.assertTrue(asyncio.run(scenario()))
        self.assertEqual(api.get_calls, 1)

    def test_first_tick_runs_immediately(self):
        api = FakeStorefront()

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=3)
            await loop.start(order=order())
            await asyncio.sleep(0.2)
            calls = (api.sync_calls, api.get_calls)
            await loop.stop()
            return calls

        self.assertEqual(asyncio.run(scenario()), (1, 1))

    def test_stop_twice(self):
        api = FakeStorefront()

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0)
            await loop.start(order=order())
            await asyncio.sleep(0.01)
            await loop.stop()
            await loop.stop()
            calls = api.sync_calls
            await asyncio.sleep(0.01)
            return loop, calls

        loop, calls_at_stop = asyncio.run(scenario())

        self.assertFalse(loop.is_running)
        self.assertEqual(api.sync_calls, calls_at_stop)

    def test_stop_before_start(self):
        async def scenario():
            loop = PaymentReconciliationLoop(FakeStorefront(), "ORD-20261019-00001", interval=0)
            await loop.stop()
            return loop

        self.assertFalse(asyncio.run(scenario()).is_running)

    def test_not_started_when_nothing_to_wait_for(self):
        cases = [
            order(method=PaymentType.COD),
            order(PaymentStatus.PAID),
            order(PaymentStatus.FAILED),
            order(status=OrderStatus.CANCELLED),
        ]

        async def scenario(current):
            api = FakeStorefront()
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0)
            started = await loop.start(order=current)
            return started, loop.is_running, api.sync_calls

        for current in cases:
            with self.subTest(order=current):
                self.assertEqual(asyncio.run(scenario(current)), (False, False, 0))

    def test_start_fetches_order_when_not_given(self):
        api = FakeStorefront(orders=[order(method=PaymentType.COD)])

        async def scenario():
            loop = PaymentReconciliationLoop(api, interval=0)
            return await loop.start("ORD-20261019-00001"), loop

        started, loop = asyncio.run(scenario())

        self.assertFalse(started)
        self.assertEqual(api.get_calls, 1)
        self.assertEqual(loop.last_order["paymentMethod"], PaymentType.COD)

    def test_start_requires_order_number(self):
        async def scenario():
            await PaymentReconciliationLoop(FakeStorefront(), interval=0).start()

        with self.assertRaises(ValueError):
            asyncio.run(scenario())

    def test_errors_are_retried(self):
        api = FakeStorefront([StorefrontAPIError("Too many requests", status_code=429), synced(PaymentStatus.PAID)])

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0)
            await loop.start(order=order())
            await finish(loop)
            return loop

        loop = asyncio.run(scenario())

        self.assertEqual(api.sync_calls, 2)
        self.assertEqual(loop.last_order["paymentStatus"], PaymentStatus.PAID)

    def test_ends_when_order_is_cancelled_elsewhere(self):
        api = FakeStorefront([synced()], orders=[order(PaymentStatus.FAILED, status=OrderStatus.CANCELLED)])
        paid = []

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0, on_paid=paid.append)
            await loop.start(order=order())
            await finish(loop)

        asyncio.run(scenario())

        self.assertEqual(api.sync_calls, 1)
        self.assertEqual(paid, [])

    def test_async_callback_may_stop_the_loop(self):
        api = FakeStorefront([synced(PaymentStatus.PAID)])
        seen = []

        async def scenario():
            loop = PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0)

            async def on_paid(paid_order):
                seen.append(paid_order["paymentStatus"])
                await loop.stop()

            loop.on_paid = on_paid
            await loop.start(order=order())
            await asyncio.sleep(0.05)
            return loop

        loop = asyncio.run(scenario())

        self.assertEqual(seen, [PaymentStatus.PAID])
        self.assertFalse(loop.is_running)

    def test_context_manager(self):
        api = FakeStorefront()

        async def scenario():
            async with PaymentReconciliationLoop(api, "ORD-20261019-00001", interval=0) as loop:
                self.assertTrue(loop.is_running)
                await asyncio.sleep(0.01)
            return loop

        loop = asyncio.run(scenario())

        self.assertFalse(loop.is_running)
        self.assertGreater(api.sync_calls, 0)

    @override_settings(PAYMENT_SYNC_INTERVAL_SECONDS=3)
    def test_default_interval_from_settings(self):
        self.assertEqual(PaymentReconciliationLoop(FakeStorefront()).interval, 3)


def response(status_code=200, body=None, json_error=False):
    resp = Mock(status_code=status_code, ok=status_code < 400)
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class StorefrontClientTests(SimpleTestCase):
    def setUp(self):
        self.session = Mock(headers={})
        self.client = StorefrontClient("http://shop.test/api/v1/", token="jwt-token", session=self.session)

    def test_sync_payment(self):
        self.session.request.return_value = response(200, {"success": True, "data": synced(PaymentStatus.PAID)})

        result = self.client.sync_payment("ORD-1")

        self.assertEqual(result["paymentStatus"], PaymentStatus.PAID)
        self.session.request.assert_called_once_with(
            "POST", "http://shop.test/api/v1/orders/ORD-1/sync-payment/", timeout=10
        )
        self.assertEqual(self.session.headers["Authorization"], "Bearer jwt-token")

    def test_error_payload(self):
        self.session.request.return_value = response(404, {
            "success": False, "error": "Order not found", "code": "not_found",
        })

        with self.assertRaises(StorefrontAPIError) as ctx:
            self.client.get_order("ORD-1")
        self.assertEqual((ctx.exception.message, ctx.exception.status_code, ctx.exception.code),
                         ("Order not found", 404, "not_found"))

    def test_non_json(self):
        self.session.request.return_value = response(502, json_error=True)

        with self.assertRaises(StorefrontAPIError) as ctx:
            self.client.get_order("ORD-1")
        self.assertEqual(ctx.exception.status_code, 502)

    def test_network_error(self):
        self.session.request.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(StorefrontAPIError):
            self.client.sync_payment("ORD-1")

    def test_async_facade(self):
        self.session.request.return_value = response(200, {"success": True, "data": order()})

        result = asyncio.run(AsyncStorefrontClient(self.client).get_order("ORD-1"))

        self.assertEqual(result["orderNumber"], "ORD-20261019-00001")
