"""
Client-side payment reconciliation.

While a customer sits on the payment page of a gateway order, the page (or
any API consumer) polls the storefront: ask the server to sync with the
gateway, re-read the order, and stop once payment is settled. Server push
(`ws/orders/<order_number>/`) is preferred where available; this loop is the
bounded fallback.

    async with PaymentReconciliationLoop(api, order_number="ORD-...", on_paid=show_receipt):
        ...
"""
import asyncio
import inspect
import logging

import requests
from asgiref.sync import sync_to_async
from django.conf import settings

from apps.orders.lifecycle import OrderState, OrderStatus, PaymentStatus, needs_reconciliation

logger = logging.getLogger(__name__)


class StorefrontAPIError(Exception):
    def __init__(self, message, status_code=None, code=None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class StorefrontClient:
    """
    Blocking client for the two order endpoints the loop needs.
    """

    def __init__(self, base_url, token=None, timeout=10, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method, path):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorefrontAPIError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise StorefrontAPIError(
                f"{method} {path} returned non-JSON", status_code=response.status_code
            ) from e

        if not response.ok or not isinstance(body, dict) or body.get("success") is False:
            error = body.get("error") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            raise StorefrontAPIError(
                error or f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                code=code,
            )
        return body.get("data") or {}

    def sync_payment(self, order_number) -> dict:
        """{order, paymentStatus, synced}"""
        return self._request("POST", f"/orders/{order_number}/sync-payment/")

    def get_order(self, order_number) -> dict:
        return self._request("GET", f"/orders/{order_number}/")


class AsyncStorefrontClient:
    """asyncio facade; each call runs the blocking client in a worker thread."""

    def __init__(self, client: StorefrontClient):
        self.client = client

    async def sync_payment(self, order_number) -> dict:
        return await sync_to_async(self.client.sync_payment, thread_sensitive=False)(order_number)

    async def get_order(self, order_number) -> dict:
        return await sync_to_async(self.client.get_order, thread_sensitive=False)(order_number)


def _state_of(order: dict) -> OrderState:
    return OrderState(
        status=order.get("status") or "",
        payment_status=order.get("paymentStatus") or "",
        payment_method=order.get("paymentMethod") or "",
    )


def _is_settled(order: dict) -> bool:
    return (
        order.get("paymentStatus") in (PaymentStatus.FAILED, PaymentStatus.REFUNDED)
        or order.get("status") in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)
    )


class PaymentReconciliationLoop:
    """
    One asyncio task per loop. The first tick runs right after start();
    each tick finishes before the next sleep, so ticks never overlap even
    when a call outlives the interval.

    `api` needs async `sync_payment(order_number)` and
    `get_order(order_number)` (see AsyncStorefrontClient).
    """

    def __init__(self, api, order_number=None, interval=None, on_paid=None):
        self.api = api
        self.order_number = order_number
        self.interval = settings.PAYMENT_SYNC_INTERVAL_SECONDS if interval is None else interval
        self.on_paid = on_paid
        self.last_order = None
        self._task = None
        self._paid_notified = False

    @property
    def is_running(self):
        return self._task is not None and not self._task.done()

    async def start(self, order_number=None, order=None) -> bool:
        """
        Starts polling if the order still waits on the gateway. COD,
        already-settled and cancelled orders return False and start nothing.
        """
        if self.is_running:
            return True

        self.order_number = order_number or self.order_number
        if not self.order_number:
            raise ValueError("order_number is required")

        if order is None:
            order = await self.api.get_order(self.order_number)
        self.last_order = order

        if not needs_reconciliation(_state_of(order)):
            logger.debug(f"No reconciliation needed for {self.order_number}")
            return False

        self._paid_notified = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Payment reconciliation started for {self.order_number} every {self.interval}s")
        return True

    async def stop(self):
        """Safe to call any number of times, also from on_paid."""
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Payment reconciliation stopped for {self.order_number}")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def _run(self):
        while True:
            if await self.tick():
                return
            await asyncio.sleep(self.interval)

    async def tick(self) -> bool:
        """
        One sync-then-refresh round. True when polling should end.
        """
        try:
            await self.api.sync_payment(self.order_number)
            order = await self.api.get_order(self.order_number)
        except StorefrontAPIError as e:
            logger.warning(f"Payment sync for {self.order_number} failed, retrying: {e.message}")
            return False

        self.last_order = order
        if order.get("paymentStatus") == PaymentStatus.PAID:
            await self._notify_paid(order)
            return True
        if _is_settled(order):
            logger.info(
                f"Payment reconciliation for {self.order_number} ended: "
                f"{order.get('status')}/{order.get('paymentStatus')}"
            )
            return True
        return False

    async def _notify_paid(self, order):
        if self._paid_notified:
            return
        self._paid_notified = True
        logger.info(f"Payment confirmed for {self.order_number}")
        if self.on_paid is not None:
            result = self.on_paid(order)
            if inspect.isawaitable(result):
                await result
