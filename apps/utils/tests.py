# apps/utils/tests.py
import json
import logging
import random
from datetime import date
from decimal import Decimal

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError

from .exceptions import (
    BusinessLogicException,
    OrderNotCancellable,
    PaymentGatewayError,
    custom_exception_handler,
    error_payload,
)
from .logging import JSONFormatter
from .resilience import CircuitBreaker
from .utils import generate_order_number, to_decimal


class HelperTests(SimpleTestCase):
    def test_order_number_format(self):
        number = generate_order_number(today=date(2024, 3, 9), rng=random.Random(7))
        self.assertRegex(number, r"^ORD-20240309-\d{5}$")

    def test_to_decimal_is_lenient(self):
        self.assertEqual(to_decimal("12.50"), Decimal("12.50"))
        self.assertEqual(to_decimal(3), Decimal("3"))
        self.assertEqual(to_decimal(None), Decimal("0"))
        self.assertEqual(to_decimal(""), Decimal("0"))
        self.assertEqual(to_decimal("abc"), Decimal("0"))
        self.assertIsNone(to_decimal(None, default=None))

    def test_to_decimal_drops_non_finite_values(self):
        self.assertEqual(to_decimal("NaN"), Decimal("0"))
        self.assertEqual(to_decimal(Decimal("NaN")), Decimal("0"))
        self.assertEqual(to_decimal(float("inf")), Decimal("0"))
        self.assertIsNone(to_decimal("-Infinity", default=None))


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_error_payload(self):
        response = custom_exception_handler(OrderNotCancellable("SHIPPED"), {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {
            "success": False,
            "error": "Cannot cancel order with status: SHIPPED",
            "code": "order_not_cancellable",
        })

    def test_gateway_error_is_502(self):
        response = custom_exception_handler(PaymentGatewayError(), {})
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data["code"], "gateway_error")

    def test_validation_error_first_detail_wins(self):
        exc = ValidationError({"addressId": ["Shipping address is required"], "paymentMethod": ["Payment method is required"]})
        response = custom_exception_handler(exc, {})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertEqual(response.data["error"], "Shipping address is required")
        self.assertEqual(response.data["details"], [
            {"field": "addressId", "message": "Shipping address is required"},
            {"field": "paymentMethod", "message": "Payment method is required"},
        ])

    def test_drf_error_is_reformatted(self):
        response = custom_exception_handler(NotFound("Order not found"), {})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {"success": False, "error": "Order not found", "code": "not_found"})

    def test_unhandled_error_is_generic_500(self):
        logging.disable(logging.CRITICAL)
        self.addCleanup(logging.disable, logging.NOTSET)

        response = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "server_error")
        self.assertNotIn("boom", response.data["error"])

    def test_error_payload_without_details(self):
        self.assertEqual(
            error_payload("Nope", "business_error"),
            {"success": False, "error": "Nope", "code": "business_error"},
        )


class CircuitBreakerTests(TestCase):
    def setUp(self):
        cache.clear()
        self.breaker = CircuitBreaker("test-service", failure_threshold=2, recovery_timeout=60, trip_on=(IOError,))
        self.calls = 0

        @self.breaker
        def flaky():
            self.calls += 1
            raise IOError("down")

        self.flaky = flaky

    def test_opens_after_threshold_and_fails_fast(self):
        for _ in range(2):
            with self.assertRaises(IOError):
                self.flaky()

        with self.assertRaises(PaymentGatewayError) as ctx:
            self.flaky()
        self.assertEqual(ctx.exception.code, "circuit_open")
        self.assertEqual(self.calls, 2)

    def test_non_tripping_errors_pass_through(self):
        @self.breaker
        def rejected():
            raise BusinessLogicException("Rejected")

        for _ in range(3):
            with self.assertRaises(BusinessLogicException):
                rejected()
        self.assertFalse(self.breaker.is_open())

    def test_reset_closes_circuit(self):
        for _ in range(2):
            with self.assertRaises(IOError):
                self.flaky()
        self.breaker.reset()
        self.assertFalse(self.breaker.is_open())


class JSONFormatterTests(SimpleTestCase):
    def test_scrubs_sensitive_keys_and_keeps_context(self):
        record = logging.LogRecord("apps.test", logging.INFO, __file__, 1, "payload", None, None)
        record.msg = {"order_id": "ORD-1", "signature_key": "abc", "nested": {"server_key": "x"}}
        record.order_number = "ORD-1"

        line = json.loads(JSONFormatter().format(record))

        self.assertEqual(line["order_number"], "ORD-1")
        self.assertIn("***REDACTED***", line["msg"])
        self.assertNotIn("abc", line["msg"])


class HealthCheckTests(TestCase):
    def test_health_ok(self):
        response = self.client.get("/api/v1/utils/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["components"], {"db": "ok", "cache": "ok"})
