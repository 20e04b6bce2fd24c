from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, code="business_error", details=None):
        self.message = message
        self.code = code
        self.details = details or []
        super().__init__(message)


class OrderNotCancellable(BusinessLogicException):
    def __init__(self, order_status):
        super().__init__(
            f"Cannot cancel order with status: {order_status}",
            code="order_not_cancellable",
        )
        self.order_status = order_status


class InvalidStatusTransition(BusinessLogicException):
    def __init__(self, current, target, axis="status"):
        super().__init__(
            f"Cannot move {axis} from {current} to {target}",
            code="invalid_transition",
        )
        self.current = current
        self.target = target


class OutOfStock(BusinessLogicException):
    def __init__(self, product_name, available):
        super().__init__(
            f"Insufficient stock for {product_name}. Only {available} available.",
            code="out_of_stock",
        )
        self.available = available


class PaymentGatewayError(BusinessLogicException):
    """
    Gateway unreachable or returned garbage. Transient: caller may retry.
    """
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message="Payment gateway error", code="gateway_error"):
        super().__init__(message, code=code)


def _flatten_validation_errors(detail, field=None):
    """
    DRF ValidationError.detail -> [{"field": ..., "message": ...}]
    """
    if isinstance(detail, dict):
        items = []
        for key, value in detail.items():
            name = key if key != "non_field_errors" else field
            items.extend(_flatten_validation_errors(value, name))
        return items
    if isinstance(detail, list):
        items = []
        for value in detail:
            items.extend(_flatten_validation_errors(value, field))
        return items
    entry = {"message": str(detail)}
    if field:
        entry["field"] = field
    return [entry]


def error_payload(message, code, details=None):
    payload = {"success": False, "error": message, "code": code}
    if details:
        payload["details"] = details
        # First detail wins for display
        payload["error"] = details[0].get("message") or message
    return payload


def custom_exception_handler(exc, context):
    if isinstance(exc, BusinessLogicException):
        return Response(
            error_payload(exc.message, exc.code, exc.details),
            status=exc.status_code,
        )

    if isinstance(exc, ValidationError):
        details = _flatten_validation_errors(exc.detail)
        return Response(
            error_payload("Validation failed", "validation_error", details),
            status=status.HTTP_400_BAD_REQUEST,
        )

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            error_payload(GENERIC_ERROR_MESSAGE, "server_error"),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    detail = response.data.get("detail") if isinstance(response.data, dict) else None
    code = getattr(detail, "code", None) or "error"
    response.data = error_payload(str(detail or response.data), code)
    return response
