"""
Midtrans Core API client (charge + status lookup) and notification helpers.
"""
import hashlib
import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import requests
from django.conf import settings
from django.utils.dateparse import parse_datetime

from apps.orders.lifecycle import PaymentStatus
from apps.orders.pricing import PaymentType
from apps.utils.exceptions import BusinessLogicException, PaymentGatewayError
from apps.utils.resilience import CircuitBreaker
from .models import PaymentProvider

logger = logging.getLogger(__name__)

BANK_MAP = {
    "BCA": "bca",
    "MANDIRI": "mandiri",
    "BNI": "bni",
    "BRI": "bri",
    "BSI": "bsi",
    "PERMATA": "permata",
}

STATUS_MAP = {
    "capture": PaymentStatus.PAID,
    "settlement": PaymentStatus.PAID,
    "deny": PaymentStatus.FAILED,
    "cancel": PaymentStatus.FAILED,
    "expire": PaymentStatus.FAILED,
    "failure": PaymentStatus.FAILED,
    "refund": PaymentStatus.REFUNDED,
}

WIB = timezone(timedelta(hours=7))

COUNTRY_CODES = {"ID": "IDN", "US": "USA", "MY": "MYS", "SG": "SGP", "INDONESIA": "IDN"}

COD_INSTRUCTIONS = "Pay the courier in cash when your order arrives."
PERMATA_INSTRUCTIONS = "Use the Permata virtual account number to complete the payment."

midtrans_breaker = CircuitBreaker("midtrans", trip_on=(requests.RequestException,))


def map_transaction_status(transaction_status: Optional[str]) -> str:
    return STATUS_MAP.get((transaction_status or "").lower(), PaymentStatus.PENDING)


def notification_signature(order_id, status_code, gross_amount, server_key) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_notification_signature(payload: dict, server_key: Optional[str] = None) -> bool:
    server_key = server_key if server_key is not None else settings.MIDTRANS_SERVER_KEY
    if not server_key:
        return False
    expected = notification_signature(
        payload.get("order_id"), payload.get("status_code"), payload.get("gross_amount"), server_key
    )
    return hmac.compare_digest(expected, str(payload.get("signature_key") or ""))


def to_rupiah(amount) -> int:
    """Gateway wants whole currency units."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PaymentInstruction:
    provider: str
    payment_type: str
    amount: Decimal
    channel: Optional[str] = None
    status: str = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    va_number: Optional[str] = None
    va_bank: Optional[str] = None
    qr_string: Optional[str] = None
    qr_image_url: Optional[str] = None
    payment_url: Optional[str] = None
    instructions: Optional[str] = None
    expires_at: Optional[object] = None
    raw_response: dict = field(default_factory=dict)

    def as_model_fields(self):
        return {
            "provider": self.provider,
            "payment_type": self.payment_type,
            "channel": self.channel,
            "status": self.status,
            "amount": self.amount,
            "transaction_id": self.transaction_id,
            "va_number": self.va_number,
            "va_bank": self.va_bank,
            "qr_string": self.qr_string,
            "qr_image_url": self.qr_image_url,
            "payment_url": self.payment_url,
            "instructions": self.instructions,
            "expires_at": self.expires_at,
            "raw_response": self.raw_response,
        }


def offline_instruction(amount) -> PaymentInstruction:
    return PaymentInstruction(
        provider=PaymentProvider.OFFLINE,
        payment_type="cod",
        channel="COD",
        amount=amount,
        instructions=COD_INSTRUCTIONS,
    )


def _find_action(actions, *names):
    for action in actions or []:
        if action.get("name") in names:
            return action
    return None


def _parse_expiry(value):
    if not value:
        return None
    parsed = parse_datetime(str(value))
    if parsed is not None and parsed.tzinfo is None:
        # Midtrans sends local time (WIB)
        parsed = parsed.replace(tzinfo=WIB)
    return parsed


@midtrans_breaker
def _send(session, method, url, **kwargs):
    response = session.request(method, url, **kwargs)
    if response.status_code >= 500:
        response.raise_for_status()
    return response


class MidtransGateway:
    """
    Thin wrapper over the Core API. Network failures and 5xx answers raise
    PaymentGatewayError and count towards the circuit breaker; business
    rejections (4xx, error status_code in body) raise PaymentGatewayError
    without tripping it.
    """

    def __init__(self, server_key=None, base_url=None, timeout=None, notification_url=None, session=None):
        self.server_key = (server_key if server_key is not None else settings.MIDTRANS_SERVER_KEY or "").strip()
        self.base_url = (base_url or settings.MIDTRANS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.MIDTRANS_TIMEOUT
        self.notification_url = notification_url if notification_url is not None else settings.MIDTRANS_NOTIFICATION_URL
        self.session = session or requests.Session()

    @property
    def is_configured(self):
        return bool(self.server_key)

    def _request(self, method, path, payload=None):
        if not self.is_configured:
            raise PaymentGatewayError("Payment gateway is not configured", code="gateway_not_configured")

        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.notification_url:
            headers["X-Override-Notification"] = self.notification_url
        try:
            response = _send(
                self.session, method, url,
                json=payload, headers=headers,
                auth=(self.server_key, ""), timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Midtrans {method} {path} failed: {e}")
            raise PaymentGatewayError() from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Midtrans {method} {path} returned non-JSON (HTTP {response.status_code})")
            raise PaymentGatewayError("Invalid response from payment gateway") from e

        if not response.ok:
            logger.warning(f"Midtrans {method} {path} rejected: HTTP {response.status_code} {data}")
            raise PaymentGatewayError(data.get("status_message") or "Payment gateway rejected the request")
        return data

    # ---- charge ----

    @staticmethod
    def payment_type_for(method):
        if method == PaymentType.VIRTUAL_ACCOUNT:
            return "bank_transfer"
        if method == PaymentType.QRIS:
            return "qris"
        raise BusinessLogicException(
            f"Unsupported payment method {method}", code="unsupported_payment_method"
        )

    @staticmethod
    def bank_for(channel):
        if not channel:
            raise BusinessLogicException("Virtual account bank is required", code="validation_error")
        bank = BANK_MAP.get(channel.upper())
        if not bank:
            raise BusinessLogicException(
                f"Unsupported virtual account bank: {channel}", code="unsupported_bank"
            )
        return bank

    @staticmethod
    def item_details(order):
        """
        Product lines plus fee/discount lines; gross_amount must equal
        their sum, so every price is rounded first.
        """
        items = [
            {
                "id": str(item.product_id)[:50],
                "price": to_rupiah(item.unit_price),
                "quantity": item.quantity,
                "name": item.product_name[:50],
            }
            for item in order.items.all()
        ]
        extras = [
            ("SHIPPING", "Shipping Cost", order.shipping_cost),
            ("SERVICE_FEE", "Service Fee", order.service_fee),
            ("PAYMENT_FEE", "Payment Fee", order.payment_fee),
            ("SHIPPING_DISCOUNT", "Shipping Discount", -order.shipping_discount),
            ("VOUCHER", "Voucher Discount", -order.voucher_discount),
        ]
        for item_id, name, amount in extras:
            price = to_rupiah(amount)
            if price:
                items.append({"id": item_id, "price": price, "quantity": 1, "name": name})
        return items

    @staticmethod
    def customer_details(order):
        address = order.shipping_address or {}
        full_name = (address.get("fullName") or order.user.get_full_name() or order.user.get_username()).strip()
        first_name, _, last_name = full_name.partition(" ")
        phone = re.sub(r"\D", "", address.get("phone") or "")
        street = ", ".join(p for p in [address.get("addressLine1"), address.get("addressLine2")] if p)[:200]
        country = (address.get("country") or "ID").upper()
        country = COUNTRY_CODES.get(country, country if len(country) == 3 else "IDN")
        shipping = {
            "first_name": first_name[:50],
            "last_name": last_name[:50],
            "phone": phone,
            "address": street,
            "city": address.get("city") or "",
            "postal_code": (address.get("postalCode") or "")[:10],
            "country_code": country,
        }
        return {
            "first_name": first_name[:50],
            "last_name": last_name[:50],
            "email": order.user.email,
            "phone": phone,
            "billing_address": dict(shipping, email=order.user.email),
            "shipping_address": shipping,
        }

    def build_charge_payload(self, order):
        payment_type = self.payment_type_for(order.payment_method)
        items = self.item_details(order)
        gross_amount = sum(i["price"] * i["quantity"] for i in items)
        if abs(gross_amount - order.total) > 1:
            logger.warning(
                f"Rounded item total {gross_amount} differs from order total {order.total}",
                extra={"order_number": order.order_number},
            )

        payload = {
            "payment_type": payment_type,
            "transaction_details": {
                "order_id": re.sub(r"[^a-zA-Z0-9_-]", "", order.order_number)[:50],
                "gross_amount": gross_amount,
            },
            "item_details": items,
            "customer_details": self.customer_details(order),
        }
        if payment_type == "bank_transfer":
            payload["bank_transfer"] = {"bank": self.bank_for(order.payment_channel)}
        return payload

    def charge(self, order) -> PaymentInstruction:
        payload = self.build_charge_payload(order)
        data = self._request("POST", "/v2/charge", payload)

        status_code = str(data.get("status_code") or "")
        if not data.get("transaction_id") and status_code not in ("200", "201"):
            message = data.get("status_message") or "Failed to create payment transaction"
            logger.warning(
                f"Midtrans charge rejected: {status_code} {message}",
                extra={"order_number": order.order_number},
            )
            raise PaymentGatewayError(message, code="charge_rejected")
        if not data.get("transaction_id"):
            raise PaymentGatewayError("Invalid response from payment gateway: missing transaction ID")

        logger.info(
            f"Midtrans charge created: {data.get('transaction_id')}",
            extra={"order_number": order.order_number},
        )
        return self.instruction_from_response(data, payload["payment_type"], order.payment_channel or None)

    @staticmethod
    def instruction_from_response(data, payment_type, channel=None) -> PaymentInstruction:
        instruction = PaymentInstruction(
            provider=PaymentProvider.MIDTRANS,
            payment_type=payment_type,
            channel=channel,
            amount=Decimal(str(data.get("gross_amount") or 0)),
            status=map_transaction_status(data.get("transaction_status")),
            transaction_id=data.get("transaction_id"),
            expires_at=_parse_expiry(data.get("expiry_time")),
            raw_response=data,
        )
        if payment_type == "bank_transfer":
            va_numbers = data.get("va_numbers") or []
            if va_numbers:
                instruction.va_number = va_numbers[0].get("va_number")
                instruction.va_bank = (va_numbers[0].get("bank") or channel or "").upper() or None
            elif data.get("permata_va_number"):
                instruction.va_number = data["permata_va_number"]
                instruction.va_bank = "PERMATA"
                instruction.instructions = PERMATA_INSTRUCTIONS
            else:
                instruction.va_bank = channel.upper() if channel else None
        elif payment_type == "qris":
            qr_action = _find_action(data.get("actions"), "generate-qr-code", "qr-code", "qris")
            instruction.qr_string = data.get("qr_string")
            instruction.qr_image_url = (qr_action or {}).get("url") or data.get("qr_url")
            instruction.payment_url = (_find_action(data.get("actions"), "deeplink-redirect") or {}).get("url")
        return instruction

    # ---- status ----

    def get_status(self, transaction_id) -> dict:
        return self._request("GET", f"/v2/{transaction_id}/status")
