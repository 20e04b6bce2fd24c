"""
CheckoutSession: the caller-owned checkout context (selected lines, address,
payment choice, notes). Immutable; every `with_*` returns a new session.
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from . import pricing, shipping
from .pricing import PaymentSelection, PaymentType

SOURCE_CART = "cart"
SOURCE_BUY_NOW = "buy_now"

NOTES_MAX_LENGTH = 500


@dataclass(frozen=True)
class CheckoutSession:
    lines: Tuple[shipping.OrderLine, ...] = ()
    address_id: Optional[str] = None
    payment: Optional[PaymentSelection] = None
    notes: str = ""
    source: str = SOURCE_CART
    cart_item_ids: Tuple[str, ...] = ()

    def with_lines(self, lines, cart_item_ids=()):
        return replace(self, lines=tuple(lines), cart_item_ids=tuple(str(i) for i in cart_item_ids))

    def with_address(self, address_id):
        return replace(self, address_id=address_id)

    def with_payment(self, method, channel=None):
        method = (method or "").upper()
        return replace(self, payment=PaymentSelection(method=method, channel=channel or None))

    def with_notes(self, notes):
        return replace(self, notes=notes or "")

    @property
    def is_cod(self):
        return self.payment is not None and self.payment.is_cod

    def validation_errors(self):
        """[{field, message}] for everything that blocks order creation."""
        errors = []
        if not self.lines:
            errors.append({"field": "items", "message": "Please select at least one item"})
        if not self.address_id:
            errors.append({"field": "addressId", "message": "Shipping address is required"})
        if self.payment is None or not self.payment.method:
            errors.append({"field": "paymentMethod", "message": "Payment method is required"})
        elif self.payment.method not in PaymentType.values:
            errors.append({"field": "paymentMethod", "message": "Invalid payment method"})
        elif self.payment.method == PaymentType.VIRTUAL_ACCOUNT and not self.payment.channel:
            errors.append({"field": "paymentChannel", "message": "Virtual account bank is required"})
        if len(self.notes) > NOTES_MAX_LENGTH:
            errors.append({"field": "notes", "message": f"Notes must be at most {NOTES_MAX_LENGTH} characters"})
        return errors

    @property
    def is_ready(self):
        return not self.validation_errors()

    def quote(self, catalog: pricing.PaymentMethodCatalog, global_settings: shipping.GlobalShippingSettings):
        shipping_result = shipping.resolve(self.lines, global_settings)
        return pricing.compute(self.lines, catalog.resolve(self.payment), shipping_result)
