"""
Price breakdown shared by checkout preview, order creation and order detail.

    total = subtotal + shipping_cost + service_fee + payment_fee
            - shipping_discount - voucher_discount

Payment method fees are stored signed (negative = discount) but handled here
as a tagged FeeAdjustment so the sign is never re-interpreted at display time.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from django.db import models

from apps.utils.utils import to_decimal
from .shipping import OrderLine, ShippingResult, ZERO


class PaymentType(models.TextChoices):
    COD = "COD", "Cash on Delivery"
    VIRTUAL_ACCOUNT = "VIRTUAL_ACCOUNT", "Virtual Account"
    QRIS = "QRIS", "QRIS"
    CREDIT_CARD = "CREDIT_CARD", "Credit/Debit Card"


FALLBACK_LABELS = {
    PaymentType.COD.value: "Cash on Delivery (COD)",
    PaymentType.VIRTUAL_ACCOUNT.value: "Virtual Account",
    PaymentType.QRIS.value: "QRIS",
    PaymentType.CREDIT_CARD.value: "Credit/Debit Card",
}


@dataclass(frozen=True)
class FeeAdjustment:
    SURCHARGE = "SURCHARGE"
    DISCOUNT = "DISCOUNT"

    kind: str
    amount: Decimal

    @classmethod
    def from_signed(cls, value) -> "FeeAdjustment":
        value = to_decimal(value)
        if value < 0:
            return cls(cls.DISCOUNT, -value)
        return cls(cls.SURCHARGE, value)

    @classmethod
    def none(cls) -> "FeeAdjustment":
        return cls(cls.SURCHARGE, ZERO)

    @property
    def signed(self) -> Decimal:
        return -self.amount if self.kind == self.DISCOUNT else self.amount

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def label(self) -> str:
        if self.is_zero:
            return ""
        return "Discount" if self.kind == self.DISCOUNT else "Surcharge"

    def display(self, currency="") -> str:
        prefix = f"{currency} " if currency else ""
        if self.is_zero:
            return f"{prefix}0"
        sign = "-" if self.kind == self.DISCOUNT else "+"
        return f"{sign}{prefix}{self.amount}"


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    name: str
    type: str
    fee: Decimal = ZERO
    is_active: bool = True
    description: str = ""

    @property
    def adjustment(self) -> FeeAdjustment:
        return FeeAdjustment.from_signed(self.fee)

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentMethod":
        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name") or "",
            type=str(data.get("type") or "").upper(),
            fee=to_decimal(data.get("fee")),
            is_active=bool(data.get("isActive", data.get("is_active", True))),
            description=data.get("description") or "",
        )

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "fee": self.fee,
            "isActive": self.is_active,
            "description": self.description,
        }


@dataclass(frozen=True)
class PaymentSelection:
    method: str
    channel: Optional[str] = None

    @property
    def is_cod(self) -> bool:
        return self.method == PaymentType.COD


@dataclass(frozen=True)
class ResolvedPayment:
    method: Optional[PaymentMethod]
    adjustment: FeeAdjustment
    label: str

    @property
    def matched(self) -> bool:
        return self.method is not None


class PaymentMethodCatalog:
    """
    Lookup over the active payment methods.

    Virtual accounts are matched on the bank channel (the method id *is* the
    channel, e.g. "bca"); other types on type plus optional channel.
    """

    def __init__(self, methods: Iterable[PaymentMethod] = ()):
        self.methods: List[PaymentMethod] = [m for m in methods if m.is_active]

    @classmethod
    def from_settings(cls, raw_methods) -> "PaymentMethodCatalog":
        return cls(PaymentMethod.from_dict(m) for m in (raw_methods or []) if isinstance(m, dict))

    def __iter__(self):
        return iter(self.methods)

    def __len__(self):
        return len(self.methods)

    def match(self, selection: Optional[PaymentSelection]) -> Optional[PaymentMethod]:
        if selection is None or not selection.method:
            return None
        for method in self.methods:
            if selection.method == PaymentType.VIRTUAL_ACCOUNT:
                if method.type == PaymentType.VIRTUAL_ACCOUNT and method.id == selection.channel:
                    return method
            elif method.type == selection.method and (
                not selection.channel or method.id == selection.channel
            ):
                return method
        return None

    def resolve(self, selection: Optional[PaymentSelection]) -> ResolvedPayment:
        method = self.match(selection)
        if method is not None:
            return ResolvedPayment(method=method, adjustment=method.adjustment, label=method.name)
        return ResolvedPayment(method=None, adjustment=FeeAdjustment.none(), label=fallback_label(selection))


def fallback_label(selection: Optional[PaymentSelection]) -> str:
    if selection is None or selection.method not in FALLBACK_LABELS:
        return "Unknown payment method"
    label = FALLBACK_LABELS[selection.method]
    if selection.method == PaymentType.VIRTUAL_ACCOUNT and selection.channel:
        label = f"{label} • {selection.channel.upper()}"
    return label


@dataclass(frozen=True)
class Breakdown:
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    service_fee: Decimal = ZERO
    payment_fee: Decimal = ZERO
    shipping_discount: Decimal = ZERO
    voucher_discount: Decimal = ZERO
    payment_label: str = ""
    payment_adjustment: FeeAdjustment = field(default_factory=FeeAdjustment.none)
    shipping_reason: str = ""
    item_count: int = 0

    @property
    def total(self) -> Decimal:
        return (
            self.subtotal
            + self.shipping_cost
            + self.service_fee
            + self.payment_fee
            - self.shipping_discount
            - self.voucher_discount
        )

    @property
    def is_empty(self) -> bool:
        return self.item_count == 0

    @classmethod
    def from_order(cls, order) -> "Breakdown":
        """Rebuild from a persisted order (amounts are already snapshotted)."""
        payment_fee = to_decimal(order.payment_fee)
        return cls(
            subtotal=to_decimal(order.subtotal),
            discount=to_decimal(order.discount),
            shipping_cost=to_decimal(order.shipping_cost),
            service_fee=to_decimal(order.service_fee),
            payment_fee=payment_fee,
            shipping_discount=to_decimal(order.shipping_discount),
            voucher_discount=to_decimal(order.voucher_discount),
            payment_label=order.payment_label,
            payment_adjustment=FeeAdjustment.from_signed(payment_fee),
            shipping_reason=order.shipping_reason,
            item_count=order.items.count(),
        )

    def as_dict(self):
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "shippingCost": self.shipping_cost,
            "serviceFee": self.service_fee,
            "paymentFee": self.payment_fee,
            "paymentFeeLabel": self.payment_adjustment.label,
            "paymentFeeDisplay": self.payment_adjustment.display(),
            "paymentLabel": self.payment_label,
            "shippingDiscount": self.shipping_discount,
            "voucherDiscount": self.voucher_discount,
            "shippingReason": self.shipping_reason,
            "total": self.total,
        }


def compute(
    lines: Sequence[OrderLine],
    resolved_payment: ResolvedPayment,
    shipping: ShippingResult,
    shipping_discount=ZERO,
    voucher_discount=ZERO,
) -> Breakdown:
    """
    Never raises on missing numbers; callers check `is_empty` before
    placing an order.
    """
    subtotal = sum((line.line_total for line in lines), ZERO)
    discount = sum((line.line_discount for line in lines), ZERO)
    adjustment = resolved_payment.adjustment if resolved_payment else FeeAdjustment.none()

    return Breakdown(
        subtotal=subtotal,
        discount=max(discount, ZERO),
        shipping_cost=to_decimal(getattr(shipping, "shipping_cost", None)),
        service_fee=to_decimal(getattr(shipping, "service_fee", None)),
        payment_fee=adjustment.signed,
        shipping_discount=to_decimal(shipping_discount),
        voucher_discount=to_decimal(voucher_discount),
        payment_label=resolved_payment.label if resolved_payment else "",
        payment_adjustment=adjustment,
        shipping_reason=getattr(shipping, "reason", ""),
        item_count=len(lines),
    )
