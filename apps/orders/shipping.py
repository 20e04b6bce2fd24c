"""
Order-level shipping and service fee resolution.

Every line carries its own (optional) shipping policy taken from its product.
A missing per-product value falls back to the store-wide setting field by
field. The result is one shipping cost and one service fee for the whole
order:

- shipping is free when any line's effective threshold is positive and the
  order subtotal reaches it (first such line wins),
- otherwise shipping is the highest effective default cost among the lines
  (one parcel, not one per item),
- service fees add up across lines.

Pure functions over plain values; no ORM access here.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from apps.utils.utils import to_decimal

ZERO = Decimal("0")

SOURCE_PRODUCT = "product override"
SOURCE_GLOBAL = "global setting"


@dataclass(frozen=True)
class ShippingSettings:
    free_shipping_threshold: Optional[Decimal] = None
    default_shipping_cost: Optional[Decimal] = None
    service_fee: Optional[Decimal] = None

    @classmethod
    def from_product(cls, product):
        return cls(
            free_shipping_threshold=product.free_shipping_threshold,
            default_shipping_cost=product.default_shipping_cost,
            service_fee=product.service_fee,
        )


@dataclass(frozen=True)
class GlobalShippingSettings:
    free_shipping_threshold: Optional[Decimal] = None
    default_shipping_cost: Optional[Decimal] = None


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    quantity: int
    base_price: Decimal
    sale_price: Optional[Decimal] = None
    shipping_settings: ShippingSettings = field(default_factory=ShippingSettings)
    name: str = ""
    color: str = ""
    size: str = ""
    image_url: str = ""

    @property
    def unit_price(self) -> Decimal:
        base = to_decimal(self.base_price)
        sale = to_decimal(self.sale_price, default=None)
        if sale is not None and sale < base:
            return sale
        return base

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * (self.quantity or 0)

    @property
    def line_discount(self) -> Decimal:
        return (to_decimal(self.base_price) - self.unit_price) * (self.quantity or 0)

    @classmethod
    def from_product(cls, product, quantity, color="", size="", image_url=""):
        return cls(
            product_id=str(product.pk),
            quantity=quantity,
            base_price=product.price,
            sale_price=product.sale_price,
            shipping_settings=ShippingSettings.from_product(product),
            name=product.name,
            color=color or "",
            size=size or "",
            image_url=image_url or product.image_url or "",
        )


@dataclass(frozen=True)
class ShippingResult:
    shipping_cost: Decimal
    service_fee: Decimal
    reason: str
    is_free_shipping: bool = False
    deciding_product_id: Optional[str] = None


def _effective(own, fallback):
    """(value, source) for one policy field."""
    if own is not None:
        return to_decimal(own, default=None), SOURCE_PRODUCT
    return to_decimal(fallback, default=None), SOURCE_GLOBAL


def order_subtotal(lines: Sequence[OrderLine]) -> Decimal:
    return sum((line.line_total for line in lines), ZERO)


def resolve(lines: Sequence[OrderLine], global_settings: GlobalShippingSettings) -> ShippingResult:
    if not lines:
        return ShippingResult(shipping_cost=ZERO, service_fee=ZERO, reason="no items")

    subtotal = order_subtotal(lines)
    service_fee = sum(
        (to_decimal(line.shipping_settings.service_fee) for line in lines), ZERO
    )

    # Free shipping: first line whose effective threshold is met
    for line in lines:
        threshold, source = _effective(
            line.shipping_settings.free_shipping_threshold,
            global_settings.free_shipping_threshold,
        )
        if threshold is not None and threshold > 0 and subtotal >= threshold:
            return ShippingResult(
                shipping_cost=ZERO,
                service_fee=service_fee,
                reason=(
                    f"free shipping: subtotal {subtotal} meets threshold {threshold} "
                    f"({source}, product {line.product_id})"
                ),
                is_free_shipping=True,
                deciding_product_id=line.product_id,
            )

    # Max of effective default costs; ties keep the first line
    best_cost: Optional[Decimal] = None
    best_line: Optional[OrderLine] = None
    best_source = SOURCE_GLOBAL
    for line in lines:
        cost, source = _effective(
            line.shipping_settings.default_shipping_cost,
            global_settings.default_shipping_cost,
        )
        cost = cost if cost is not None else ZERO
        if best_cost is None or cost > best_cost:
            best_cost, best_line, best_source = cost, line, source

    return ShippingResult(
        shipping_cost=best_cost,
        service_fee=service_fee,
        reason=f"shipping {best_cost} ({best_source}, product {best_line.product_id})",
        deciding_product_id=best_line.product_id,
    )

