import random
from decimal import Decimal, InvalidOperation
from django.utils import timezone


def now():
    return timezone.now()


def generate_order_number(today=None, rng=random):
    """
    Format: ORD-YYYYMMDD-NNNNN
    """
    today = today or timezone.localdate()
    return f"ORD-{today:%Y%m%d}-{rng.randint(0, 99999):05d}"


def to_decimal(value, default=Decimal("0")):
    """
    Lenient money coercion: None, "", garbage and non-finite values
    (NaN, Infinity) become `default`.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return default
    return result if result.is_finite() else default
