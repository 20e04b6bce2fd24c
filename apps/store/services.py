import logging

from django.conf import settings
from django.core.cache import cache

from apps.orders.pricing import PaymentMethodCatalog
from apps.orders.shipping import GlobalShippingSettings
from apps.utils.utils import to_decimal
from .models import Setting

logger = logging.getLogger(__name__)

CACHE_PREFIX = "store_settings"

KEY_FREE_SHIPPING_THRESHOLD = "freeShippingThreshold"
KEY_DEFAULT_SHIPPING_COST = "defaultShippingCost"
KEY_PAYMENT_METHODS = "paymentMethods"
KEY_PAYMENT_TIMEOUT = "paymentTimeoutMinutes"


class StoreSettingsService:
    """
    Read side of the settings table. Each category is cached as a whole
    for SETTINGS_CACHE_SECONDS; saving/deleting a Setting clears its category.
    """

    @staticmethod
    def _cache_key(category):
        return f"{CACHE_PREFIX}:{category}"

    @staticmethod
    def clear_cache(category=None):
        categories = [category] if category else Setting.Category.values
        cache.delete_many([StoreSettingsService._cache_key(c) for c in categories])

    @staticmethod
    def get_category(category: str) -> dict:
        key = StoreSettingsService._cache_key(category)
        data = cache.get(key)
        if data is None:
            data = dict(Setting.objects.filter(category=category).values_list("key", "value"))
            cache.set(key, data, timeout=settings.SETTINGS_CACHE_SECONDS)
        return data

    @staticmethod
    def get_value(category, key, default=None):
        value = StoreSettingsService.get_category(category).get(key)
        return default if value is None else value

    @staticmethod
    def get_public_settings(category=None) -> dict:
        if category:
            return StoreSettingsService.get_category(category)

        data = dict(StoreSettingsService.get_category(Setting.Category.GENERAL))
        shipping = StoreSettingsService.get_global_shipping_settings()
        data.update(StoreSettingsService.get_category(Setting.Category.SHIPPING))
        data[KEY_FREE_SHIPPING_THRESHOLD] = shipping.free_shipping_threshold
        data[KEY_DEFAULT_SHIPPING_COST] = shipping.default_shipping_cost
        data.setdefault("currency", settings.CURRENCY)
        return data

    @staticmethod
    def get_global_shipping_settings() -> GlobalShippingSettings:
        threshold = StoreSettingsService.get_value(
            Setting.Category.SHIPPING, KEY_FREE_SHIPPING_THRESHOLD,
            settings.DEFAULT_FREE_SHIPPING_THRESHOLD,
        )
        cost = StoreSettingsService.get_value(
            Setting.Category.SHIPPING, KEY_DEFAULT_SHIPPING_COST,
            settings.DEFAULT_SHIPPING_COST,
        )
        return GlobalShippingSettings(
            free_shipping_threshold=to_decimal(threshold, default=None),
            default_shipping_cost=to_decimal(cost, default=None),
        )

    @staticmethod
    def get_payment_methods() -> list:
        """Active method dicts, as stored."""
        raw = StoreSettingsService.get_value(Setting.Category.PAYMENT, KEY_PAYMENT_METHODS, [])
        if not isinstance(raw, list):
            logger.warning(f"Setting '{KEY_PAYMENT_METHODS}' is not a list, ignoring")
            return []
        return [m for m in raw if isinstance(m, dict) and m.get("isActive") is not False]

    @staticmethod
    def get_payment_catalog() -> PaymentMethodCatalog:
        return PaymentMethodCatalog.from_settings(StoreSettingsService.get_payment_methods())

    @staticmethod
    def get_payment_timeout_minutes() -> int:
        default = settings.PAYMENT_TIMEOUT_MINUTES
        raw = StoreSettingsService.get_value(Setting.Category.PAYMENT, KEY_PAYMENT_TIMEOUT, default)
        try:
            minutes = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid payment timeout setting {raw!r}, using {default}")
            return default
        return minutes if minutes >= 1 else default
