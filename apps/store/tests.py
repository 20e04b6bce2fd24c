from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient, APITestCase

from .models import Setting
from .services import StoreSettingsService


def payment_methods():
    return [
        {"id": "cod", "name": "Cash on Delivery", "type": "COD", "fee": 0},
        {"id": "bca", "name": "BCA Virtual Account", "type": "VIRTUAL_ACCOUNT", "fee": 4000},
        {"id": "qris", "name": "QRIS", "type": "QRIS", "fee": -1500},
        {"id": "bni", "name": "BNI Virtual Account", "type": "VIRTUAL_ACCOUNT", "fee": 4000, "isActive": False},
    ]


class StoreSettingsServiceTests(TestCase):
    def setUp(self):
        cache.clear()

    def test_global_shipping_falls_back_to_django_settings(self):
        with override_settings(DEFAULT_FREE_SHIPPING_THRESHOLD=Decimal("500"), DEFAULT_SHIPPING_COST=Decimal("15")):
            shipping = StoreSettingsService.get_global_shipping_settings()
        self.assertEqual(shipping.free_shipping_threshold, Decimal("500"))
        self.assertEqual(shipping.default_shipping_cost, Decimal("15"))

    def test_global_shipping_from_setting_rows(self):
        Setting.objects.create(key="freeShippingThreshold", value=300000, category=Setting.Category.SHIPPING)
        Setting.objects.create(key="defaultShippingCost", value="12000", category=Setting.Category.SHIPPING)

        shipping = StoreSettingsService.get_global_shipping_settings()

        self.assertEqual(shipping.free_shipping_threshold, Decimal("300000"))
        self.assertEqual(shipping.default_shipping_cost, Decimal("12000"))

    def test_saving_a_setting_invalidates_the_cache(self):
        row = Setting.objects.create(key="defaultShippingCost", value=10000, category=Setting.Category.SHIPPING)
        self.assertEqual(StoreSettingsService.get_global_shipping_settings().default_shipping_cost, Decimal("10000"))

        row.value = 20000
        row.save()

        self.assertEqual(StoreSettingsService.get_global_shipping_settings().default_shipping_cost, Decimal("20000"))

    def test_category_is_cached(self):
        Setting.objects.create(key="storeName", value="Toko", category=Setting.Category.GENERAL)
        StoreSettingsService.get_category(Setting.Category.GENERAL)

        with self.assertNumQueries(0):
            data = StoreSettingsService.get_category(Setting.Category.GENERAL)
        self.assertEqual(data, {"storeName": "Toko"})

    def test_payment_methods_filters_inactive(self):
        Setting.objects.create(key="paymentMethods", value=payment_methods(), category=Setting.Category.PAYMENT)

        ids = [m["id"] for m in StoreSettingsService.get_payment_methods()]

        self.assertEqual(ids, ["cod", "bca", "qris"])
        self.assertEqual(len(StoreSettingsService.get_payment_catalog()), 3)

    def test_payment_methods_ignores_malformed_value(self):
        Setting.objects.create(key="paymentMethods", value={"oops": True}, category=Setting.Category.PAYMENT)
        self.assertEqual(StoreSettingsService.get_payment_methods(), [])

    @override_settings(PAYMENT_TIMEOUT_MINUTES=1440)
    def test_payment_timeout_default_and_minimum(self):
        self.assertEqual(StoreSettingsService.get_payment_timeout_minutes(), 1440)

        row = Setting.objects.create(key="paymentTimeoutMinutes", value=0, category=Setting.Category.PAYMENT)
        self.assertEqual(StoreSettingsService.get_payment_timeout_minutes(), 1440)

        row.value = "soon"
        row.save()
        self.assertEqual(StoreSettingsService.get_payment_timeout_minutes(), 1440)

        row.value = 30
        row.save()
        self.assertEqual(StoreSettingsService.get_payment_timeout_minutes(), 30)


class PublicSettingsAPITests(APITestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        Setting.objects.create(key="storeName", value="Toko", category=Setting.Category.GENERAL)
        Setting.objects.create(key="freeShippingThreshold", value=150, category=Setting.Category.SHIPPING)
        Setting.objects.create(key="paymentMethods", value=payment_methods(), category=Setting.Category.PAYMENT)

    def test_default_settings_merge_general_and_shipping(self):
        response = self.client.get("/api/v1/settings/")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["storeName"], "Toko")
        self.assertEqual(Decimal(str(data["freeShippingThreshold"])), Decimal("150"))
        self.assertIn("defaultShippingCost", data)
        self.assertEqual(data["currency"], "IDR")

    def test_settings_by_category(self):
        response = self.client.get("/api/v1/settings/", {"category": "general"})
        self.assertEqual(response.json()["data"], {"storeName": "Toko"})

    def test_payment_methods_endpoint(self):
        response = self.client.get("/api/v1/settings/payment-methods/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["id"] for m in response.json()["data"]], ["cod", "bca", "qris"])

    def test_payment_timeout_endpoint(self):
        response = self.client.get("/api/v1/settings/payment-timeout/")
        self.assertEqual(response.json(), {"success": True, "data": 1440})
