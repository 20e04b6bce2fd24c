# apps/catalog/tests.py
from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from .models import Product


class ProductModelTests(TestCase):
    def test_slug_auto_generated_and_unique(self):
        p1 = Product.objects.create(name="Linen Shirt", price="100.00")
        p2 = Product.objects.create(name="Linen Shirt", price="120.00")

        self.assertNotEqual(p1.slug, p2.slug)
        self.assertTrue(p1.slug.startswith("linen-shirt"))
        self.assertTrue(p2.slug.startswith("linen-shirt"))

    def test_effective_price_uses_lower_sale_price_only(self):
        self.assertEqual(Product(price=Decimal("100"), sale_price=Decimal("80")).effective_price, Decimal("80"))
        self.assertEqual(Product(price=Decimal("100"), sale_price=Decimal("120")).effective_price, Decimal("100"))
        self.assertEqual(Product(price=Decimal("100"), sale_price=None).effective_price, Decimal("100"))


class ProductViewSetTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.active = Product.objects.create(
            name="Canvas Tote",
            price="100.00",
            sale_price="80.00",
            stock_quantity=5,
            free_shipping_threshold="150.00",
            default_shipping_cost="10.00",
        )
        self.inactive = Product.objects.create(name="Old Tote", price="40.00", is_active=False)

    def test_public_list_only_active_products(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [item["id"] for item in response.json()]
        self.assertIn(str(self.active.id), ids)
        self.assertNotIn(str(self.inactive.id), ids)

    def test_detail_exposes_price_and_shipping_policy(self):
        response = self.client.get(f"/api/v1/products/{self.active.id}/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertTrue(body["success"])
        data = body["data"]
        self.assertEqual(Decimal(str(data["price"])), Decimal("100"))
        self.assertEqual(Decimal(str(data["salePrice"])), Decimal("80"))
        self.assertEqual(Decimal(str(data["effectivePrice"])), Decimal("80"))
        self.assertEqual(Decimal(str(data["freeShippingThreshold"])), Decimal("150"))
        self.assertEqual(Decimal(str(data["defaultShippingCost"])), Decimal("10"))
        self.assertIsNone(data["serviceFee"])

    def test_inactive_product_is_not_found(self):
        response = self.client.get(f"/api/v1/products/{self.inactive.id}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()["success"], False)
