from asgiref.sync import async_to_sync
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from .middleware import TICKET_CACHE_PREFIX, TicketAuthMiddleware

User = get_user_model()


class AuthAPITests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(
            username="budi", email="budi@example.com", password="s3cret-pass",
            first_name="Budi", last_name="Santoso",
        )

    def test_token_then_me(self):
        response = self.client.post(
            "/api/v1/auth/token/", {"username": "budi", "password": "s3cret-pass"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        access = response.json()["access"]

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["data"], {
            "id": self.user.id,
            "username": "budi",
            "email": "budi@example.com",
            "fullName": "Budi Santoso",
            "isStaff": False,
        })

    def test_wrong_password(self):
        response = self.client.post(
            "/api/v1/auth/token/", {"username": "budi", "password": "nope"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.json()["success"])

    def test_ws_ticket_is_stored_for_the_user(self):
        self.client.force_authenticate(self.user)

        response = self.client.post("/api/v1/auth/ws/ticket/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()["data"]
        self.assertEqual(data["expiresIn"], 30)
        self.assertEqual(cache.get(f"{TICKET_CACHE_PREFIX}{data['ticket']}"), self.user.id)

    def test_ws_ticket_requires_login(self):
        response = self.client.post("/api/v1/auth/ws/ticket/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class TicketAuthMiddlewareTests(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="budi", password="pass")

    def scope_user(self, query_string):
        seen = {}

        async def inner(scope, receive, send):
            seen["user"] = scope["user"]

        async def run():
            await TicketAuthMiddleware(inner)({"type": "websocket", "query_string": query_string}, None, None)

        async_to_sync(run)()
        return seen["user"]

    def test_ticket_is_single_use(self):
        cache.set(f"{TICKET_CACHE_PREFIX}abc", self.user.id, timeout=30)

        self.assertEqual(self.scope_user(b"ticket=abc"), self.user)
        self.assertTrue(self.scope_user(b"ticket=abc").is_anonymous)

    def test_missing_or_unknown_ticket(self):
        self.assertTrue(self.scope_user(b"").is_anonymous)
        self.assertTrue(self.scope_user(b"ticket=unknown").is_anonymous)

    def test_ticket_for_deleted_user(self):
        cache.set(f"{TICKET_CACHE_PREFIX}gone", 987654, timeout=30)
        self.assertTrue(self.scope_user(b"ticket=gone").is_anonymous)
