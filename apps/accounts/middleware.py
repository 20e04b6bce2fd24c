from channels.db import database_sync_to_async
from django.contrib.auth.models import AnonymousUser
from django.contrib.auth import get_user_model
from django.core.cache import cache
from urllib.parse import parse_qs

TICKET_CACHE_PREFIX = "ws_ticket:"
TICKET_TTL_SECONDS = 30


@database_sync_to_async
def get_user_from_id(user_id):
    User = get_user_model()
    try:
        return User.objects.get(id=user_id)
    except User.DoesNotExist:
        return AnonymousUser()


class TicketAuthMiddleware:
    """
    Channels middleware authenticating a WebSocket via a One-Time Ticket
    (?ticket=...) issued by CreateWsTicketView. Replaces AuthMiddlewareStack
    so tokens never travel in the URL.
    """
    def __init__(self, inner):
        self.inner = inner

    async def __call__(self, scope, receive, send):
        query_string = scope.get("query_string", b"").decode("utf-8")
        params = parse_qs(query_string)
        ticket = params.get("ticket", [None])[0]

        scope = dict(scope, user=AnonymousUser())
        if ticket:
            cache_key = f"{TICKET_CACHE_PREFIX}{ticket}"
            user_id = cache.get(cache_key)
            if user_id:
                # One-time use
                cache.delete(cache_key)
                scope["user"] = await get_user_from_id(user_id)

        return await self.inner(scope, receive, send)
