import os
import django

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
django.setup()

from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from apps.accounts.middleware import TicketAuthMiddleware  # noqa: E402
from apps.payments import routing as payments_routing  # noqa: E402

websocket_urlpatterns = payments_routing.websocket_urlpatterns

application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    "websocket": AllowedHostsOriginValidator(
        TicketAuthMiddleware(
            URLRouter(
                websocket_urlpatterns
            )
        )
    ),
})
