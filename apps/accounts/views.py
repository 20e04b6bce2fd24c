import uuid
from django.core.cache import cache
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .middleware import TICKET_CACHE_PREFIX, TICKET_TTL_SECONDS
from .serializers import UserSerializer


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({"success": True, "data": UserSerializer(request.user).data})


class CreateWsTicketView(APIView):
    """
    Generates a short-lived One-Time Ticket (OTT) for the order status
    WebSocket. Keeps JWTs out of URL query parameters.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ticket = str(uuid.uuid4())
        cache.set(f"{TICKET_CACHE_PREFIX}{ticket}", request.user.id, timeout=TICKET_TTL_SECONDS)
        return Response({"success": True, "data": {"ticket": ticket, "expiresIn": TICKET_TTL_SECONDS}})
