from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .services import StoreSettingsService


class PublicSettingsView(APIView):
    """
    GET /settings/?category=general
    Without a category: general settings plus the effective shipping fallback.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        category = request.query_params.get("category")
        return Response({"success": True, "data": StoreSettingsService.get_public_settings(category)})


class PaymentMethodsView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"success": True, "data": StoreSettingsService.get_payment_methods()})


class PaymentTimeoutView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"success": True, "data": StoreSettingsService.get_payment_timeout_minutes()})
