import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .services import PaymentService

logger = logging.getLogger(__name__)


class MidtransWebhookView(APIView):
    """
    Midtrans HTTP notification. Public; authenticity comes from the
    signature_key in the body, idempotency from WebhookLog.
    """
    permission_classes = []  # Allow public access for webhook
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        payload = request.data
        if not isinstance(payload, dict) or not payload.get("order_id"):
            logger.warning("Midtrans notification without order_id")
            return Response(
                {"success": False, "error": "Invalid notification", "code": "validation_error"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        order = PaymentService.process_notification(dict(payload))
        if order is None:
            return Response({"success": True, "message": "Already processed"}, status=status.HTTP_200_OK)
        return Response(
            {
                "success": True,
                "data": {"orderNumber": order.order_number, "paymentStatus": order.payment_status},
            },
            status=status.HTTP_200_OK,
        )
