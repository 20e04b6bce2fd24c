import logging

from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.payments.services import PaymentService
from apps.utils.throttle import BurstRateThrottle, PaymentSyncThrottle
from . import lifecycle
from .models import Order, OrderCancellation
from .serializers import (
    AdminStatusSerializer,
    BuyNowSerializer,
    CancelOrderSerializer,
    CartItemInputSerializer,
    CartItemUpdateSerializer,
    CartSerializer,
    CheckoutSerializer,
    OrderListSerializer,
    OrderSerializer,
)
from .services import CartService, CheckoutService, OrderService

logger = logging.getLogger(__name__)


def _order_detail(order_number, user):
    return OrderSerializer(OrderService.get_for_user(user, order_number)).data


# ---- cart ----

class CartView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        cart = CartService.get_cart(request.user)
        return Response({"success": True, "data": CartSerializer(cart).data})

    def delete(self, request):
        CartService.get_cart(request.user).items.all().delete()
        return Response({"success": True, "message": "Cart cleared"})


class CartItemsView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CartItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        CartService.add_item(
            request.user,
            data["productId"],
            quantity=data["quantity"],
            color=data["color"],
            size=data["size"],
            image_url=data["imageUrl"],
        )
        cart = CartService.get_cart(request.user)
        return Response({"success": True, "data": CartSerializer(cart).data}, status=status.HTTP_201_CREATED)


class CartItemDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, item_id):
        serializer = CartItemUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        CartService.update_item(request.user, item_id, serializer.validated_data["quantity"])
        return Response({"success": True, "data": CartSerializer(CartService.get_cart(request.user)).data})

    def delete(self, request, item_id):
        CartService.remove_item(request.user, item_id)
        return Response({"success": True, "data": CartSerializer(CartService.get_cart(request.user)).data})


# ---- checkout ----

class CheckoutCalculateView(APIView):
    """
    Breakdown preview for the checkout page. Same inputs as checkout; an
    incomplete session still gets a breakdown plus the list of what is
    missing.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        buy_now = bool(request.data.get("productId"))
        serializer = (BuyNowSerializer if buy_now else CheckoutSerializer)(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = CheckoutService.build_session(request.user, serializer.validated_data, buy_now=buy_now)
        breakdown = CheckoutService.preview(session)
        return Response({
            "success": True,
            "data": {
                "breakdown": breakdown.as_dict(),
                "itemCount": breakdown.item_count,
                "isReady": session.is_ready,
                "errors": session.validation_errors(),
            },
        })


class CheckoutView(APIView):
    """
    POST /checkout/          cart flow (optionally a subset via itemIds)
    POST /checkout/buy-now/  single product
    """
    permission_classes = [IsAuthenticated]
    throttle_classes = [BurstRateThrottle]
    buy_now = False

    def post(self, request):
        serializer = (BuyNowSerializer if self.buy_now else CheckoutSerializer)(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = CheckoutService.build_session(request.user, serializer.validated_data, buy_now=self.buy_now)
        order = CheckoutService.place_order(request.user, session)

        next_step = "payment" if lifecycle.awaits_gateway(order.payment_method) else "success"
        return Response(
            {
                "success": True,
                "message": "Order created successfully",
                "data": {
                    "orderNumber": order.order_number,
                    "paymentMethod": order.payment_method,
                    "next": next_step,
                    "order": _order_detail(order.order_number, request.user),
                },
            },
            status=status.HTTP_201_CREATED,
        )


class BuyNowCheckoutView(CheckoutView):
    buy_now = True


# ---- orders ----

class OrderListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        orders = Order.objects.filter(user=request.user).prefetch_related("items")
        order_status = request.query_params.get("status")
        if order_status:
            orders = orders.filter(status=order_status.upper())
        return Response({"success": True, "data": OrderListSerializer(orders, many=True).data})


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, order_number):
        return Response({"success": True, "data": _order_detail(order_number, request.user)})


class CancelOrderView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, order_number):
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # Ownership check before locking
        OrderService.get_for_user(request.user, order_number)
        OrderService.cancel_order(
            order_number,
            reason=serializer.validated_data["reason"],
            cancelled_by=OrderCancellation.CancelledBy.CUSTOMER,
            user=request.user,
        )
        return Response({
            "success": True,
            "message": "Order cancelled",
            "data": _order_detail(order_number, request.user),
        })


class SyncPaymentView(APIView):
    """
    Ask the gateway for the latest payment status of one of the caller's
    orders. Polled by the payment page.
    """
    permission_classes = [IsAuthenticated]
    throttle_classes = [PaymentSyncThrottle]

    def post(self, request, order_number):
        order = OrderService.get_for_user(request.user, order_number)
        order, payment_status, synced = PaymentService.sync_payment_status(order)
        return Response({
            "success": True,
            "data": {
                "order": _order_detail(order.order_number, request.user),
                "paymentStatus": payment_status,
                "synced": synced,
            },
        })


class AdminOrderStatusView(APIView):
    permission_classes = [IsAdminUser]

    def put(self, request, order_number):
        serializer = AdminStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.update_status(
            order_number,
            serializer.validated_data["status"],
            user=request.user,
            note=serializer.validated_data["note"],
        )
        logger.info(f"Admin {request.user.pk} set {order.order_number} to {order.status}")
        return Response({"success": True, "data": OrderSerializer(order).data})
