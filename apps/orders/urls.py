from django.urls import path
from . import views

urlpatterns = [
    path('cart/', views.CartView.as_view(), name='cart'),
    path('cart/items/', views.CartItemsView.as_view(), name='cart-items'),
    path('cart/items/<uuid:item_id>/', views.CartItemDetailView.as_view(), name='cart-item-detail'),

    path('checkout/', views.CheckoutView.as_view(), name='checkout'),
    path('checkout/buy-now/', views.BuyNowCheckoutView.as_view(), name='checkout-buy-now'),
    path('checkout/calculate/', views.CheckoutCalculateView.as_view(), name='checkout-calculate'),

    path('orders/', views.OrderListView.as_view(), name='order-list'),
    path('orders/<str:order_number>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('orders/<str:order_number>/cancel/', views.CancelOrderView.as_view(), name='order-cancel'),
    path('orders/<str:order_number>/sync-payment/', views.SyncPaymentView.as_view(), name='order-sync-payment'),

    path('admin/orders/<str:order_number>/status/', views.AdminOrderStatusView.as_view(), name='admin-order-status'),
]
