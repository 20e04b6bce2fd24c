from django.urls import path
from .views import MidtransWebhookView

urlpatterns = [
    path("midtrans/", MidtransWebhookView.as_view(), name="payment-midtrans-webhook"),
]
