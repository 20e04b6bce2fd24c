from django.urls import path
from .views import PaymentMethodsView, PaymentTimeoutView, PublicSettingsView

urlpatterns = [
    path("", PublicSettingsView.as_view(), name="settings-public"),
    path("payment-methods/", PaymentMethodsView.as_view(), name="settings-payment-methods"),
    path("payment-timeout/", PaymentTimeoutView.as_view(), name="settings-payment-timeout"),
]
