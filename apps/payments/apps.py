from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.payments"

    def ready(self):
        # Realtime push on order changes; money logic stays in services.py
        import apps.payments.receivers  # noqa: F401
