import os

os.environ.setdefault("DEBUG", "True")

from .settings import *  # noqa: E402,F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "storefront-tests",
    }
}

CHANNEL_LAYERS = {
    "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

# Throttles are exercised explicitly where needed
REST_FRAMEWORK = dict(REST_FRAMEWORK)  # noqa: F405
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    "burst": "10000/min",
    "sustained": "100000/hour",
    "payment_sync": "10000/min",
    "anon": "10000/min",
}

MIDTRANS_SERVER_KEY = "SB-Mid-server-test-key"
MIDTRANS_BASE_URL = "https://api.sandbox.midtrans.test"
MIDTRANS_NOTIFICATION_URL = ""

DEFAULT_FREE_SHIPPING_THRESHOLD = None
DEFAULT_SHIPPING_COST = None
PAYMENT_SYNC_INTERVAL_SECONDS = 0

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "CRITICAL"},
}
