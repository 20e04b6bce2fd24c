import logging
import time
from django.utils.deprecation import MiddlewareMixin
from django.http import JsonResponse

from .exceptions import GENERIC_ERROR_MESSAGE

logger = logging.getLogger("apps.requests")


class RequestLogMiddleware(MiddlewareMixin):
    """
    One log line per API request: method, path, status, duration.
    """
    def process_request(self, request):
        request._started_at = time.monotonic()

    def process_response(self, request, response):
        started = getattr(request, "_started_at", None)
        if started is None or not request.path.startswith("/api/"):
            return response

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.path} -> {response.status_code}",
            extra={"duration_ms": duration_ms},
        )
        return response


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views.
    """
    def process_exception(self, request, exception):
        logger.exception(f"Unhandled Middleware Exception: {str(exception)}")
        if request.path.startswith('/api/'):
            return JsonResponse(
                {"success": False, "error": GENERIC_ERROR_MESSAGE, "code": "server_error"},
                status=500
            )
        return None  # Let Django's default 500 handler work for HTML
