import logging
import time

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """Log API requests that fail or take longer than ``SLOW_MS``."""
    SLOW_MS = 1000
    PREFIXES = ('/api/', '/auth/')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ''
        if not path.startswith(self.PREFIXES):
            return self.get_response(request)
        started = time.monotonic()
        response = self.get_response(request)
        elapsed = int((time.monotonic() - started) * 1000)
        if response.status_code >= 500:
            logger.error("%s %s -> %s in %sms", request.method, path, response.status_code, elapsed)
        elif response.status_code >= 400 or elapsed > self.SLOW_MS:
            logger.info("%s %s -> %s in %sms", request.method, path, response.status_code, elapsed)
        return response
