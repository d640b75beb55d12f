import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Service error carrying an explicit HTTP status."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def service_error_status(exc):
    """HTTP status for an exception raised by ``portal.services``, or None."""
    if isinstance(exc, PortalError):
        return exc.status
    if isinstance(exc, PermissionError):
        return 403
    if isinstance(exc, (KeyError, IndexError)):
        return None
    if isinstance(exc, LookupError):
        return 404
    if isinstance(exc, ValueError):
        return 400
    return None


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        status = service_error_status(exc)
        if status is not None:
            return Response({'ok': False, 'detail': str(exc)}, status=status)
        logger.exception("unhandled API error: %s", exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}},
                        status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
