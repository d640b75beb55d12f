"""
Inbound webhooks.

Both endpoints are unauthenticated at the DRF level and check a shared
secret instead when one is configured.
"""
from __future__ import annotations

import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from portal.serializers.messaging import NotificationWebhookSerializer
from portal.services import notifications
from portal.services.deliveries import apply_tracking_event

logger = logging.getLogger(__name__)


def _secret_ok(expected: str, provided) -> bool:
    if not expected:
        return True
    return bool(provided) and hmac.compare_digest(str(provided), expected)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def notifications_webhook(request):
    if not _secret_ok(settings.NOTIFICATION_WEBHOOK_SECRET, request.headers.get('X-Webhook-Secret')):
        return Response({'ok': False, 'detail': 'Invalid webhook secret'}, status=status.HTTP_401_UNAUTHORIZED)
    s = NotificationWebhookSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    n = notifications.handle_event(s.validated_data['event'], s.validated_data.get('data'))
    logger.info("notification %s written for event %s", n.id, n.type)
    return Response({'ok': True, 'success': True, 'id': str(n.id)}, status=status.HTTP_201_CREATED)

notifications_webhook.cls.throttle_scope = 'webhook'


@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def tracking_webhook(request):
    """17track push endpoint; GET is used by 17track to verify the URL."""
    if request.method == 'GET':
        return Response({'status': 'active', 'message': '17track webhook endpoint'})

    sign = request.headers.get('sign') or request.query_params.get('sign')
    if not _secret_ok(settings.TRACKING_WEBHOOK_SECRET, sign):
        return Response({'success': False, 'message': 'Invalid signature'}, status=status.HTTP_401_UNAUTHORIZED)

    payload = request.data if isinstance(request.data, dict) else {}
    data = payload.get('data') or {}
    number = (data.get('number') or '').strip() if isinstance(data, dict) else ''
    if not number:
        return Response({'success': False, 'message': 'Missing tracking number'}, status=status.HTTP_400_BAD_REQUEST)

    info = data.get('track_info') or {}
    latest_status = (info.get('latest_status') or {}).get('status')
    description = (info.get('latest_event') or {}).get('description')
    logger.info("17track %s for %s: status=%s", payload.get('event'), number, latest_status)
    return Response(apply_tracking_event(number, latest_status, description))

tracking_webhook.cls.throttle_scope = 'webhook'
