from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.services import notifications as svc
from portal.services.access import parse_uuid


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications(request):
    unread_only = (request.query_params.get('unread') or '').lower() in ('1', 'true', 'yes')
    items, unread = svc.list_for_user(request.user, unread_only=unread_only,
                                      limit=request.query_params.get('limit') or 50)
    return Response({'ok': True, 'data': items, 'unread': unread})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_read(request, notification_id):
    n = svc.mark_read(request.user, parse_uuid(notification_id, 'notification id'))
    return Response({'ok': True, 'data': svc.serialize(n)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notifications_read_all(request):
    return Response({'ok': True, 'updated': svc.mark_all_read(request.user)})
