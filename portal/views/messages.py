from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.serializers.messaging import MessageCreateSerializer, MessageListQuerySerializer
from portal.services import messaging as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def messages(request):
    if request.method == 'POST':
        s = MessageCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        msg = svc.send_message(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize(msg)}, status=status.HTTP_201_CREATED)

    q = MessageListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    page = q.validated_data.get('page', 1)
    page_size = q.validated_data.get('pageSize', 50)
    items, total = svc.list_messages(request.user, patient_id=q.validated_data.get('patientId'),
                                     page=page, page_size=page_size)
    return Response({'ok': True, 'data': items,
                     'pagination': {'total': total, 'page': page, 'pageSize': page_size}})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def message_read(request, message_id):
    msg = svc.mark_message_read(request.user, message_id)
    return Response({'ok': True, 'data': svc.serialize(msg)})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def message_detail(request, message_id):
    svc.delete_message(request.user, message_id)
    return Response({'ok': True})
