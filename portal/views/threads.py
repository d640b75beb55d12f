"""
Thread endpoints.  Live updates are pushed over ``ws/threads/<id>/``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.serializers.messaging import (
    ThreadCreateSerializer,
    ThreadListQuerySerializer,
    ThreadMessageSerializer,
    ThreadParticipantSerializer,
)
from portal.services import threads as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def threads(request):
    if request.method == 'POST':
        s = ThreadCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        thread = svc.create_thread(request.user, **s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_thread(thread)}, status=status.HTTP_201_CREATED)

    q = ThreadListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = svc.list_threads(request.user, category=q.validated_data.get('category'),
                            archived=q.validated_data.get('archived', False))
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def thread_detail(request, thread_id):
    return Response({'ok': True, 'data': svc.get_thread(request.user, thread_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def thread_messages(request, thread_id):
    s = ThreadMessageSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    msg = svc.send_thread_message(request.user, thread_id, s.validated_data['body'],
                                  s.validated_data.get('attachments') or ())
    return Response({'ok': True, 'data': svc.serialize_message(msg)}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def thread_read(request, thread_id):
    return Response({'ok': True, 'updated': svc.mark_thread_read(request.user, thread_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def thread_archive(request, thread_id):
    thread = svc.archive_thread(request.user, thread_id)
    return Response({'ok': True, 'archived': thread.archived_at is not None})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def thread_unarchive(request, thread_id):
    thread = svc.unarchive_thread(request.user, thread_id)
    return Response({'ok': True, 'archived': thread.archived_at is not None})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def thread_participants(request, thread_id):
    s = ThreadParticipantSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    p = svc.add_participant(request.user, thread_id, s.validated_data['userId'])
    return Response({'ok': True, 'userId': p.user_id, 'isAdmin': p.is_admin})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def thread_recipients(request):
    category = request.query_params.get('category') or 'family'
    return Response({'ok': True, 'data': svc.available_recipients(request.user, category)})
