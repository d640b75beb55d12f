from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsFamily
from portal.serializers.visits import (
    VisitCreateSerializer,
    VisitFeedbackSerializer,
    VisitListQuerySerializer,
    VisitUpdateSerializer,
)
from portal.services import visits as svc


@api_view(['GET', 'POST', 'PATCH'])
@permission_classes([IsAuthenticated])
def visits(request):
    if request.method == 'POST':
        s = VisitCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        visit = svc.create_visit(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize(visit)}, status=status.HTTP_201_CREATED)

    if request.method == 'PATCH':
        s = VisitUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        data = dict(s.validated_data)
        visit_id = data.pop('id', None)
        if not visit_id:
            return Response({'ok': False, 'detail': 'Visit id is required'}, status=400)
        visit = svc.update_visit(request.user, visit_id, data)
        return Response({'ok': True, 'data': svc.serialize(visit)})

    q = VisitListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_visits(request.user, patient_id=q.validated_data.get('patientId'),
                         status=q.validated_data.get('status'), upcoming=q.validated_data.get('upcoming', False))
    return Response({'ok': True, 'data': [svc.serialize(v) for v in qs]})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def visit_detail(request, visit_id):
    svc.delete_visit(request.user, visit_id)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsFamily])
def visit_feedback(request, visit_id):
    s = VisitFeedbackSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    fb = svc.submit_feedback(request.user, visit_id, rating=s.validated_data['rating'],
                             comment=s.validated_data.get('comment', ''))
    return Response({'ok': True, 'id': str(fb.id), 'flagged': fb.flagged}, status=status.HTTP_201_CREATED)
