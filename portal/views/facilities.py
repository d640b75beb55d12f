"""
Super-admin facility management.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsSuperAdmin
from portal.serializers.facilities import FacilityStaffSerializer, FacilityWriteSerializer
from portal.services import facilities as svc


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facilities(request):
    if request.method == 'POST':
        s = FacilityWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        agency = svc.create_facility(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize(agency)}, status=status.HTTP_201_CREATED)
    qs = svc.list_facilities(request.user, status=request.query_params.get('status'),
                             q=request.query_params.get('q'))
    return Response({'ok': True, 'data': [svc.serialize(a) for a in qs]})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facility_detail(request, facility_id):
    if request.method == 'DELETE':
        svc.delete_facility(request.user, facility_id)
        return Response({'ok': True})
    if request.method == 'PATCH':
        s = FacilityWriteSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        agency = svc.update_facility(request.user, facility_id, s.validated_data)
    else:
        agency = svc.get_facility(request.user, facility_id)
    return Response({'ok': True, 'data': svc.serialize(agency)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facility_stats(request, facility_id):
    return Response({'ok': True, **svc.facility_stats(request.user, facility_id)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facility_staff(request, facility_id):
    if request.method == 'POST':
        s = FacilityStaffSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        m = svc.add_staff(request.user, facility_id, s.validated_data['email'], s.validated_data.get('role'))
        return Response({'ok': True, 'userId': m.user_id, 'role': m.role}, status=status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': svc.list_facility_staff(request.user, facility_id)})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facility_staff_remove(request, facility_id, user_id):
    svc.remove_staff(request.user, facility_id, user_id)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def facility_resend_invite(request, facility_id):
    invite = svc.resend_facility_invite(request.user, facility_id)
    return Response({'ok': True, 'email': invite.email, 'expiresAt': invite.expires_at.isoformat()})
