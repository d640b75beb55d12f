"""
Patient records and their family members.

Staff manage patients inside their agency; family users only ever see
the patients they are linked to.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.models import FamilyMember
from portal.serializers.patients import FamilyMemberSerializer, PatientListQuerySerializer, PatientWriteSerializer
from portal.services import patients as svc
from portal.services.access import get_patient_for


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patients(request):
    if request.method == 'POST':
        s = PatientWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = svc.create_patient(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize(patient)}, status=status.HTTP_201_CREATED)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_patients(request.user, status=q.validated_data.get('status'), q=q.validated_data.get('q'))
    page = q.validated_data.get('page', 1)
    page_size = q.validated_data.get('pageSize', 50)
    total = qs.count()
    start = (page - 1) * page_size
    data = [svc.serialize(p) for p in qs[start:start + page_size]]
    return Response({'ok': True, 'data': data,
                     'pagination': {'total': total, 'page': page, 'pageSize': page_size}})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def patient_detail(request, patient_id):
    if request.method == 'GET':
        patient = get_patient_for(request.user, patient_id)
        return Response({'ok': True, 'data': svc.serialize(patient)})
    if request.method == 'DELETE':
        svc.delete_patient(request.user, patient_id)
        return Response({'ok': True})

    s = PatientWriteSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    patient = svc.update_patient(request.user, patient_id, s.validated_data)
    return Response({'ok': True, 'data': svc.serialize(patient)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def family_members(request, patient_id):
    if request.method == 'POST':
        s = FamilyMemberSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        member = svc.invite_family_member(request.user, patient_id, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize_family(member)}, status=status.HTTP_201_CREATED)

    patient = get_patient_for(request.user, patient_id)
    qs = FamilyMember.objects.filter(patient=patient).order_by('-is_primary_contact', 'name')
    return Response({'ok': True, 'data': [svc.serialize_family(m) for m in qs]})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def family_member_detail(request, member_id):
    if request.method == 'DELETE':
        svc.delete_family_member(request.user, member_id)
        return Response({'ok': True})
    s = FamilyMemberSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    member = svc.update_family_member(request.user, member_id, s.validated_data)
    return Response({'ok': True, 'data': svc.serialize_family(member)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def family_member_resend(request, member_id):
    member = svc.resend_family_invite(request.user, member_id)
    return Response({'ok': True, 'data': svc.serialize_family(member)})
