"""
Facility setup wizard (first login of a new agency admin) and the
agency onboarding checklist.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsAgencyStaff
from portal.serializers.onboarding import (
    CompleteSetupSerializer,
    ConfigureFacilitySerializer,
    FacilityQuerySerializer,
    InviteStaffSerializer,
    OnboardingStepSerializer,
    SetPasswordSerializer,
)
from portal.services import onboarding as svc


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def setup_state(request):
    q = FacilityQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, **svc.get_setup_state(request.user, q.validated_data['facility'])})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def setup_password(request):
    s = SetPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.set_password(request.user, s.validated_data['password'], s.validated_data['confirm'])
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def setup_facility(request):
    s = ConfigureFacilitySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    agency = svc.configure_facility(request.user, data.pop('facility'), data)
    return Response({'ok': True, 'facility': svc.serialize_facility(agency)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def setup_staff(request):
    s = InviteStaffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    results = svc.invite_staff(request.user, s.validated_data['facility'], s.validated_data['staff'])
    failed = sum(1 for r in results if not r['success'])
    return Response({'ok': True, 'results': results, 'failed': failed})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def setup_complete(request):
    s = CompleteSetupSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    agency = svc.complete_setup(request.user, s.validated_data['facility'], token=s.validated_data.get('token'))
    return Response({'ok': True, 'facility': svc.serialize_facility(agency), 'redirect': '/admin'})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAgencyStaff])
def onboarding_progress(request):
    if request.method == 'POST':
        s = OnboardingStepSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        progress = svc.update_progress(request.user, s.validated_data['step'], s.validated_data['completed'])
    else:
        progress = svc.get_progress(request.user)
    return Response({'ok': True, 'data': svc.serialize_progress(progress)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAgencyStaff])
def onboarding_reset(request):
    return Response({'ok': True, 'data': svc.serialize_progress(svc.reset_progress(request.user))})
