"""
Team management and the anonymous accept-invite flow.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsAgencyAdmin, IsAgencyStaff
from portal.serializers.team import (
    InvitationAcceptSerializer,
    InvitationValidateSerializer,
    TeamInviteSerializer,
    TeamRoleSerializer,
)
from portal.services import invitations as svc


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAgencyStaff])
def team_members(request):
    return Response({'ok': True, 'data': svc.get_team_members(request.user)})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def team_member_detail(request, user_id):
    if request.method == 'DELETE':
        svc.remove_team_member(request.user, user_id)
        return Response({'ok': True})
    s = TeamRoleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    membership = svc.update_team_member_role(request.user, user_id, s.validated_data['role'])
    return Response({'ok': True, 'userId': membership.user_id, 'role': membership.role})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def team_invitations(request):
    if request.method == 'POST':
        s = TeamInviteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        result = svc.invite_team_member(request.user, **s.validated_data)
        result.pop('token', None)
        return Response({'ok': True, **result}, status=status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': svc.get_pending_invitations(request.user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def team_invitation_resend(request, invitation_id):
    return Response({'ok': True, **svc.resend_invitation(request.user, invitation_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def team_invitation_cancel(request, invitation_id):
    inv = svc.cancel_invitation(request.user, invitation_id)
    return Response({'ok': True, 'data': svc.serialize(inv)})


@api_view(['GET'])
@permission_classes([AllowAny])
def invitation_validate(request):
    q = InvitationValidateSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    try:
        inv = svc.validate_invitation(q.validated_data['token'], q.validated_data['email'])
    except ValueError as e:
        return Response({'ok': False, 'valid': False, 'detail': str(e)}, status=400)
    return Response({'ok': True, 'valid': True, 'invitation': svc.describe_invitation(inv)})

invitation_validate.cls.throttle_scope = 'invite_accept'


@api_view(['POST'])
@permission_classes([AllowAny])
def invitation_accept(request):
    s = InvitationAcceptSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = svc.accept_invitation(**s.validated_data)
    return Response({'ok': True, **result})

invitation_accept.cls.throttle_scope = 'invite_accept'
