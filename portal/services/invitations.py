"""
Team invitations and family invites.

An agency administrator invites a colleague by email.  The invitation
carries a 64 character hex token that is mailed as an accept link and can
be redeemed exactly once before it expires.  Family invites issued from a
patient record (``FamilyMember.invite_token``) are redeemed through the
same validate and accept calls.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Union

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from portal.exceptions import PortalError
from portal.models import (
    Agency,
    AgencyUser,
    FAMILY_ROLES,
    FamilyMember,
    ROLE_AGENCY_ADMIN,
    ROLE_AGENCY_STAFF,
    ROLE_FAMILY_ADMIN,
    ROLE_SUPER_ADMIN,
    TeamInvitation,
)
from portal.services import email as email_service
from portal.services.access import get_agency_id, parse_uuid
from portal.services.audit import log_action

logger = logging.getLogger(__name__)

User = get_user_model()

TEAM_ROLES = {ROLE_AGENCY_ADMIN, ROLE_AGENCY_STAFF}
MIN_PASSWORD_LENGTH = 6

NOT_FOUND = 'Invitation not found. It may have been cancelled or already used.'
ALREADY_USED = 'This invitation has already been accepted or cancelled.'
EXPIRED = 'This invitation has expired. Please ask your administrator to send a new one.'


def serialize(inv: TeamInvitation) -> dict:
    return {
        'id': str(inv.id),
        'agencyId': str(inv.agency_id),
        'email': inv.email,
        'fullName': inv.full_name,
        'role': inv.role,
        'jobRole': inv.job_role,
        'status': inv.status,
        'expiresAt': inv.expires_at.isoformat() if inv.expires_at else None,
        'expired': bool(inv.expires_at and inv.expires_at < timezone.now()),
        'invitedByName': inv.invited_by_name,
        'acceptedAt': inv.accepted_at.isoformat() if inv.accepted_at else None,
        'createdAt': inv.created_at.isoformat() if inv.created_at else None,
    }


def serialize_member(m: AgencyUser) -> dict:
    u = m.user
    return {
        'userId': u.pk,
        'email': u.email,
        'fullName': u.display_name,
        'phone': u.phone,
        'role': m.role,
        'jobRole': m.job_role,
        'isActive': u.is_active,
        'lastLogin': u.last_login.isoformat() if u.last_login else None,
        'joinedAt': m.created_at.isoformat() if m.created_at else None,
    }


def _require_admin(user) -> None:
    if getattr(user, 'role', None) not in (ROLE_AGENCY_ADMIN, ROLE_SUPER_ADMIN):
        raise PermissionError('Only administrators can manage the team')


def _agency_for(user) -> Agency:
    agency_id = get_agency_id(user)
    agency = Agency.objects.filter(id=agency_id).first() if agency_id else None
    if not agency:
        raise ValueError('No agency found')
    return agency


def _new_token() -> tuple[str, datetime]:
    return secrets.token_hex(32), timezone.now() + timedelta(days=settings.INVITE_EXPIRY_DAYS)


def _send(inv: TeamInvitation, agency: Agency) -> bool:
    sent = email_service.send_team_invitation(
        email=inv.email, token=inv.token, role=inv.role, agency_name=agency.name,
        inviter_name=inv.invited_by_name or agency.name, full_name=inv.full_name or None,
    )
    if not sent:
        logger.warning("invitation email to %s for agency %s was not sent", inv.email, agency.id)
    return sent


def create_invitation(inviter, agency: Agency, *, email: str, full_name: str = '',
                      role: str = ROLE_AGENCY_STAFF, job_role: str = '') -> dict:
    """Create and mail one invitation for ``agency``.

    Used by the team page and by the facility setup wizard.
    """
    email = (email or '').strip().lower()
    if not email:
        raise ValueError('Email is required')
    role = role or ROLE_AGENCY_STAFF
    if role not in TEAM_ROLES:
        raise ValueError('Invalid role')
    if TeamInvitation.objects.filter(agency=agency, email__iexact=email,
                                     status=TeamInvitation.STATUS_PENDING).exists():
        raise ValueError('This email has already been invited')
    if AgencyUser.objects.filter(agency=agency, user__email__iexact=email).exists():
        raise ValueError('This user is already a member of your team')
    if agency.members.count() >= agency.max_staff:
        raise ValueError('Staff limit reached for this agency')

    token, expires_at = _new_token()
    with transaction.atomic():
        inv = TeamInvitation.objects.create(
            agency=agency,
            email=email,
            full_name=(full_name or '').strip(),
            role=role,
            job_role=(job_role or '').strip(),
            token=token,
            expires_at=expires_at,
            invited_by=inviter,
            invited_by_name=inviter.display_name if inviter else '',
        )
        log_action(user=inviter, action='team_invite', object_type='team_invitation', object_id=inv.id,
                   detail={'email': email, 'role': role}, agency_id=agency.id)
    sent = _send(inv, agency)
    return {'success': True, 'invitationId': str(inv.id), 'token': inv.token, 'emailSent': sent}


def invite_team_member(inviter, *, email: str, full_name: str = '', role: str = ROLE_AGENCY_STAFF,
                       job_role: str = '') -> dict:
    _require_admin(inviter)
    agency = _agency_for(inviter)
    return create_invitation(inviter, agency, email=email, full_name=full_name, role=role, job_role=job_role)


def _get_for_admin(user, invitation_id) -> TeamInvitation:
    _require_admin(user)
    agency = _agency_for(user)
    inv = TeamInvitation.objects.select_related('agency').filter(
        id=parse_uuid(invitation_id, 'invitation id'), agency=agency).first()
    if not inv:
        raise LookupError('Invitation not found')
    return inv


def resend_invitation(user, invitation_id) -> dict:
    inv = _get_for_admin(user, invitation_id)
    if inv.status != TeamInvitation.STATUS_PENDING:
        raise ValueError(ALREADY_USED)
    inv.token, inv.expires_at = _new_token()
    inv.save(update_fields=['token', 'expires_at'])
    log_action(user=user, action='team_invite_resend', object_type='team_invitation', object_id=inv.id,
               detail={'email': inv.email}, agency_id=inv.agency_id)
    sent = _send(inv, inv.agency)
    return {'success': True, 'invitationId': str(inv.id), 'emailSent': sent}


def cancel_invitation(user, invitation_id) -> TeamInvitation:
    inv = _get_for_admin(user, invitation_id)
    if inv.status != TeamInvitation.STATUS_PENDING:
        raise ValueError(ALREADY_USED)
    inv.status = TeamInvitation.STATUS_CANCELLED
    inv.save(update_fields=['status'])
    log_action(user=user, action='team_invite_cancel', object_type='team_invitation', object_id=inv.id,
               detail={'email': inv.email}, agency_id=inv.agency_id)
    return inv


def get_team_members(user) -> list:
    agency = _agency_for(user)
    qs = AgencyUser.objects.select_related('user').filter(agency=agency).order_by('created_at')
    return [serialize_member(m) for m in qs]


def get_pending_invitations(user) -> list:
    agency = _agency_for(user)
    qs = TeamInvitation.objects.filter(agency=agency, status=TeamInvitation.STATUS_PENDING)
    return [serialize(inv) for inv in qs.order_by('-created_at')]


def _get_member(admin, user_id) -> AgencyUser:
    _require_admin(admin)
    agency = _agency_for(admin)
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        raise ValueError('Invalid user id')
    membership = AgencyUser.objects.select_related('user').filter(agency=agency, user_id=uid).first()
    if not membership:
        raise LookupError('Team member not found')
    return membership


@transaction.atomic
def update_team_member_role(admin, user_id, role: str) -> AgencyUser:
    membership = _get_member(admin, user_id)
    if membership.user_id == admin.pk:
        raise ValueError('You cannot change your own role')
    if role not in TEAM_ROLES:
        raise ValueError('Invalid role')
    membership.role = role
    membership.save(update_fields=['role'])
    member = membership.user
    if member.role != ROLE_SUPER_ADMIN:
        member.role = role
        member.save(update_fields=['role'])
    log_action(user=admin, action='team_role_change', object_type='user', object_id=member.pk,
               detail={'role': role}, agency_id=membership.agency_id)
    return membership


@transaction.atomic
def remove_team_member(admin, user_id) -> None:
    membership = _get_member(admin, user_id)
    if membership.user_id == admin.pk:
        raise ValueError('You cannot remove yourself from the team')
    member = membership.user
    agency_id = membership.agency_id
    membership.delete()
    if member.agency_id == agency_id:
        member.agency = None
        member.save(update_fields=['agency'])
    log_action(user=admin, action='team_remove', object_type='user', object_id=member.pk,
               detail={'email': member.email}, agency_id=agency_id)


# ---------------------------------------------------------------------------
# Accepting
# ---------------------------------------------------------------------------

def _check_pending(status_ok: bool, expires_at) -> None:
    if not status_ok:
        raise ValueError(ALREADY_USED)
    if expires_at and expires_at < timezone.now():
        raise ValueError(EXPIRED)


def validate_invitation(token: Optional[str], email: Optional[str]) -> Union[TeamInvitation, FamilyMember]:
    """Return the pending team invitation or family invite for ``token`` and ``email``.

    Raises ``ValueError`` with a user-facing message otherwise.
    """
    token = (token or '').strip()
    email = (email or '').strip().lower()
    if not token:
        raise ValueError(NOT_FOUND)
    inv = TeamInvitation.objects.select_related('agency').filter(token=token).first()
    if inv:
        if inv.email.lower() != email:
            raise ValueError(NOT_FOUND)
        _check_pending(inv.status == TeamInvitation.STATUS_PENDING, inv.expires_at)
        return inv
    member = FamilyMember.objects.select_related('patient', 'patient__agency').filter(invite_token=token).first()
    if not member or member.email.lower() != email:
        raise ValueError(NOT_FOUND)
    _check_pending(member.status == 'invited', member.invite_expires_at)
    return member


def describe_invitation(inv: Union[TeamInvitation, FamilyMember]) -> dict:
    if isinstance(inv, FamilyMember):
        agency = inv.patient.agency
        return {
            'kind': 'family',
            'email': inv.email,
            'fullName': inv.name,
            'role': inv.role,
            'roleLabel': email_service.role_label(inv.role),
            'relationship': inv.relationship,
            'patientName': inv.patient.full_name,
            'agencyId': str(agency.id),
            'agencyName': agency.name,
            'expiresAt': inv.invite_expires_at.isoformat() if inv.invite_expires_at else None,
        }
    return {
        'kind': 'team',
        'email': inv.email,
        'fullName': inv.full_name,
        'role': inv.role,
        'roleLabel': email_service.role_label(inv.role),
        'jobRole': inv.job_role,
        'agencyId': str(inv.agency_id),
        'agencyName': inv.agency.name,
        'invitedByName': inv.invited_by_name,
        'expiresAt': inv.expires_at.isoformat(),
    }


def _check_password(password: str, confirm: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if password != confirm:
        raise ValueError('Passwords do not match')


@transaction.atomic
def accept_invitation(*, token: str, email: str, full_name: str, password: str, confirm: str) -> dict:
    inv = validate_invitation(token, email)
    if isinstance(inv, FamilyMember):
        return _accept_family_invite(inv, full_name=full_name, password=password, confirm=confirm)
    inv = TeamInvitation.objects.select_for_update().select_related('agency').get(pk=inv.pk)
    if inv.status != TeamInvitation.STATUS_PENDING:
        raise ValueError(ALREADY_USED)

    full_name = (full_name or '').strip()
    if not full_name:
        raise ValueError('Full name is required')
    _check_password(password, confirm)

    user = User.objects.filter(email__iexact=inv.email).first()
    if user is None:
        user = User(username=inv.email, email=inv.email)
    elif user.role == ROLE_SUPER_ADMIN:
        raise PortalError('This account cannot join an agency team', 409)
    user.full_name = full_name
    user.set_password(password)
    user.role = inv.role
    user.agency = inv.agency
    user.onboarding_completed = True
    user.needs_password_setup = False
    user.is_active = True
    user.save()

    AgencyUser.objects.update_or_create(
        user=user, agency=inv.agency,
        defaults={'role': inv.role, 'job_role': inv.job_role},
    )
    inv.status = TeamInvitation.STATUS_ACCEPTED
    inv.accepted_at = timezone.now()
    inv.save(update_fields=['status', 'accepted_at'])
    log_action(user=user, action='team_invite_accept', object_type='team_invitation', object_id=inv.id,
               detail={'email': inv.email}, agency_id=inv.agency_id)
    logger.info("invitation %s accepted by user %s", inv.id, user.pk)
    return {'success': True, 'userId': user.pk, 'agencyId': str(inv.agency_id), 'role': inv.role}


def _accept_family_invite(member: FamilyMember, *, full_name: str, password: str, confirm: str) -> dict:
    member = FamilyMember.objects.select_for_update().select_related('patient').get(pk=member.pk)
    if member.status != 'invited':
        raise ValueError(ALREADY_USED)
    _check_password(password, confirm)

    user = User.objects.filter(email__iexact=member.email).first()
    if user is None:
        user = User(username=member.email, email=member.email, role=member.role)
    elif user.role not in FAMILY_ROLES:
        raise PortalError('This account cannot join as a family member', 409)
    elif member.role == ROLE_FAMILY_ADMIN:
        user.role = ROLE_FAMILY_ADMIN
    user.full_name = (full_name or '').strip() or user.full_name or member.name
    user.set_password(password)
    user.needs_password_setup = False
    user.is_active = True
    user.save()

    member.user = user
    member.status = 'active'
    member.save(update_fields=['user', 'status'])
    agency_id = member.patient.agency_id
    log_action(user=user, action='family_invite_accept', object_type='family_member', object_id=member.id,
               detail={'email': member.email, 'patientId': str(member.patient_id)}, agency_id=agency_id)
    logger.info("family invite %s accepted by user %s", member.id, user.pk)
    return {'success': True, 'userId': user.pk, 'agencyId': str(agency_id), 'role': user.role,
            'patientId': str(member.patient_id)}
