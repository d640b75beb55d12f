"""
Super-admin facility (agency) management.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from portal.models import (
    Agency,
    AgencyUser,
    FacilityInvite,
    FamilyMember,
    ROLE_AGENCY_ADMIN,
    ROLE_AGENCY_STAFF,
    ROLE_SUPER_ADMIN,
)
from portal.services import email as email_service
from portal.services.access import parse_uuid
from portal.services.audit import log_action
from portal.services.magic_links import login_url

logger = logging.getLogger(__name__)

User = get_user_model()

EDITABLE_FIELDS = ('name', 'email', 'phone', 'address', 'city', 'state', 'zip_code', 'status',
                   'subscription_tier', 'max_patients', 'max_staff')


def serialize(a: Agency) -> dict:
    return {
        'id': str(a.id),
        'name': a.name,
        'email': a.email,
        'phone': a.phone,
        'address': a.address,
        'city': a.city,
        'state': a.state,
        'zipCode': a.zip_code,
        'status': a.status,
        'subscriptionTier': a.subscription_tier,
        'maxPatients': a.max_patients,
        'maxStaff': a.max_staff,
        'onboardingCompleted': a.onboarding_completed,
        'adminUserId': a.admin_user_id,
        'adminEmailPending': a.admin_email_pending or None,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


def _require_super(user) -> None:
    if getattr(user, 'role', None) != ROLE_SUPER_ADMIN:
        raise PermissionError('Super admin only')


def get_facility(user, facility_id) -> Agency:
    _require_super(user)
    agency = Agency.objects.filter(id=parse_uuid(facility_id, 'facility id')).first()
    if not agency:
        raise LookupError('Facility not found')
    return agency


def list_facilities(user, *, status: Optional[str] = None, q: Optional[str] = None):
    _require_super(user)
    qs = Agency.objects.all()
    if status:
        qs = qs.filter(status=status)
    if q:
        qs = qs.filter(name__icontains=q)
    return qs.order_by('name')


def _issue_admin_invite(creator, agency: Agency, admin_email: str, admin_name: str = '') -> FacilityInvite:
    """Create (or refresh) the facility invite and mail a magic sign-in link."""
    admin = User.objects.filter(email__iexact=admin_email).first()
    if admin is None:
        admin = User.objects.create_user(
            email=admin_email,
            full_name=admin_name or f"{agency.name} Admin",
            role=ROLE_AGENCY_ADMIN,
            agency=agency,
            needs_password_setup=True,
        )
    elif admin.role == ROLE_SUPER_ADMIN:
        raise ValueError('A super admin cannot be a facility administrator')
    elif not admin.agency_id:
        admin.agency = agency
        admin.save(update_fields=['agency'])

    expires_at = timezone.now() + timedelta(days=settings.INVITE_EXPIRY_DAYS)
    invite = FacilityInvite.objects.filter(agency=agency, email__iexact=admin_email).first()
    if invite:
        invite.token = uuid.uuid4()
        invite.expires_at = expires_at
        invite.created_by = creator
        invite.accepted_at = None
        invite.save(update_fields=['token', 'expires_at', 'created_by', 'accepted_at'])
    else:
        invite = FacilityInvite.objects.create(
            agency=agency, email=admin_email, role=ROLE_AGENCY_ADMIN,
            expires_at=expires_at, created_by=creator,
        )

    agency.admin_email_pending = admin_email
    agency.save(update_fields=['admin_email_pending', 'updated_at'])

    link = login_url(admin, facility_id=agency.id)
    agency_name = agency.name
    transaction.on_commit(lambda: email_service.send_facility_invite(
        email=admin_email, agency_name=agency_name, login_url=link,
    ))
    return invite


@transaction.atomic
def create_facility(user, data: dict) -> Agency:
    _require_super(user)
    name = (data.get('name') or '').strip()
    if not name:
        raise ValueError('Facility name is required')
    admin_email = (data.get('admin_email') or '').strip().lower()

    agency = Agency.objects.create(
        name=name,
        email=(data.get('email') or admin_email or '').strip(),
        phone=data.get('phone') or '',
        address=data.get('address') or '',
        city=data.get('city') or '',
        state=data.get('state') or '',
        zip_code=data.get('zip_code') or '',
        subscription_tier=data.get('subscription_tier') or 'standard',
        max_patients=data.get('max_patients') or 100,
        max_staff=data.get('max_staff') or 50,
        status='active',
        onboarding_completed=False,
    )
    if admin_email:
        _issue_admin_invite(user, agency, admin_email, data.get('admin_name') or '')
    log_action(user=user, action='facility_create', object_type='agency', object_id=agency.id,
               detail={'name': name, 'adminEmail': admin_email or None}, agency_id=agency.id)
    logger.info("facility %s created by %s", agency.id, user.pk)
    return agency


@transaction.atomic
def update_facility(user, facility_id, data: dict) -> Agency:
    agency = get_facility(user, facility_id)
    changed = [f for f in EDITABLE_FIELDS if f in data and data[f] is not None]
    if 'name' in changed and not str(data['name']).strip():
        raise ValueError('Facility name is required')
    for field in changed:
        setattr(agency, field, data[field])
    if changed:
        agency.save(update_fields=changed + ['updated_at'])
        log_action(user=user, action='facility_update', object_type='agency', object_id=agency.id,
                   detail={'fields': changed}, agency_id=agency.id)
    return agency


@transaction.atomic
def delete_facility(user, facility_id) -> None:
    agency = get_facility(user, facility_id)
    log_action(user=user, action='facility_delete', object_type='agency', object_id=agency.id,
               detail={'name': agency.name})
    User.objects.filter(agency=agency).update(agency=None)
    agency.delete()


def facility_stats(user, facility_id) -> dict:
    agency = get_facility(user, facility_id)
    return {
        'patients': agency.patients.count(),
        'staff': AgencyUser.objects.filter(agency=agency).count(),
        'familyMembers': FamilyMember.objects.filter(patient__agency=agency).count(),
    }


def list_facility_staff(user, facility_id) -> list:
    agency = get_facility(user, facility_id)
    return [
        {'userId': m.user_id, 'email': m.user.email, 'fullName': m.user.display_name,
         'role': m.role, 'jobRole': m.job_role}
        for m in AgencyUser.objects.select_related('user').filter(agency=agency).order_by('created_at')
    ]


@transaction.atomic
def add_staff(user, facility_id, email: str, role: str = ROLE_AGENCY_STAFF) -> AgencyUser:
    agency = get_facility(user, facility_id)
    role = role or ROLE_AGENCY_STAFF
    if role not in (ROLE_AGENCY_ADMIN, ROLE_AGENCY_STAFF):
        raise ValueError('Invalid role')
    member = User.objects.filter(email__iexact=(email or '').strip()).first()
    if not member:
        raise ValueError('User with this email does not exist. They must sign up first.')
    if AgencyUser.objects.filter(agency=agency, user=member).exists():
        raise ValueError('User is already assigned to this facility.')
    membership = AgencyUser.objects.create(agency=agency, user=member, role=role)
    if member.role != ROLE_SUPER_ADMIN:
        member.role = role
        if not member.agency_id:
            member.agency = agency
        member.save(update_fields=['role', 'agency'])
    log_action(user=user, action='facility_add_staff', object_type='user', object_id=member.pk,
               detail={'role': role}, agency_id=agency.id)
    return membership


@transaction.atomic
def remove_staff(user, facility_id, user_id) -> None:
    agency = get_facility(user, facility_id)
    deleted, _ = AgencyUser.objects.filter(agency=agency, user_id=user_id).delete()
    if not deleted:
        raise LookupError('Staff member not found')
    User.objects.filter(pk=user_id, agency=agency).update(agency=None)
    log_action(user=user, action='facility_remove_staff', object_type='user', object_id=user_id,
               agency_id=agency.id)


@transaction.atomic
def resend_facility_invite(user, facility_id) -> FacilityInvite:
    agency = get_facility(user, facility_id)
    admin_email = agency.admin_email_pending or agency.email
    if not admin_email:
        raise ValueError('No admin email found for this facility. Please edit the facility and add an admin email.')
    invite = _issue_admin_invite(user, agency, admin_email.lower())
    log_action(user=user, action='facility_invite_resend', object_type='agency', object_id=agency.id,
               detail={'email': admin_email}, agency_id=agency.id)
    return invite
