"""
First-login facility setup wizard and the admin onboarding checklist.

Wizard steps, derived from persisted state rather than stored:

1. set a password (while ``User.needs_password_setup`` is true)
2. configure the facility
3. invite staff (optional)
4. complete setup

Steps 2-4 refuse to run until the password has been set.
"""
from __future__ import annotations

import logging
from typing import Iterable

from django.db import transaction
from django.utils import timezone

from portal.models import (
    Agency,
    AgencyUser,
    FacilityInvite,
    OnboardingProgress,
    ROLE_AGENCY_ADMIN,
    ROLE_AGENCY_STAFF,
    ROLE_SUPER_ADMIN,
    TeamInvitation,
)
from portal.services.access import get_agency_id, parse_uuid
from portal.services.audit import log_action
from portal.services.invitations import create_invitation

logger = logging.getLogger(__name__)

STEP_PASSWORD = 1
STEP_FACILITY = 2
STEP_STAFF = 3
STEP_COMPLETE = 4

MIN_PASSWORD_LENGTH = 8
CHECKLIST_STEPS = 6
FACILITY_FIELDS = ('name', 'phone', 'address', 'city', 'state', 'zip_code')


def _facility_for(user, facility_id) -> Agency:
    agency = Agency.objects.filter(id=parse_uuid(facility_id, 'facility id')).first()
    if not agency:
        raise LookupError('Facility not found')
    if user.role == ROLE_SUPER_ADMIN or user.agency_id == agency.id:
        return agency
    if FacilityInvite.objects.filter(agency=agency, email__iexact=user.email).exists():
        return agency
    raise PermissionError('You are not linked to this facility')


def _require_password(user) -> None:
    if user.needs_password_setup:
        raise ValueError('Set your password first')


def _facility_configured(agency: Agency) -> bool:
    return bool(agency.name and agency.phone and agency.address)


def serialize_facility(agency: Agency) -> dict:
    return {
        'id': str(agency.id),
        'name': agency.name,
        'email': agency.email,
        'phone': agency.phone,
        'address': agency.address,
        'city': agency.city,
        'state': agency.state,
        'zipCode': agency.zip_code,
        'status': agency.status,
        'onboardingCompleted': agency.onboarding_completed,
    }


def get_setup_state(user, facility_id) -> dict:
    agency = _facility_for(user, facility_id)
    invited = TeamInvitation.objects.filter(agency=agency).exists()
    if user.needs_password_setup:
        step = STEP_PASSWORD
    elif not _facility_configured(agency):
        step = STEP_FACILITY
    elif not invited:
        step = STEP_STAFF
    else:
        step = STEP_COMPLETE
    return {
        'step': step,
        'needsPasswordSetup': user.needs_password_setup,
        'facilityConfigured': _facility_configured(agency),
        'staffInvited': invited,
        'onboardingCompleted': agency.onboarding_completed,
        'facility': serialize_facility(agency),
    }


def set_password(user, password: str, confirm: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if password != confirm:
        raise ValueError('Passwords do not match')
    user.set_password(password)
    user.needs_password_setup = False
    user.save(update_fields=['password', 'needs_password_setup'])
    log_action(user=user, action='setup_password', object_type='user', object_id=user.pk,
               agency_id=user.agency_id)


@transaction.atomic
def configure_facility(user, facility_id, data: dict) -> Agency:
    agency = _facility_for(user, facility_id)
    _require_password(user)
    name = (data.get('name') or '').strip()
    if not name:
        raise ValueError('Facility name is required')
    agency.name = name
    for field in FACILITY_FIELDS[1:]:
        if field in data:
            setattr(agency, field, (data.get(field) or '').strip())
    agency.save(update_fields=list(FACILITY_FIELDS) + ['updated_at'])
    log_action(user=user, action='setup_facility', object_type='agency', object_id=agency.id,
               detail={'name': name}, agency_id=agency.id)
    return agency


def invite_staff(user, facility_id, rows: Iterable[dict]) -> list:
    """Invite each row; a failing row is reported and the rest still go out."""
    agency = _facility_for(user, facility_id)
    _require_password(user)
    results = []
    for row in rows or ():
        name = (row.get('name') or '').strip()
        email = (row.get('email') or '').strip()
        if not name or not email:
            results.append({'email': email, 'success': False, 'error': 'Staff name and email are required'})
            continue
        try:
            result = create_invitation(user, agency, email=email, full_name=name,
                                       role=row.get('role') or ROLE_AGENCY_STAFF)
        except ValueError as e:
            results.append({'email': email, 'success': False, 'error': str(e)})
            continue
        results.append({'email': email, 'success': True, 'invitationId': result['invitationId'],
                        'emailSent': result['emailSent']})
    logger.info("facility %s: %d staff invitations processed", agency.id, len(results))
    return results


@transaction.atomic
def complete_setup(user, facility_id, *, token=None) -> Agency:
    agency = _facility_for(user, facility_id)
    _require_password(user)
    now = timezone.now()

    agency.onboarding_completed = True
    agency.admin_user = user
    agency.admin_email_pending = ''
    agency.save(update_fields=['onboarding_completed', 'admin_user', 'admin_email_pending', 'updated_at'])

    user.onboarding_completed = True
    fields = ['onboarding_completed']
    if not user.agency_id:
        user.agency = agency
        fields.append('agency')
    user.save(update_fields=fields)

    invites = FacilityInvite.objects.filter(agency=agency, accepted_at__isnull=True)
    if token:
        invites = invites.filter(token=parse_uuid(token, 'token'))
    else:
        invites = invites.filter(email__iexact=user.email)
    invites.update(accepted_at=now)

    AgencyUser.objects.get_or_create(user=user, agency=agency, defaults={'role': ROLE_AGENCY_ADMIN})
    log_action(user=user, action='setup_complete', object_type='agency', object_id=agency.id,
               agency_id=agency.id)
    return agency


# ---------------------------------------------------------------------------
# Admin onboarding checklist
# ---------------------------------------------------------------------------

def serialize_progress(p: OnboardingProgress) -> dict:
    return {
        'agencyId': str(p.agency_id),
        'stepsCompleted': p.steps_completed,
        'currentStep': p.current_step,
        'completed': p.completed,
        'completedAt': p.completed_at.isoformat() if p.completed_at else None,
    }


def get_progress(user) -> OnboardingProgress:
    agency_id = get_agency_id(user)
    if not agency_id:
        raise ValueError('No agency found')
    progress, _ = OnboardingProgress.objects.get_or_create(agency_id=agency_id)
    return progress


@transaction.atomic
def update_progress(user, step: int, completed: bool = True) -> OnboardingProgress:
    progress = get_progress(user)
    step = int(step)
    if step < 1:
        raise ValueError('Invalid step')
    steps = list(progress.steps_completed or [])
    if completed and step not in steps:
        steps.append(step)
    progress.steps_completed = steps
    progress.current_step = step + 1 if completed else step
    progress.completed = len(steps) >= CHECKLIST_STEPS
    progress.completed_at = timezone.now() if progress.completed else None
    progress.save()
    return progress


def reset_progress(user) -> OnboardingProgress:
    progress = get_progress(user)
    progress.steps_completed = []
    progress.current_step = 1
    progress.completed = False
    progress.completed_at = None
    progress.save()
    return progress
