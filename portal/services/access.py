"""
Tenant scoping helpers.

Staff reach their agency through an :class:`AgencyUser` membership (or the
``User.agency`` shortcut); family users reach patients through
:class:`FamilyMember` links.  Super admins see everything.
"""
from __future__ import annotations

import uuid
from typing import Optional

from django.contrib.auth import get_user_model

from portal.models import (
    AgencyUser,
    FAMILY_ROLES,
    Patient,
    ROLE_SUPER_ADMIN,
    STAFF_ROLES,
)

User = get_user_model()


def is_super(user) -> bool:
    return getattr(user, 'role', None) == ROLE_SUPER_ADMIN


def is_staff_role(user) -> bool:
    return getattr(user, 'role', None) in STAFF_ROLES


def is_family_role(user) -> bool:
    return getattr(user, 'role', None) in FAMILY_ROLES


def get_membership(user) -> Optional[AgencyUser]:
    if not getattr(user, 'pk', None):
        return None
    qs = AgencyUser.objects.select_related('agency').filter(user=user)
    if getattr(user, 'agency_id', None):
        preferred = qs.filter(agency_id=user.agency_id).first()
        if preferred:
            return preferred
    return qs.order_by('created_at').first()


def get_agency_id(user):
    """Return the agency the user acts for, or None."""
    membership = get_membership(user)
    if membership:
        return membership.agency_id
    return getattr(user, 'agency_id', None)


def parse_uuid(value, field: str = 'id') -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValueError(f'Invalid {field}')


def visible_patients(user):
    """Queryset of patients the user may see."""
    qs = Patient.objects.select_related('agency')
    if is_super(user):
        return qs
    if is_staff_role(user):
        agency_id = get_agency_id(user)
        return qs.filter(agency_id=agency_id) if agency_id else qs.none()
    if is_family_role(user):
        return qs.filter(family_members__user=user).distinct()
    return qs.none()


def get_patient_for(user, patient_id) -> Patient:
    """Fetch a patient within the user's scope or raise ``PermissionError``.

    Missing and foreign patients are indistinguishable to the caller.
    """
    pid = parse_uuid(patient_id, 'patient id')
    patient = visible_patients(user).filter(id=pid).first()
    if not patient:
        raise PermissionError('Patient not found or unauthorized')
    return patient


def check_agency_object(user, agency_id) -> None:
    """Raise ``PermissionError`` unless the object's agency is the user's."""
    if is_super(user):
        return
    if not agency_id or agency_id != get_agency_id(user):
        raise PermissionError('Forbidden')
