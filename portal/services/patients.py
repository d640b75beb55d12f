"""
Patients and their invited family members.
"""
from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from portal.exceptions import PortalError
from portal.models import Agency, FamilyMember, Patient
from portal.services import email as email_service
from portal.services.access import (
    check_agency_object,
    get_agency_id,
    get_patient_for,
    is_staff_role,
    is_super,
    parse_uuid,
    visible_patients,
)
from portal.services.audit import log_action

User = get_user_model()

PATIENT_FIELDS = ('first_name', 'last_name', 'date_of_birth', 'status', 'admission_date', 'discharge_date',
                  'address', 'phone', 'email')


def serialize(p: Patient) -> dict:
    return {
        'id': str(p.id),
        'agencyId': str(p.agency_id),
        'firstName': p.first_name,
        'lastName': p.last_name,
        'name': p.full_name,
        'dateOfBirth': p.date_of_birth.isoformat() if p.date_of_birth else None,
        'status': p.status,
        'admissionDate': p.admission_date.isoformat() if p.admission_date else None,
        'dischargeDate': p.discharge_date.isoformat() if p.discharge_date else None,
        'address': p.address,
        'phone': p.phone,
        'email': p.email,
    }


def serialize_family(m: FamilyMember) -> dict:
    return {
        'id': str(m.id),
        'patientId': str(m.patient_id),
        'userId': m.user_id,
        'name': m.name,
        'email': m.email,
        'phone': m.phone or None,
        'relationship': m.relationship,
        'role': m.role,
        'status': m.status,
        'isPrimaryContact': m.is_primary_contact,
        'inviteExpiresAt': m.invite_expires_at.isoformat() if m.invite_expires_at else None,
    }


def list_patients(user, *, status: Optional[str] = None, q: Optional[str] = None):
    qs = visible_patients(user)
    if status:
        qs = qs.filter(status=status)
    if q:
        qs = qs.filter(Q(first_name__icontains=q) | Q(last_name__icontains=q))
    return qs


def _staff_only(user):
    if not is_staff_role(user):
        raise PermissionError('Only agency staff can manage patients')


@transaction.atomic
def create_patient(user, data: dict) -> Patient:
    _staff_only(user)
    agency_id = get_agency_id(user)
    if is_super(user) and data.get('agency_id'):
        agency_id = parse_uuid(data['agency_id'], 'agency id')
    if not agency_id:
        raise PortalError('No agency found', 401)
    agency = Agency.objects.get(id=agency_id)
    if agency.patients.exclude(status__in=['discharged', 'deceased', 'archived']).count() >= agency.max_patients:
        raise ValueError('Patient limit reached for this agency')
    patient = Patient.objects.create(
        agency=agency,
        **{f: data[f] for f in PATIENT_FIELDS if data.get(f) is not None},
    )
    log_action(user=user, action='patient_create', object_type='patient', object_id=patient.id,
               detail={'name': patient.full_name}, agency_id=agency.id)
    return patient


def _get_for_staff(user, patient_id) -> Patient:
    _staff_only(user)
    patient = Patient.objects.filter(id=parse_uuid(patient_id, 'patient id')).first()
    if not patient:
        raise LookupError('Patient not found')
    check_agency_object(user, patient.agency_id)
    return patient


@transaction.atomic
def update_patient(user, patient_id, data: dict) -> Patient:
    patient = _get_for_staff(user, patient_id)
    changed = [f for f in PATIENT_FIELDS if f in data]
    for field in changed:
        value = data[field]
        if value is None and field not in ('date_of_birth', 'admission_date', 'discharge_date'):
            value = ''
        setattr(patient, field, value)
    if data.get('status') == 'discharged' and not patient.discharge_date:
        patient.discharge_date = timezone.localdate()
        changed.append('discharge_date')
    if changed:
        patient.save(update_fields=list(dict.fromkeys(changed)) + ['updated_at'])
        log_action(user=user, action='patient_update', object_type='patient', object_id=patient.id,
                   detail={'fields': changed}, agency_id=patient.agency_id)
    return patient


@transaction.atomic
def delete_patient(user, patient_id) -> None:
    patient = _get_for_staff(user, patient_id)
    log_action(user=user, action='patient_delete', object_type='patient', object_id=patient.id,
               detail={'name': patient.full_name}, agency_id=patient.agency_id)
    patient.delete()


# ---------------------------------------------------------------------------
# Family members
# ---------------------------------------------------------------------------

def _check_duplicates(patient: Patient, *, name: str, email: str, phone: str, exclude_id=None) -> None:
    qs = FamilyMember.objects.filter(patient=patient)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    if qs.filter(email__iexact=email).exists():
        raise ValueError('A family member with this email already exists for this patient')
    if qs.filter(name__iexact=name).exists():
        raise ValueError('A family member with this name already exists for this patient')
    if phone and qs.filter(phone=phone).exists():
        raise ValueError('A family member with this phone number already exists for this patient')


def _can_manage_family(user, patient: Patient) -> bool:
    if is_staff_role(user):
        return True
    # a family admin may invite relatives to their own patient
    return FamilyMember.objects.filter(patient=patient, user=user, role='family_admin').exists()


@transaction.atomic
def invite_family_member(user, patient_id, data: dict) -> FamilyMember:
    patient = get_patient_for(user, patient_id)
    if not _can_manage_family(user, patient):
        raise PermissionError('Only agency staff or the family administrator can invite family members')
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    phone = (data.get('phone') or '').strip()
    if not name or not email:
        raise ValueError('Name and email are required')
    _check_duplicates(patient, name=name, email=email, phone=phone)

    member = FamilyMember.objects.create(
        patient=patient,
        name=name,
        email=email,
        phone=phone,
        relationship=data.get('relationship') or '',
        role=data.get('role') or 'family_member',
        is_primary_contact=bool(data.get('is_primary_contact')),
        status='invited',
        invite_token=secrets.token_hex(32),
        invite_expires_at=timezone.now() + timedelta(days=settings.INVITE_EXPIRY_DAYS),
    )
    log_action(user=user, action='family_invite', object_type='family_member', object_id=member.id,
               detail={'email': email, 'patientId': str(patient.id)}, agency_id=patient.agency_id)
    transaction.on_commit(lambda: email_service.send_family_invite(
        email=member.email, name=member.name, patient_name=patient.full_name,
        agency_name=patient.agency.name, token=member.invite_token,
    ))
    return member


def _get_family_member(user, member_id) -> FamilyMember:
    member = FamilyMember.objects.select_related('patient', 'patient__agency').filter(
        id=parse_uuid(member_id, 'family member id')).first()
    if not member or not visible_patients(user).filter(id=member.patient_id).exists():
        raise LookupError('Family member not found')
    if not _can_manage_family(user, member.patient):
        raise PermissionError('Not allowed to manage this family member')
    return member


@transaction.atomic
def update_family_member(user, member_id, data: dict) -> FamilyMember:
    member = _get_family_member(user, member_id)
    name = (data.get('name', member.name) or '').strip()
    email = (data.get('email', member.email) or '').strip().lower()
    phone = (data.get('phone', member.phone) or '').strip()
    if not name or not email:
        raise ValueError('Name and email are required')
    _check_duplicates(member.patient, name=name, email=email, phone=phone, exclude_id=member.id)
    member.name, member.email, member.phone = name, email, phone
    if 'relationship' in data:
        member.relationship = data['relationship'] or ''
    if 'is_primary_contact' in data:
        member.is_primary_contact = bool(data['is_primary_contact'])
    member.save()
    return member


@transaction.atomic
def delete_family_member(user, member_id) -> None:
    member = _get_family_member(user, member_id)
    log_action(user=user, action='family_remove', object_type='family_member', object_id=member.id,
               detail={'email': member.email}, agency_id=member.patient.agency_id)
    member.delete()


@transaction.atomic
def resend_family_invite(user, member_id) -> FamilyMember:
    member = _get_family_member(user, member_id)
    if member.status != 'invited':
        raise ValueError('This family member has already joined')
    member.invite_token = secrets.token_hex(32)
    member.invite_expires_at = timezone.now() + timedelta(days=settings.INVITE_EXPIRY_DAYS)
    member.save(update_fields=['invite_token', 'invite_expires_at'])
    patient = member.patient
    transaction.on_commit(lambda: email_service.send_family_invite(
        email=member.email, name=member.name, patient_name=patient.full_name,
        agency_name=patient.agency.name, token=member.invite_token,
    ))
    return member
