from __future__ import annotations

from typing import Optional

from django.db import transaction
from django.utils import timezone

from portal.models import Visit, VisitFeedback
from portal.services.access import (
    check_agency_object,
    get_patient_for,
    is_family_role,
    is_staff_role,
    parse_uuid,
    visible_patients,
)
from portal.services.audit import log_action
from portal.services.notifications import (
    EVENT_VISIT_COMPLETED,
    EVENT_VISIT_SCHEDULED,
    notify_family,
)

UPDATABLE_FIELDS = ('staff_name', 'discipline', 'scheduled_date', 'scheduled_time', 'status', 'notes')


def serialize(v: Visit) -> dict:
    return {
        'id': str(v.id),
        'patientId': str(v.patient_id),
        'patientName': v.patient.full_name,
        'staffName': v.staff_name,
        'discipline': v.discipline,
        'scheduledDate': v.scheduled_date.isoformat() if v.scheduled_date else None,
        'scheduledTime': v.scheduled_time.strftime('%H:%M') if v.scheduled_time else None,
        'status': v.status,
        'notes': v.notes,
        'createdAt': v.created_at.isoformat() if v.created_at else None,
    }


def list_visits(user, *, patient_id=None, status: Optional[str] = None, upcoming: bool = False):
    qs = Visit.objects.select_related('patient').filter(patient__in=visible_patients(user))
    if patient_id:
        qs = qs.filter(patient_id=parse_uuid(patient_id, 'patient id'))
    if status:
        qs = qs.filter(status=status)
    if upcoming:
        qs = qs.filter(scheduled_date__gte=timezone.localdate()).exclude(status__in=['completed', 'cancelled'])
    return qs.order_by('scheduled_date', 'scheduled_time')


def _staff_only(user):
    if not is_staff_role(user):
        raise PermissionError('Only agency staff can manage visits')


@transaction.atomic
def create_visit(user, data: dict) -> Visit:
    _staff_only(user)
    patient = get_patient_for(user, data.get('patient_id'))
    visit = Visit.objects.create(
        patient=patient,
        staff_name=data.get('staff_name') or '',
        discipline=data.get('discipline') or '',
        scheduled_date=data['scheduled_date'],
        scheduled_time=data.get('scheduled_time'),
        notes=data.get('notes') or '',
        status='scheduled',
    )
    log_action(user=user, action='visit_create', object_type='visit', object_id=visit.id,
               detail={'patientId': str(patient.id)}, agency_id=patient.agency_id)
    notify_family(patient, EVENT_VISIT_SCHEDULED,
                  {'discipline': visit.discipline, 'visit_date': visit.scheduled_date.isoformat()},
                  reference_id=visit.id)
    return visit


def _get_for_staff(user, visit_id) -> Visit:
    _staff_only(user)
    visit = Visit.objects.select_related('patient').filter(id=parse_uuid(visit_id, 'visit id')).first()
    if not visit:
        raise LookupError('Visit not found')
    check_agency_object(user, visit.patient.agency_id)
    return visit


@transaction.atomic
def update_visit(user, visit_id, data: dict) -> Visit:
    visit = _get_for_staff(user, visit_id)
    previous = visit.status
    changed = [f for f in UPDATABLE_FIELDS if f in data]
    for field in changed:
        value = data[field]
        setattr(visit, field, '' if value is None and field in ('staff_name', 'discipline', 'notes') else value)
    if changed:
        visit.save(update_fields=changed + ['updated_at'])
    if visit.status != previous:
        log_action(user=user, action='visit_status', object_type='visit', object_id=visit.id,
                   detail={'from': previous, 'to': visit.status}, agency_id=visit.patient.agency_id)
        if visit.status == 'completed':
            notify_family(visit.patient, EVENT_VISIT_COMPLETED, {'staff_name': visit.staff_name or 'Your care team'},
                          reference_id=visit.id)
    return visit


@transaction.atomic
def delete_visit(user, visit_id) -> None:
    visit = _get_for_staff(user, visit_id)
    log_action(user=user, action='visit_delete', object_type='visit', object_id=visit.id,
               agency_id=visit.patient.agency_id)
    visit.delete()


@transaction.atomic
def submit_feedback(user, visit_id, *, rating: int, comment: str = '') -> VisitFeedback:
    if not is_family_role(user):
        raise PermissionError('Only family members can rate visits')
    visit = Visit.objects.select_related('patient').filter(id=parse_uuid(visit_id, 'visit id')).first()
    if not visit or not visible_patients(user).filter(id=visit.patient_id).exists():
        raise LookupError('Visit not found')
    if visit.status != 'completed':
        raise ValueError('Feedback can only be left for completed visits')
    rating = int(rating)
    if rating < 1 or rating > 5:
        raise ValueError('Rating must be between 1 and 5')
    return VisitFeedback.objects.create(
        visit=visit,
        patient=visit.patient,
        submitted_by=user,
        rating=rating,
        comment=comment or '',
        # low ratings go to the agency's review queue
        flagged=rating <= 2,
    )
