from __future__ import annotations

from typing import Optional

from django.db import transaction
from django.utils import timezone

from portal.models import SupplyRequest
from portal.services.access import (
    check_agency_object,
    get_patient_for,
    is_staff_role,
    parse_uuid,
    visible_patients,
)
from portal.services.audit import log_action
from portal.services.catalog import describe_items
from portal.services.deliveries import create_delivery
from portal.services.notifications import EVENT_SUPPLY_FULFILLED, notify_family

STATUS_TRANSITIONS = {
    'pending': {'approved', 'rejected', 'fulfilled', 'cancelled'},
    'approved': {'fulfilled', 'cancelled'},
    'rejected': set(),
    'fulfilled': set(),
    'cancelled': set(),
}


def serialize(r: SupplyRequest) -> dict:
    return {
        'id': str(r.id),
        'patientId': str(r.patient_id),
        'patientName': r.patient.full_name if r.patient_id else None,
        'requestedBy': r.requested_by_id,
        'requestedByName': r.requested_by.display_name if r.requested_by else None,
        'items': r.items,
        'itemSummary': describe_items(r.items, r.patient.agency_id) if r.items else '',
        'status': r.status,
        'notes': r.notes,
        'approvedAt': r.approved_at.isoformat() if r.approved_at else None,
        'fulfilledAt': r.fulfilled_at.isoformat() if r.fulfilled_at else None,
        'fulfilledByName': r.fulfilled_by_name or None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


def _clean_items(items) -> dict:
    if not isinstance(items, dict) or not items:
        raise ValueError('Select at least one item')
    cleaned = {}
    for key, qty in items.items():
        try:
            qty = int(qty)
        except (TypeError, ValueError):
            raise ValueError(f'Invalid quantity for {key}')
        if qty < 0:
            raise ValueError(f'Invalid quantity for {key}')
        if qty:
            cleaned[str(key).strip()] = qty
    if not cleaned:
        raise ValueError('Select at least one item')
    return cleaned


@transaction.atomic
def create_request(user, patient_id, items, notes: str = '') -> SupplyRequest:
    patient = get_patient_for(user, patient_id)
    req = SupplyRequest.objects.create(
        patient=patient,
        requested_by=user,
        items=_clean_items(items),
        notes=notes or '',
        status='pending',
    )
    log_action(user=user, action='supply_request_create', object_type='supply_request', object_id=req.id,
               detail={'items': req.items}, agency_id=patient.agency_id)
    return req


def list_requests(user, *, patient_id=None, status: Optional[str] = None):
    qs = SupplyRequest.objects.select_related('patient', 'requested_by').filter(patient__in=visible_patients(user))
    if patient_id:
        qs = qs.filter(patient_id=parse_uuid(patient_id, 'patient id'))
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at')


def _get_for_staff(user, request_id) -> SupplyRequest:
    if not is_staff_role(user):
        raise PermissionError('Only agency staff can manage supply requests')
    req = SupplyRequest.objects.select_related('patient').filter(id=parse_uuid(request_id, 'request id')).first()
    if not req:
        raise LookupError('Supply request not found')
    check_agency_object(user, req.patient.agency_id)
    return req


@transaction.atomic
def update_status(user, request_id, status: str, *, notes: Optional[str] = None) -> SupplyRequest:
    req = _get_for_staff(user, request_id)
    if status == req.status:
        return req
    if status not in STATUS_TRANSITIONS.get(req.status, set()):
        raise ValueError(f'Cannot change a {req.status} request to {status}')
    now = timezone.now()
    req.status = status
    fields = ['status', 'updated_at']
    if status == 'approved':
        req.approved_at = now
        req.approved_by = user
        fields += ['approved_at', 'approved_by']
    elif status == 'fulfilled':
        req.fulfilled_at = now
        req.fulfilled_by_name = user.display_name
        fields += ['fulfilled_at', 'fulfilled_by_name']
    if notes is not None:
        req.notes = notes
        fields.append('notes')
    req.save(update_fields=fields)
    log_action(user=user, action='supply_request_status', object_type='supply_request', object_id=req.id,
               detail={'status': status}, agency_id=req.patient.agency_id)
    if status == 'fulfilled':
        notify_family(req.patient, EVENT_SUPPLY_FULFILLED, {}, reference_id=req.id)
    return req


@transaction.atomic
def delete_request(user, request_id) -> None:
    req = SupplyRequest.objects.select_related('patient').filter(id=parse_uuid(request_id, 'request id')).first()
    if not req:
        raise LookupError('Supply request not found')
    if is_staff_role(user):
        check_agency_object(user, req.patient.agency_id)
    elif req.requested_by_id != user.id or req.status != 'pending':
        raise PermissionError('Only pending requests you created can be withdrawn')
    req.delete()


@transaction.atomic
def create_delivery_from_request(user, request_id, data: dict):
    """Ship the items of a supply request and mark it fulfilled."""
    req = _get_for_staff(user, request_id)
    if req.status in ('rejected', 'cancelled', 'fulfilled'):
        raise ValueError(f'Cannot ship a {req.status} request')
    payload = dict(data)
    payload['patient_id'] = req.patient_id
    payload.setdefault('items', req.items)
    delivery = create_delivery(user, payload, supply_request=req)
    update_status(user, req.id, 'fulfilled')
    return delivery
