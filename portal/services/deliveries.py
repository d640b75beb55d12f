"""
Deliveries of supplies to patients.

Creation normalizes the requested item keys into a readable
``item_name`` and, once the row is committed, forwards the tracking
number to 17track.  Registration problems are logged and never undo the
delivery.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from portal.exceptions import PortalError
from portal.models import Delivery, SupplyRequest
from portal.services import tracking
from portal.services.access import (
    check_agency_object,
    get_agency_id,
    get_patient_for,
    is_super,
    parse_uuid,
    visible_patients,
)
from portal.services.audit import log_action
from portal.services.catalog import describe_items
from portal.services.notifications import EVENT_DELIVERY_UPDATED, notify_family

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('item_name', 'carrier', 'tracking_number', 'tracking_url', 'status',
                    'estimated_delivery', 'notes')


def serialize(d: Delivery) -> dict:
    patient = d.patient
    return {
        'id': str(d.id),
        'patientId': str(d.patient_id),
        'patientName': patient.full_name if patient else None,
        'supplyRequestId': str(d.supply_request_id) if d.supply_request_id else None,
        'itemName': d.item_name,
        'carrier': d.carrier,
        'trackingNumber': d.tracking_number,
        'trackingUrl': d.tracking_url,
        'status': d.status,
        'estimatedDelivery': d.estimated_delivery.isoformat() if d.estimated_delivery else None,
        'notes': d.notes,
        'lastUpdate': d.last_update.isoformat() if d.last_update else None,
        'deliveredAt': d.delivered_at.isoformat() if d.delivered_at else None,
        'createdAt': d.created_at.isoformat() if d.created_at else None,
    }


def _register_after_commit(delivery: Delivery) -> None:
    if not (delivery.tracking_url or delivery.tracking_number):
        return

    def _register():
        try:
            result = tracking.register_tracking_number(delivery.tracking_number, delivery.tracking_url, delivery.id)
        except Exception:
            logger.exception("tracking registration crashed for delivery %s", delivery.id)
            return
        if not result.get('success'):
            logger.warning("tracking registration for delivery %s failed: %s", delivery.id, result.get('error'))

    transaction.on_commit(_register)


def _require_agency(user):
    if not getattr(user, 'is_authenticated', False):
        raise PortalError('Unauthorized', 401)
    agency_id = get_agency_id(user)
    if not agency_id and not is_super(user):
        raise PortalError('Unauthorized', 401)
    return agency_id


@transaction.atomic
def create_delivery(user, data: dict, *, supply_request: Optional[SupplyRequest] = None) -> Delivery:
    _require_agency(user)
    patient_id = parse_uuid(data.get('patient_id'), 'patient id')
    try:
        patient = get_patient_for(user, patient_id)
    except PermissionError:
        raise PortalError('Patient not found or unauthorized', 403)

    item_name = (data.get('item_name') or '').strip()
    items = data.get('items')
    if items:
        item_name = describe_items(items, patient.agency_id)
    if not item_name:
        raise ValueError('At least one item is required')

    delivery = Delivery.objects.create(
        patient=patient,
        supply_request=supply_request,
        item_name=item_name,
        carrier=data.get('carrier') or '',
        tracking_number=(data.get('tracking_number') or '').strip(),
        tracking_url=(data.get('tracking_url') or '').strip(),
        status=data.get('status') or Delivery.STATUS_ORDERED,
        estimated_delivery=data.get('estimated_delivery'),
        notes=data.get('notes') or '',
        last_update=timezone.now(),
    )
    if not delivery.carrier and delivery.tracking_number:
        carrier = tracking.detect_carrier_name(delivery.tracking_number)
        if carrier:
            delivery.carrier = carrier
            delivery.save(update_fields=['carrier'])

    log_action(user=user, action='delivery_create', object_type='delivery', object_id=delivery.id,
               detail={'patientId': str(patient.id), 'items': item_name}, agency_id=patient.agency_id)
    _register_after_commit(delivery)
    return delivery


def get_delivery(user, delivery_id) -> Delivery:
    _require_agency(user)
    did = parse_uuid(delivery_id, 'delivery id')
    delivery = Delivery.objects.select_related('patient').filter(id=did).first()
    if not delivery:
        raise LookupError('Delivery not found')
    try:
        check_agency_object(user, delivery.patient.agency_id)
    except PermissionError:
        raise PermissionError('Unauthorized')
    return delivery


@transaction.atomic
def update_delivery(user, delivery_id, data: dict) -> Delivery:
    delivery = get_delivery(user, delivery_id)
    previous_status = delivery.status
    changed = []
    for field in UPDATABLE_FIELDS:
        if field in data:
            value = data[field]
            if value is None and field not in ('estimated_delivery',):
                value = ''
            setattr(delivery, field, value)
            changed.append(field)

    now = timezone.now()
    status_changed = 'status' in data and delivery.status != previous_status
    if status_changed:
        delivery.last_update = now
        changed.append('last_update')
        if delivery.status == Delivery.STATUS_DELIVERED:
            delivery.delivered_at = now
            changed.append('delivered_at')
    if changed:
        delivery.save(update_fields=changed + ['updated_at'])

    if status_changed:
        log_action(user=user, action='delivery_status', object_type='delivery', object_id=delivery.id,
                   detail={'from': previous_status, 'to': delivery.status}, agency_id=delivery.patient.agency_id)
        notify_family(delivery.patient, EVENT_DELIVERY_UPDATED,
                      {'item_name': delivery.item_name, 'status': delivery.status}, reference_id=delivery.id)
    if 'tracking_url' in data or 'tracking_number' in data:
        _register_after_commit(delivery)
    return delivery


@transaction.atomic
def delete_delivery(user, delivery_id) -> None:
    delivery = get_delivery(user, delivery_id)
    log_action(user=user, action='delivery_delete', object_type='delivery', object_id=delivery.id,
               detail={'items': delivery.item_name}, agency_id=delivery.patient.agency_id)
    delivery.delete()


def list_deliveries(user, *, patient_id=None, status: Optional[str] = None):
    qs = Delivery.objects.select_related('patient').filter(patient__in=visible_patients(user))
    if patient_id:
        qs = qs.filter(patient_id=parse_uuid(patient_id, 'patient id'))
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at')


def apply_tracking_event(tracking_number: str, status_code, description: Optional[str]) -> dict:
    """Apply a 17track push for ``tracking_number`` to its delivery.

    The row is only written when the mapped status differs from the
    stored one.
    """
    new_status = tracking.map_tracking_status(status_code, description)
    delivery = Delivery.objects.select_related('patient').filter(tracking_number=tracking_number).first()
    if not delivery:
        logger.info("tracking push for unknown number %s", tracking_number)
        return {'success': False, 'message': 'Delivery not found', 'trackingNumber': tracking_number,
                'status': new_status}

    if not tracking.apply_status(delivery, new_status):
        return {'success': True, 'message': 'Status unchanged', 'trackingNumber': tracking_number,
                'status': new_status}
    logger.info("delivery %s -> %s via tracking push", delivery.id, new_status)
    return {'success': True, 'message': 'Delivery updated', 'trackingNumber': tracking_number,
            'status': new_status}
