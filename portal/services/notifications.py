"""
In-app notifications.

Rows are written either by the event webhook (``/api/webhooks/notifications``)
or directly by services.  A row addressed to a user belongs to that user; a
row that only names a patient is shared by every family user linked to the
patient.  New rows are pushed to each recipient's ``notifications.<user_id>``
channel group once the surrounding transaction commits.
"""
from __future__ import annotations

import logging
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q

from portal.models import FamilyMember, Notification, Patient
from portal.services.access import parse_uuid

logger = logging.getLogger(__name__)

User = get_user_model()

EVENT_VISIT_SCHEDULED = 'visit_scheduled'
EVENT_VISIT_COMPLETED = 'visit_completed'
EVENT_MESSAGE_RECEIVED = 'message_received'
EVENT_DELIVERY_UPDATED = 'delivery_updated'
EVENT_SUPPLY_FULFILLED = 'supply_fulfilled'


def _visit_scheduled(d):
    return 'Visit Scheduled', f"A {d.get('discipline', '')} visit has been scheduled for {d.get('visit_date', '')}"


def _visit_completed(d):
    return 'Visit Completed', f"{d.get('staff_name', '')} has completed the visit"


def _message_received(d):
    return 'New Message', f"You have a new message from {d.get('sender_name', '')}"


def _delivery_updated(d):
    return 'Delivery Update', f"{d.get('item_name', '')} delivery status: {d.get('status', '')}"


def _supply_fulfilled(d):
    return 'Supply Request Fulfilled', 'Your supply request has been fulfilled and is ready for pickup'


EVENT_TEMPLATES = {
    EVENT_VISIT_SCHEDULED: _visit_scheduled,
    EVENT_VISIT_COMPLETED: _visit_completed,
    EVENT_MESSAGE_RECEIVED: _message_received,
    EVENT_DELIVERY_UPDATED: _delivery_updated,
    EVENT_SUPPLY_FULFILLED: _supply_fulfilled,
}


def _recipients(notification: Notification) -> list:
    if notification.user_id:
        return [notification.user_id]
    if notification.patient_id:
        return list(
            FamilyMember.objects.filter(patient_id=notification.patient_id, user__isnull=False)
            .values_list('user_id', flat=True).distinct()
        )
    return []


def _push(notification: Notification) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    payload = {'type': 'notification.created', 'notification': serialize(notification)}
    for uid in _recipients(notification):
        try:
            async_to_sync(channel_layer.group_send)(f"notifications.{uid}", payload)
        except Exception:
            logger.exception("notification %s push to user %s failed", notification.id, uid)


def serialize(n: Notification) -> dict:
    return {
        'id': str(n.id),
        'type': n.type,
        'title': n.title,
        'body': n.body,
        'read': n.is_read,
        'referenceId': n.reference_id or None,
        'patientId': str(n.patient_id) if n.patient_id else None,
        'createdAt': n.created_at.isoformat() if n.created_at else None,
    }


def create_notification(*, type: str, title: str, body: str = '', user=None, user_id=None,
                        patient=None, patient_id=None, reference_id=None) -> Notification:
    n = Notification.objects.create(
        type=type,
        title=title,
        body=body,
        user_id=getattr(user, 'pk', None) or user_id,
        patient_id=getattr(patient, 'pk', None) or patient_id,
        reference_id=str(reference_id) if reference_id else '',
    )
    transaction.on_commit(lambda: _push(n))
    return n


def handle_event(event: Optional[str], data: Optional[dict]) -> Notification:
    """Write the notification for one webhook event.

    Raises ``ValueError('Unknown event type')`` for anything not in
    :data:`EVENT_TEMPLATES`.
    """
    template = EVENT_TEMPLATES.get(event or '')
    if template is None:
        raise ValueError('Unknown event type')
    data = data or {}
    title, body = template(data)
    patient_id = data.get('patient_id')
    if patient_id:
        patient_id = parse_uuid(patient_id, 'patient_id')
        if not Patient.objects.filter(id=patient_id).exists():
            raise ValueError('Unknown patient')
    user_id = data.get('user_id')
    if user_id and not User.objects.filter(pk=user_id).exists():
        raise ValueError('Unknown user')
    if not patient_id and not user_id:
        raise ValueError('user_id or patient_id is required')
    return create_notification(
        type=event,
        title=title,
        body=body,
        user_id=user_id,
        patient_id=patient_id,
        reference_id=data.get('id'),
    )


def notify_family(patient, event: str, data: dict, reference_id=None) -> int:
    """Fan an event out to every family user linked to ``patient``."""
    title, body = EVENT_TEMPLATES[event](data)
    user_ids = (
        FamilyMember.objects.filter(patient=patient, user__isnull=False)
        .values_list('user_id', flat=True).distinct()
    )
    count = 0
    for uid in user_ids:
        create_notification(type=event, title=title, body=body, user_id=uid,
                            patient=patient, reference_id=reference_id)
        count += 1
    return count


def visible_notifications(user):
    """Rows addressed to ``user`` plus patient-wide rows for their patients."""
    linked = FamilyMember.objects.filter(user=user).values('patient_id')
    return Notification.objects.filter(Q(user=user) | Q(user__isnull=True, patient_id__in=linked))


def list_for_user(user, *, unread_only: bool = False, limit: int = 50):
    qs = visible_notifications(user)
    if unread_only:
        qs = qs.filter(is_read=False)
    unread = visible_notifications(user).filter(is_read=False).count()
    return [serialize(n) for n in qs[:max(1, min(200, int(limit or 50)))]], unread


def mark_read(user, notification_id) -> Notification:
    n = visible_notifications(user).filter(id=notification_id).first()
    if not n:
        raise LookupError('Notification not found')
    if not n.is_read:
        n.is_read = True
        n.save(update_fields=['is_read'])
    return n


def mark_all_read(user) -> int:
    return visible_notifications(user).filter(is_read=False).update(is_read=True)
