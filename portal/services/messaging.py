from __future__ import annotations

import bleach
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from portal.models import AgencyUser, FamilyMember, Message, STAFF_ROLES
from portal.services.access import (
    check_agency_object,
    get_agency_id,
    get_patient_for,
    is_family_role,
    is_staff_role,
    is_super,
    parse_uuid,
)
from portal.services.audit import log_action
from portal.services.notifications import EVENT_MESSAGE_RECEIVED, EVENT_TEMPLATES, create_notification

User = get_user_model()


def serialize(m: Message) -> dict:
    return {
        'id': str(m.id),
        'patientId': str(m.patient_id),
        'senderId': m.sender_id,
        'senderName': m.sender.display_name if m.sender else None,
        'recipientId': m.recipient_id,
        'senderType': m.sender_type,
        'subject': m.subject,
        'body': m.body,
        'topicTag': m.topic_tag or None,
        'priority': m.priority,
        'status': m.status,
        'isRead': m.is_read,
        'readAt': m.read_at.isoformat() if m.read_at else None,
        'parentId': str(m.parent_id) if m.parent_id else None,
        'createdAt': m.created_at.isoformat() if m.created_at else None,
    }


def list_messages(user, *, patient_id=None, page: int = 1, page_size: int = 50):
    qs = Message.objects.select_related('sender', 'patient')
    if is_family_role(user):
        qs = qs.filter(patient__family_members__user=user).distinct()
    elif not is_super(user):
        agency_id = get_agency_id(user)
        if not agency_id:
            return [], 0
        qs = qs.filter(patient__agency_id=agency_id)
    if patient_id:
        qs = qs.filter(patient_id=parse_uuid(patient_id, 'patient id'))

    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(200, max(1, int(page_size or 50)))
    start = (page - 1) * page_size
    return [serialize(m) for m in qs.order_by('-created_at')[start:start + page_size]], total


def _recipient_for(patient, recipient_id):
    """Staff of the patient's agency or a family user linked to the patient."""
    try:
        uid = int(recipient_id)
    except (TypeError, ValueError):
        raise ValueError('Invalid recipient id')
    staff = AgencyUser.objects.filter(agency_id=patient.agency_id).values('user_id')
    family = FamilyMember.objects.filter(patient=patient, user__isnull=False).values('user_id')
    recipient = User.objects.filter(
        Q(pk__in=staff) | Q(pk__in=family) | Q(agency_id=patient.agency_id, role__in=STAFF_ROLES),
        pk=uid, is_active=True,
    ).first()
    if not recipient:
        raise ValueError('Recipient must be care team staff or family of this patient')
    return recipient


@transaction.atomic
def send_message(user, data: dict) -> Message:
    patient = get_patient_for(user, data.get('patient_id'))
    body = bleach.clean((data.get('body') or '').strip(), strip=True)
    if not body:
        raise ValueError('Message body is required')

    recipient = _recipient_for(patient, data['recipient_id']) if data.get('recipient_id') else None
    parent = None
    if data.get('parent_id'):
        parent = Message.objects.filter(id=parse_uuid(data['parent_id'], 'parent id'), patient=patient).first()
        if not parent:
            raise ValueError('Unknown parent message')

    msg = Message.objects.create(
        patient=patient,
        sender=user,
        recipient=recipient,
        sender_type='staff' if is_staff_role(user) else 'family',
        subject=bleach.clean((data.get('subject') or '').strip(), strip=True),
        body=body,
        topic_tag=data.get('topic_tag') or '',
        priority=data.get('priority') or 'normal',
        parent=parent,
    )
    log_action(user=user, action='message_send', object_type='message', object_id=msg.id,
               detail={'patientId': str(patient.id)}, agency_id=patient.agency_id)
    if recipient and recipient.pk != user.pk:
        title, text = EVENT_TEMPLATES[EVENT_MESSAGE_RECEIVED]({'sender_name': user.display_name})
        create_notification(type=EVENT_MESSAGE_RECEIVED, title=title, body=text, user=recipient,
                            patient=patient, reference_id=msg.id)
    return msg


def _get_visible(user, message_id) -> Message:
    msg = Message.objects.select_related('patient', 'sender').filter(id=parse_uuid(message_id, 'message id')).first()
    if not msg:
        raise LookupError('Message not found')
    if is_family_role(user):
        if not msg.patient.family_members.filter(user=user).exists():
            raise LookupError('Message not found')
    else:
        check_agency_object(user, msg.patient.agency_id)
    return msg


def mark_message_read(user, message_id) -> Message:
    msg = _get_visible(user, message_id)
    if not msg.is_read:
        msg.is_read = True
        msg.read_at = timezone.now()
        msg.status = 'read'
        msg.save(update_fields=['is_read', 'read_at', 'status'])
    return msg


@transaction.atomic
def delete_message(user, message_id) -> None:
    msg = _get_visible(user, message_id)
    if msg.sender_id != user.pk and not is_staff_role(user):
        raise PermissionError('Only the sender or agency staff can delete this message')
    log_action(user=user, action='message_delete', object_type='message', object_id=msg.id,
               agency_id=msg.patient.agency_id)
    msg.delete()


def unread_count(user, agency_id=None) -> int:
    qs = Message.objects.filter(is_read=False)
    if is_family_role(user):
        return qs.filter(patient__family_members__user=user).exclude(sender=user).distinct().count()
    agency_id = agency_id or get_agency_id(user)
    if not agency_id and not is_super(user):
        return 0
    if agency_id:
        qs = qs.filter(patient__agency_id=agency_id)
    return qs.filter(sender_type='family').count()
