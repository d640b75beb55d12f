"""
Multi-participant message threads.

``internal`` threads are staff-only conversations inside one agency;
``family`` threads mix agency staff with the family users of the agency's
patients.  Every posted message is broadcast to the ``thread.<id>`` channel
group that :class:`portal.realtime.consumers.ThreadConsumer` joins.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import bleach
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Exists, F, OuterRef
from django.utils import timezone

from portal.exceptions import PortalError
from portal.models import (
    AgencyUser,
    FamilyMember,
    MessageReadReceipt,
    MessageThread,
    STAFF_ROLES,
    ThreadMessage,
    ThreadParticipant,
)
from portal.services.access import get_agency_id, get_patient_for, is_staff_role, parse_uuid
from portal.services.audit import log_action
from portal.services.notifications import EVENT_MESSAGE_RECEIVED, EVENT_TEMPLATES, create_notification

logger = logging.getLogger(__name__)

User = get_user_model()

CATEGORIES = {MessageThread.CATEGORY_INTERNAL, MessageThread.CATEGORY_FAMILY}
MAX_BODY = 5000


def _user_brief(u) -> Optional[dict]:
    if u is None:
        return None
    return {'id': u.pk, 'name': u.display_name, 'email': u.email, 'role': u.role}


def serialize_message(m: ThreadMessage) -> dict:
    return {
        'id': str(m.id),
        'threadId': str(m.thread_id),
        'senderId': m.sender_id,
        'sender': _user_brief(m.sender),
        'body': m.body,
        'attachments': m.attachments or [],
        'editedAt': m.edited_at.isoformat() if m.edited_at else None,
        'createdAt': m.created_at.isoformat() if m.created_at else None,
    }


def serialize_thread(t: MessageThread, *, unread: int = 0, participants: bool = True) -> dict:
    data = {
        'id': str(t.id),
        'agencyId': str(t.agency_id),
        'patientId': str(t.patient_id) if t.patient_id else None,
        'category': t.category,
        'subject': t.subject,
        'isGroup': t.is_group,
        'createdBy': t.created_by_id,
        'archived': t.archived_at is not None,
        'lastMessageAt': t.last_message_at.isoformat() if t.last_message_at else None,
        'createdAt': t.created_at.isoformat() if t.created_at else None,
        'unread': unread,
    }
    if participants:
        data['participants'] = [
            dict(_user_brief(p.user), isAdmin=p.is_admin)
            for p in t.participants.select_related('user').order_by('joined_at')
        ]
    return data


def _agency_staff_ids(agency_id) -> set:
    ids = set(AgencyUser.objects.filter(agency_id=agency_id).values_list('user_id', flat=True))
    ids |= set(User.objects.filter(agency_id=agency_id, role__in=STAFF_ROLES).values_list('pk', flat=True))
    return ids


def _agency_family_ids(agency_id) -> set:
    return set(
        FamilyMember.objects.filter(patient__agency_id=agency_id, user__isnull=False)
        .values_list('user_id', flat=True)
    )


def _participant(user, thread: MessageThread) -> ThreadParticipant:
    p = ThreadParticipant.objects.filter(thread=thread, user=user).first()
    if not p:
        raise PermissionError('You are not a participant in this thread')
    return p


def is_participant(user, thread_id) -> bool:
    if not getattr(user, 'is_authenticated', False):
        return False
    try:
        tid = parse_uuid(thread_id, 'thread id')
    except ValueError:
        return False
    return ThreadParticipant.objects.filter(thread_id=tid, user=user).exists()


def _get_thread(thread_id) -> MessageThread:
    thread = MessageThread.objects.filter(id=parse_uuid(thread_id, 'thread id')).first()
    if not thread:
        raise LookupError('Thread not found')
    return thread


def _broadcast(thread: MessageThread, msg: ThreadMessage) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(f"thread.{thread.id}", {
            'type': 'thread.message',
            'message': serialize_message(msg),
        })
    except Exception:
        logger.exception("thread %s: broadcast of message %s failed", thread.id, msg.id)


@transaction.atomic
def create_thread(user, *, category: str, subject: str = '', participant_ids: Iterable = (),
                  patient_id=None, initial_message: Optional[str] = None) -> MessageThread:
    if category not in CATEGORIES:
        raise ValueError('Invalid thread category')
    if category == MessageThread.CATEGORY_INTERNAL and not is_staff_role(user):
        raise PermissionError('Only agency staff can start internal threads')

    patient = get_patient_for(user, patient_id) if patient_id else None
    agency_id = patient.agency_id if patient else get_agency_id(user)
    if not agency_id:
        raise PortalError('No agency found', 401)

    others = []
    for raw in participant_ids or ():
        try:
            uid = int(raw)
        except (TypeError, ValueError):
            raise ValueError('Invalid participant id')
        if uid != user.pk and uid not in others:
            others.append(uid)
    if not others:
        raise ValueError('Select at least one participant')

    staff_ids = _agency_staff_ids(agency_id)
    allowed = staff_ids if category == MessageThread.CATEGORY_INTERNAL else staff_ids | _agency_family_ids(agency_id)
    found = set(User.objects.filter(pk__in=others, is_active=True).values_list('pk', flat=True))
    for uid in others:
        if uid not in found or uid not in allowed:
            if category == MessageThread.CATEGORY_INTERNAL:
                raise ValueError('Internal threads can only include staff of your agency')
            raise ValueError('Participants must belong to your agency')

    thread = MessageThread.objects.create(
        agency_id=agency_id,
        patient=patient,
        category=category,
        subject=bleach.clean((subject or '').strip(), strip=True),
        is_group=len(others) > 1,
        created_by=user,
    )
    ThreadParticipant.objects.create(thread=thread, user=user, is_admin=True, last_read_at=timezone.now())
    ThreadParticipant.objects.bulk_create([ThreadParticipant(thread=thread, user_id=uid) for uid in others])
    log_action(user=user, action='thread_create', object_type='thread', object_id=thread.id,
               detail={'category': category, 'participants': others}, agency_id=agency_id)

    if initial_message and initial_message.strip():
        send_thread_message(user, thread.id, initial_message)
        thread.refresh_from_db()
    return thread


@transaction.atomic
def send_thread_message(user, thread_id, body: str, attachments: Iterable = ()) -> ThreadMessage:
    thread = _get_thread(thread_id)
    _participant(user, thread)
    body = bleach.clean((body or '').strip(), strip=True)
    if not body and not attachments:
        raise ValueError('Message cannot be empty')
    if len(body) > MAX_BODY:
        raise ValueError('Message is too long')

    msg = ThreadMessage.objects.create(thread=thread, sender=user, body=body, attachments=list(attachments or []))
    MessageReadReceipt.objects.get_or_create(message=msg, user=user)
    thread.last_message_at = msg.created_at
    thread.save(update_fields=['last_message_at'])
    ThreadParticipant.objects.filter(thread=thread, user=user).update(last_read_at=msg.created_at)

    title, text = EVENT_TEMPLATES[EVENT_MESSAGE_RECEIVED]({'sender_name': user.display_name})
    for uid in thread.participants.exclude(user=user).values_list('user_id', flat=True):
        create_notification(type=EVENT_MESSAGE_RECEIVED, title=title, body=text, user_id=uid,
                            patient_id=thread.patient_id, reference_id=thread.id)

    logger.debug("thread %s: message %s from user %s", thread.id, msg.id, user.pk)
    transaction.on_commit(lambda: _broadcast(thread, msg))
    return msg


@transaction.atomic
def mark_thread_read(user, thread_id) -> int:
    thread = _get_thread(thread_id)
    participant = _participant(user, thread)
    unread = list(
        thread.messages.exclude(receipts__user=user).values_list('id', flat=True)
    )
    MessageReadReceipt.objects.bulk_create(
        [MessageReadReceipt(message_id=mid, user=user) for mid in unread],
        ignore_conflicts=True,
    )
    participant.last_read_at = timezone.now()
    participant.save(update_fields=['last_read_at'])
    return len(unread)


def archive_thread(user, thread_id) -> MessageThread:
    thread = _get_thread(thread_id)
    _participant(user, thread)
    if thread.archived_at is None:
        thread.archived_at = timezone.now()
        thread.save(update_fields=['archived_at'])
    return thread


def unarchive_thread(user, thread_id) -> MessageThread:
    thread = _get_thread(thread_id)
    _participant(user, thread)
    if thread.archived_at is not None:
        thread.archived_at = None
        thread.save(update_fields=['archived_at'])
    return thread


def list_threads(user, *, category: Optional[str] = None, archived: bool = False):
    """The user's threads, newest activity first, each with its unread count."""
    qs = MessageThread.objects.filter(participants__user=user)
    if not is_staff_role(user):
        qs = qs.exclude(category=MessageThread.CATEGORY_INTERNAL)
    if category:
        if category not in CATEGORIES:
            raise ValueError('Invalid thread category')
        qs = qs.filter(category=category)
    qs = qs.filter(archived_at__isnull=not archived)

    read = MessageReadReceipt.objects.filter(message=OuterRef('pk'), user=user)
    unread_ids = (
        ThreadMessage.objects.filter(thread__in=qs).exclude(sender=user)
        .annotate(seen=Exists(read)).filter(seen=False)
        .values('thread_id').annotate(n=Count('id'))
    )
    counts = {row['thread_id']: row['n'] for row in unread_ids}
    items = qs.distinct().order_by(F('last_message_at').desc(nulls_last=True), '-created_at')
    return [serialize_thread(t, unread=counts.get(t.id, 0)) for t in items]


def get_thread(user, thread_id, *, limit: int = 200) -> dict:
    thread = _get_thread(thread_id)
    _participant(user, thread)
    if thread.category == MessageThread.CATEGORY_INTERNAL and not is_staff_role(user):
        raise PermissionError('You are not a participant in this thread')
    messages = list(thread.messages.select_related('sender').order_by('-created_at')[:limit])
    messages.reverse()
    data = serialize_thread(thread)
    data['messages'] = [serialize_message(m) for m in messages]
    return data


@transaction.atomic
def add_participant(user, thread_id, user_id) -> ThreadParticipant:
    thread = _get_thread(thread_id)
    if not _participant(user, thread).is_admin:
        raise PermissionError('Only thread admins can add participants')
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        raise ValueError('Invalid participant id')
    allowed = _agency_staff_ids(thread.agency_id)
    if thread.category == MessageThread.CATEGORY_FAMILY:
        allowed |= _agency_family_ids(thread.agency_id)
    if uid not in allowed:
        raise ValueError('Participants must belong to your agency')
    participant, created = ThreadParticipant.objects.get_or_create(thread=thread, user_id=uid)
    if created and thread.participants.count() > 2 and not thread.is_group:
        thread.is_group = True
        thread.save(update_fields=['is_group'])
    return participant


def available_recipients(user, category: str) -> list:
    if category not in CATEGORIES:
        raise ValueError('Invalid thread category')
    agency_id = get_agency_id(user)
    if not agency_id:
        return []
    if category == MessageThread.CATEGORY_INTERNAL and not is_staff_role(user):
        raise PermissionError('Only agency staff can start internal threads')
    ids = _agency_staff_ids(agency_id)
    if category == MessageThread.CATEGORY_FAMILY:
        ids |= _agency_family_ids(agency_id)
    ids.discard(user.pk)
    users = User.objects.filter(pk__in=ids, is_active=True).order_by('full_name', 'email')
    return [_user_brief(u) for u in users]
