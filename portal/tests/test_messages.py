import pytest

from portal.models import Message, Notification, ThreadMessage
from portal.services import notifications, threads
from portal.services.notifications import handle_event
from portal.services.threads import create_thread, send_thread_message

from .conftest import client_for, make_family, make_staff

pytestmark = pytest.mark.django_db


def test_family_message_reaches_agency_and_is_scoped(family_user, staff_user, patient, foreign_patient):
    r = client_for(family_user).post('/api/messages', {
        'patientId': str(patient.id), 'recipientId': staff_user.pk,
        'subject': 'Question', 'body': 'When is the next visit?',
    }, format='json')
    assert r.status_code == 201
    assert r.data['data']['senderType'] == 'family'
    assert Notification.objects.filter(user=staff_user, type='message_received').count() == 1

    r = client_for(family_user).post('/api/messages', {'patientId': str(foreign_patient.id), 'body': 'x'},
                                     format='json')
    assert r.status_code == 403

    r = client_for(staff_user).get('/api/admin/dashboard')
    assert r.data['unreadMessages'] == 1


def test_list_paginates_and_mark_read(staff_user, family_user, patient):
    for i in range(3):
        Message.objects.create(patient=patient, sender=family_user, sender_type='family', body=f'm{i}')
    client = client_for(staff_user)
    r = client.get('/api/messages', {'patientId': str(patient.id), 'page': 1, 'pageSize': 2})
    assert r.status_code == 200
    assert len(r.data['data']) == 2
    assert r.data['pagination']['total'] == 3

    msg_id = r.data['data'][0]['id']
    r = client.post(f'/api/messages/{msg_id}/read')
    assert r.data['data']['isRead'] is True


def test_only_sender_or_staff_deletes(staff_user, family_user, family_admin, patient):
    msg = Message.objects.create(patient=patient, sender=family_user, sender_type='family', body='hello')
    assert client_for(family_admin).delete(f'/api/messages/{msg.id}').status_code == 403
    assert client_for(family_user).delete(f'/api/messages/{msg.id}').status_code == 200
    assert not Message.objects.filter(id=msg.id).exists()


def test_notifications_read_flow(family_user, patient):
    handle_event('supply_fulfilled', {'user_id': family_user.pk, 'patient_id': str(patient.id)})
    handle_event('visit_completed', {'user_id': family_user.pk, 'staff_name': 'Nurse Joy'})
    client = client_for(family_user)
    r = client.get('/api/notifications')
    assert r.data['unread'] == 2
    first = r.data['data'][0]['id']
    assert client.post(f'/api/notifications/{first}/read').status_code == 200
    assert client.get('/api/notifications').data['unread'] == 1
    client.post('/api/notifications/read-all')
    assert client.get('/api/notifications').data['unread'] == 0


def test_patient_wide_notification_reaches_linked_family(family_user, family_admin, patient, foreign_patient):
    handle_event('visit_completed', {'patient_id': str(patient.id), 'staff_name': 'Nurse Joy'})
    handle_event('visit_completed', {'patient_id': str(foreign_patient.id), 'staff_name': 'Nurse Sam'})

    r = client_for(family_user).get('/api/notifications')
    assert r.data['unread'] == 1
    assert [n['body'] for n in r.data['data']] == ['Nurse Joy has completed the visit']

    n_id = r.data['data'][0]['id']
    assert client_for(family_admin).post(f'/api/notifications/{n_id}/read').status_code == 200
    assert client_for(family_user).get('/api/notifications').data['unread'] == 0


def test_patient_wide_notification_hidden_from_staff(staff_user, patient):
    handle_event('supply_fulfilled', {'patient_id': str(patient.id)})
    assert client_for(staff_user).get('/api/notifications').data['data'] == []


class _BrokenLayer:
    async def group_send(self, group, message):
        raise ConnectionError('redis down')


def test_channel_outage_keeps_thread_message(staff_user, family_user, patient, monkeypatch,
                                             django_capture_on_commit_callbacks):
    thread = create_thread(staff_user, category='family', participant_ids=[family_user.pk],
                           patient_id=patient.id)
    monkeypatch.setattr(notifications, 'get_channel_layer', lambda: _BrokenLayer())
    monkeypatch.setattr(threads, 'get_channel_layer', lambda: _BrokenLayer())

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        msg = send_thread_message(staff_user, thread.id, 'hello')

    assert callbacks
    assert ThreadMessage.objects.filter(id=msg.id).exists()
    assert Notification.objects.filter(user=family_user, type='message_received').exists()


def test_message_recipient_must_belong_to_patient_care_circle(staff_user, patient, other_agency, foreign_patient):
    outsider = make_staff(other_agency, 'outsider@evening.test')
    stranger = make_family(foreign_patient, 'stranger@family.test')
    client = client_for(staff_user)
    for recipient in (outsider, stranger):
        r = client.post('/api/messages', {'patientId': str(patient.id), 'recipientId': recipient.pk,
                                          'body': 'Checking in'}, format='json')
        assert r.status_code == 400
        assert r.data['detail'] == 'Recipient must be care team staff or family of this patient'
    assert not Message.objects.exists()
    assert not Notification.objects.exists()
