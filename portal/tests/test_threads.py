import pytest

from portal.models import Notification, ThreadParticipant

from .conftest import client_for, make_staff

pytestmark = pytest.mark.django_db


def _create(user, category, participants, **extra):
    body = {'category': category, 'participantIds': [p.pk for p in participants], **extra}
    return client_for(user).post('/api/threads', body, format='json')


def test_internal_thread_rejects_family_participant(staff_user, admin_user, family_user):
    r = _create(staff_user, 'internal', [admin_user, family_user])
    assert r.status_code == 400
    assert r.data['detail'] == 'Internal threads can only include staff of your agency'


def test_family_cannot_start_internal_thread(family_user, staff_user):
    assert _create(family_user, 'internal', [staff_user]).status_code == 403


def test_participants_must_share_agency(staff_user, other_agency):
    outsider = make_staff(other_agency, 'outsider@evening.test')
    r = _create(staff_user, 'family', [outsider])
    assert r.status_code == 400
    assert r.data['detail'] == 'Participants must belong to your agency'


def test_unread_drops_to_zero_after_mark_read(staff_user, family_user, patient):
    r = _create(staff_user, 'family', [family_user], subject='Care plan', patientId=str(patient.id),
                initialMessage='Hello from the care team')
    assert r.status_code == 201
    thread_id = r.data['data']['id']
    assert r.data['data']['isGroup'] is False

    family = client_for(family_user)
    listing = family.get('/api/threads').data['data']
    assert [(t['id'], t['unread']) for t in listing] == [(thread_id, 1)]
    assert Notification.objects.filter(user=family_user, type='message_received').count() == 1

    r = family.post(f'/api/threads/{thread_id}/read')
    assert r.data['updated'] == 1
    assert family.get('/api/threads').data['data'][0]['unread'] == 0

    # the sender's own messages never count as unread
    assert client_for(staff_user).get('/api/threads').data['data'][0]['unread'] == 0


def test_non_participant_cannot_post_or_read(staff_user, admin_user, family_user):
    thread_id = _create(staff_user, 'family', [family_user]).data['data']['id']
    outsider = client_for(admin_user)
    r = outsider.post(f'/api/threads/{thread_id}/messages', {'body': 'hi'}, format='json')
    assert r.status_code == 403
    assert r.data['detail'] == 'You are not a participant in this thread'
    assert outsider.get(f'/api/threads/{thread_id}').status_code == 403


def test_reply_sanitizes_and_orders_threads(staff_user, family_user, admin_user):
    first = _create(staff_user, 'family', [family_user]).data['data']['id']
    second = _create(staff_user, 'internal', [admin_user]).data['data']['id']
    family = client_for(family_user)
    r = family.post(f'/api/threads/{first}/messages', {'body': '<script>x</script>Thank you'}, format='json')
    assert r.status_code == 201
    assert '<script>' not in r.data['data']['body']

    ids = [t['id'] for t in client_for(staff_user).get('/api/threads').data['data']]
    assert ids == [first, second]
    # internal threads stay hidden from family
    assert [t['id'] for t in family.get('/api/threads').data['data']] == [first]


def test_archive_and_group_participants(staff_user, admin_user, family_user):
    client = client_for(staff_user)
    thread_id = _create(staff_user, 'family', [family_user]).data['data']['id']

    r = client.post(f'/api/threads/{thread_id}/participants', {'userId': admin_user.pk}, format='json')
    assert r.status_code == 200
    assert ThreadParticipant.objects.filter(thread_id=thread_id).count() == 3
    assert client.get(f'/api/threads/{thread_id}').data['data']['isGroup'] is True

    r = client_for(family_user).post(f'/api/threads/{thread_id}/participants', {'userId': staff_user.pk},
                                     format='json')
    assert r.status_code == 403

    assert client.post(f'/api/threads/{thread_id}/archive').data['archived'] is True
    assert client.get('/api/threads').data['data'] == []
    assert [t['id'] for t in client.get('/api/threads', {'archived': 'true'}).data['data']] == [thread_id]
    assert client.post(f'/api/threads/{thread_id}/unarchive').data['archived'] is False


def test_available_recipients(staff_user, admin_user, family_user):
    client = client_for(staff_user)
    internal = {u['id'] for u in client.get('/api/threads/recipients', {'category': 'internal'}).data['data']}
    family = {u['id'] for u in client.get('/api/threads/recipients', {'category': 'family'}).data['data']}
    assert internal == {admin_user.pk}
    assert family == {admin_user.pk, family_user.pk}
