import pytest
from rest_framework.test import APIClient

from portal.models import Delivery, Notification

pytestmark = pytest.mark.django_db


def _push(number, status, description=''):
    return {
        'event': 'TRACKING_UPDATED',
        'data': {
            'number': number,
            'track_info': {
                'latest_status': {'status': status},
                'latest_event': {'description': description},
            },
        },
    }


def test_notification_webhook_rejects_unknown_event(patient):
    r = APIClient().post('/api/webhooks/notifications',
                         {'event': 'party_started', 'data': {'patient_id': str(patient.id)}}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Unknown event type'
    assert not Notification.objects.exists()


def test_notification_webhook_requires_event():
    r = APIClient().post('/api/webhooks/notifications', {'data': {}}, format='json')
    assert r.status_code == 400


def test_notification_webhook_writes_templated_row(patient, family_user):
    r = APIClient().post('/api/webhooks/notifications', {
        'event': 'visit_scheduled',
        'data': {'patient_id': str(patient.id), 'user_id': family_user.pk, 'id': 'visit-42',
                 'discipline': 'Nursing', 'visit_date': '2026-11-02'},
    }, format='json')
    assert r.status_code == 201
    n = Notification.objects.get(id=r.data['id'])
    assert n.title == 'Visit Scheduled'
    assert n.body == 'A Nursing visit has been scheduled for 2026-11-02'
    assert n.user_id == family_user.pk
    assert n.patient_id == patient.id
    assert n.reference_id == 'visit-42'


def test_notification_webhook_checks_secret(settings, family_user):
    settings.NOTIFICATION_WEBHOOK_SECRET = 's3cret'
    body = {'event': 'supply_fulfilled', 'data': {'user_id': family_user.pk}}
    client = APIClient()
    assert client.post('/api/webhooks/notifications', body, format='json').status_code == 401
    r = client.post('/api/webhooks/notifications', body, format='json', HTTP_X_WEBHOOK_SECRET='s3cret')
    assert r.status_code == 201


def test_tracking_webhook_verification_get():
    r = APIClient().get('/api/webhooks/17track')
    assert r.status_code == 200
    assert r.data['status'] == 'active'


def test_tracking_webhook_marks_delivered_once(patient, family_user):
    d = Delivery.objects.create(patient=patient, item_name='Gloves', tracking_number='TRK0001', status='shipped')
    client = APIClient()

    r = client.post('/api/webhooks/17track', _push('TRK0001', 40, 'Delivered, front door'), format='json')
    assert r.status_code == 200
    assert r.data['success'] is True
    assert r.data['status'] == 'delivered'
    d.refresh_from_db()
    assert d.status == 'delivered'
    assert d.delivered_at is not None
    first_update = d.last_update
    assert Notification.objects.filter(user=family_user, type='delivery_updated').count() == 1

    r = client.post('/api/webhooks/17track', _push('TRK0001', 40), format='json')
    assert r.data['message'] == 'Status unchanged'
    d.refresh_from_db()
    assert d.last_update == first_update
    assert Notification.objects.filter(user=family_user, type='delivery_updated').count() == 1


def test_tracking_webhook_maps_in_transit(patient):
    d = Delivery.objects.create(patient=patient, item_name='Gloves', tracking_number='TRK0002')
    APIClient().post('/api/webhooks/17track', _push('TRK0002', 10, 'Departed facility'), format='json')
    d.refresh_from_db()
    assert d.status == 'in_transit'
    assert d.delivered_at is None


def test_tracking_webhook_unknown_number_is_acknowledged():
    r = APIClient().post('/api/webhooks/17track', _push('NOPE', 40), format='json')
    assert r.status_code == 200
    assert r.data['success'] is False
    assert r.data['message'] == 'Delivery not found'


def test_tracking_webhook_requires_number():
    r = APIClient().post('/api/webhooks/17track', {'event': 'TRACKING_UPDATED', 'data': {}}, format='json')
    assert r.status_code == 400


def test_tracking_webhook_checks_sign(settings, patient):
    settings.TRACKING_WEBHOOK_SECRET = 'sig'
    Delivery.objects.create(patient=patient, item_name='Gloves', tracking_number='TRK0003')
    client = APIClient()
    assert client.post('/api/webhooks/17track', _push('TRK0003', 40), format='json').status_code == 401
    r = client.post('/api/webhooks/17track?sign=sig', _push('TRK0003', 40), format='json')
    assert r.status_code == 200
