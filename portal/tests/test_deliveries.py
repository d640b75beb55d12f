import pytest
from rest_framework.test import APIClient

from portal.models import Delivery, SupplyItem
from portal.services import tracking

from .conftest import client_for

pytestmark = pytest.mark.django_db


def test_create_requires_authentication(patient):
    r = APIClient().post('/api/deliveries', {'patientId': str(patient.id), 'itemName': 'Gloves'}, format='json')
    assert r.status_code == 401


def test_create_rejects_malformed_patient_id(staff_user):
    r = client_for(staff_user).post('/api/deliveries', {'patientId': 'not-a-uuid', 'itemName': 'Gloves'},
                                    format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Invalid patient id'


def test_create_rejects_foreign_agency_patient(staff_user, foreign_patient):
    r = client_for(staff_user).post('/api/deliveries',
                                    {'patientId': str(foreign_patient.id), 'itemName': 'Gloves'}, format='json')
    assert r.status_code == 403
    assert not Delivery.objects.exists()


def test_create_requires_an_item(staff_user, patient):
    r = client_for(staff_user).post('/api/deliveries', {'patientId': str(patient.id)}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'At least one item is required'


def test_create_builds_item_name_and_registers_after_commit(staff_user, patient, monkeypatch,
                                                            django_capture_on_commit_callbacks):
    calls = []
    monkeypatch.setattr(tracking, 'register_tracking_number',
                        lambda number, url, delivery_id: calls.append((number, delivery_id)) or {'success': True})
    with django_capture_on_commit_callbacks(execute=True):
        r = client_for(staff_user).post('/api/deliveries', {
            'patientId': str(patient.id),
            'items': {'diapers_l': 2, 'gloves': 1},
            'trackingNumber': '1Z999AA10123456784',
        }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['itemName'] == 'Adult Diapers (L), Disposable Gloves'
    assert data['carrier'] == 'UPS'
    assert calls == [('1Z999AA10123456784', Delivery.objects.get().id)]


def test_registration_failure_keeps_delivery(staff_user, patient, monkeypatch,
                                             django_capture_on_commit_callbacks):
    monkeypatch.setattr(tracking, 'register_tracking_number',
                        lambda *a: {'success': False, 'error': 'Registration rejected'})
    with django_capture_on_commit_callbacks(execute=True):
        r = client_for(staff_user).post('/api/deliveries', {
            'patientId': str(patient.id),
            'itemName': 'Oxygen concentrator',
            'trackingUrl': 'https://www.fedex.com/fedextrack/?tracknumbers=123456789012',
        }, format='json')
    assert r.status_code == 201
    assert Delivery.objects.filter(item_name='Oxygen concentrator').exists()


def test_agency_catalog_sizes_are_used(staff_user, patient):
    SupplyItem.objects.create(agency=patient.agency, key='briefs', name='Briefs', sizes=['M', 'XXL'])
    r = client_for(staff_user).post('/api/deliveries', {
        'patientId': str(patient.id), 'items': ['briefs_xxl', 'lotion'],
    }, format='json')
    assert r.status_code == 201
    assert r.data['data']['itemName'] == 'Briefs (XXL), Moisturizing Lotion'


def test_family_sees_only_their_patient_deliveries(family_user, patient, foreign_patient):
    Delivery.objects.create(patient=patient, item_name='Gloves')
    Delivery.objects.create(patient=foreign_patient, item_name='Wipes')
    r = client_for(family_user).get('/api/deliveries')
    assert r.status_code == 200
    assert [d['itemName'] for d in r.data['data']] == ['Gloves']


def test_update_and_delete_are_agency_scoped(staff_user, foreign_patient):
    d = Delivery.objects.create(patient=foreign_patient, item_name='Gloves')
    client = client_for(staff_user)
    assert client.patch(f'/api/deliveries/{d.id}', {'status': 'shipped'}, format='json').status_code == 403
    assert client.delete(f'/api/deliveries/{d.id}').status_code == 403
