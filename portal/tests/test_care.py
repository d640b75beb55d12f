import datetime

import pytest
from django.utils import timezone

from portal.models import Delivery, FamilyMember, Notification, Patient, SupplyRequest, Visit

from .conftest import client_for

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------------
# Patients & family
# ---------------------------------------------------------------------------

def test_patient_create_scoped_to_agency(staff_user, agency):
    r = client_for(staff_user).post('/api/patients', {'firstName': ' Ada ', 'lastName': 'Byron'}, format='json')
    assert r.status_code == 201
    patient = Patient.objects.get(id=r.data['data']['id'])
    assert patient.agency_id == agency.id
    assert patient.first_name == 'Ada'


def test_patient_limit(staff_user, agency, patient):
    agency.max_patients = 1
    agency.save()
    r = client_for(staff_user).post('/api/patients', {'firstName': 'Second', 'lastName': 'Patient'}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'Patient limit reached for this agency'


def test_family_cannot_create_patient(family_user):
    r = client_for(family_user).post('/api/patients', {'firstName': 'X', 'lastName': 'Y'}, format='json')
    assert r.status_code == 403


def test_family_sees_only_their_patient(family_user, patient, foreign_patient):
    r = client_for(family_user).get('/api/patients')
    assert r.status_code == 200
    assert [p['id'] for p in r.data['data']] == [str(patient.id)]


def test_family_invite_rejects_duplicate_email(staff_user, patient, family_user):
    c = client_for(staff_user)
    r = c.post(f'/api/patients/{patient.id}/family',
               {'name': 'Another Person', 'email': 'SON@family.test'}, format='json')
    assert r.status_code == 400
    assert 'email' in r.data['detail']


def test_family_invite_by_family_admin(family_admin, patient):
    r = client_for(family_admin).post(f'/api/patients/{patient.id}/family',
                                      {'name': 'Cousin Jo', 'email': 'jo@family.test',
                                       'relationship': 'cousin'}, format='json')
    assert r.status_code == 201
    member = FamilyMember.objects.get(email='jo@family.test')
    assert member.status == 'invited'
    assert member.invite_token


def test_plain_family_member_cannot_invite(family_user, patient):
    r = client_for(family_user).post(f'/api/patients/{patient.id}/family',
                                     {'name': 'Cousin Jo', 'email': 'jo@family.test'}, format='json')
    assert r.status_code == 403


def test_family_resend_only_for_invited(staff_user, patient, family_user):
    member = FamilyMember.objects.get(user=family_user)
    r = client_for(staff_user).post(f'/api/family-members/{member.id}/resend')
    assert r.status_code == 400


# ---------------------------------------------------------------------------
# Supply requests
# ---------------------------------------------------------------------------

def test_family_requests_supplies(family_user, patient):
    r = client_for(family_user).post('/api/supplies/requests',
                                     {'patientId': str(patient.id), 'items': {'gloves': 2, 'wipes': 0}},
                                     format='json')
    assert r.status_code == 201
    req = SupplyRequest.objects.get(id=r.data['data']['id'])
    assert req.items == {'gloves': 2}
    assert req.status == 'pending'


def test_supply_request_needs_an_item(family_user, patient):
    r = client_for(family_user).post('/api/supplies/requests',
                                     {'patientId': str(patient.id), 'items': {'gloves': 0}}, format='json')
    assert r.status_code == 400


def test_supply_status_transitions(staff_user, family_user, patient):
    req = SupplyRequest.objects.create(patient=patient, requested_by=family_user, items={'gloves': 1})
    c = client_for(staff_user)
    r = c.patch(f'/api/supplies/requests/{req.id}', {'status': 'approved'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['approvedAt']

    r = c.patch(f'/api/supplies/requests/{req.id}', {'status': 'rejected'}, format='json')
    assert r.status_code == 400

    r = c.patch(f'/api/supplies/requests/{req.id}', {'status': 'fulfilled'}, format='json')
    assert r.status_code == 200
    assert Notification.objects.filter(user=family_user, type='supply_fulfilled').exists()


def test_family_cannot_change_status(family_user, patient):
    req = SupplyRequest.objects.create(patient=patient, requested_by=family_user, items={'gloves': 1})
    r = client_for(family_user).patch(f'/api/supplies/requests/{req.id}', {'status': 'approved'}, format='json')
    assert r.status_code == 403


def test_withdraw_only_own_pending(family_user, family_admin, patient):
    req = SupplyRequest.objects.create(patient=patient, requested_by=family_user, items={'gloves': 1})
    assert client_for(family_admin).delete(f'/api/supplies/requests/{req.id}').status_code == 403
    assert client_for(family_user).delete(f'/api/supplies/requests/{req.id}').status_code == 200
    assert not SupplyRequest.objects.exists()


def test_delivery_from_request_fulfils_it(staff_user, family_user, patient):
    req = SupplyRequest.objects.create(patient=patient, requested_by=family_user, items={'gloves': 1})
    r = client_for(staff_user).post(f'/api/supplies/requests/{req.id}/delivery',
                                    {'carrier': 'UPS'}, format='json')
    assert r.status_code == 201
    delivery = Delivery.objects.get(id=r.data['data']['id'])
    assert delivery.supply_request_id == req.id
    req.refresh_from_db()
    assert req.status == 'fulfilled'
    assert req.fulfilled_by_name


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------

def _visit(patient, status='scheduled'):
    return Visit.objects.create(patient=patient, staff_name='Nurse Kim', discipline='nursing',
                                scheduled_date=timezone.localdate(), status=status)


def test_visit_create_notifies_family(staff_user, family_user, patient):
    r = client_for(staff_user).post('/api/visits', {
        'patientId': str(patient.id),
        'discipline': 'chaplain',
        'scheduledDate': (timezone.localdate() + datetime.timedelta(days=1)).isoformat(),
    }, format='json')
    assert r.status_code == 201
    assert Notification.objects.filter(user=family_user, type='visit_scheduled').count() == 1


def test_feedback_only_on_completed_visit(family_user, patient):
    visit = _visit(patient)
    r = client_for(family_user).post(f'/api/visits/{visit.id}/feedback', {'rating': 5}, format='json')
    assert r.status_code == 400


@pytest.mark.parametrize('rating,flagged', [(1, True), (2, True), (3, False), (5, False)])
def test_low_ratings_are_flagged(family_user, patient, rating, flagged):
    visit = _visit(patient, status='completed')
    r = client_for(family_user).post(f'/api/visits/{visit.id}/feedback', {'rating': rating}, format='json')
    assert r.status_code == 201
    assert r.data['flagged'] is flagged


def test_staff_cannot_rate(staff_user, patient):
    visit = _visit(patient, status='completed')
    r = client_for(staff_user).post(f'/api/visits/{visit.id}/feedback', {'rating': 4}, format='json')
    assert r.status_code == 403


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

def test_healthz(client):
    r = client.get('/healthz')
    assert r.status_code == 200
    assert r.json()['ok'] is True
