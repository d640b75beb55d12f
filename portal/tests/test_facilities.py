import pytest

from portal.models import Agency, AgencyUser, FacilityInvite

from .conftest import client_for

pytestmark = pytest.mark.django_db


def test_only_super_admin(admin_user):
    assert client_for(admin_user).get('/api/facilities').status_code == 403


def test_list_update_and_stats(super_user, agency, patient, staff_user, family_user):
    client = client_for(super_user)
    r = client.get('/api/facilities', {'q': 'sunrise'})
    assert [f['name'] for f in r.data['data']] == ['Sunrise Hospice']

    r = client.patch(f'/api/facilities/{agency.id}', {'maxPatients': 5, 'status': 'suspended'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['maxPatients'] == 5
    assert r.data['data']['status'] == 'suspended'

    r = client.get(f'/api/facilities/{agency.id}/stats')
    assert (r.data['patients'], r.data['staff'], r.data['familyMembers']) == (1, 1, 1)


def test_add_staff_messages(super_user, agency, staff_user):
    client = client_for(super_user)
    url = f'/api/facilities/{agency.id}/staff'
    r = client.post(url, {'email': 'ghost@nowhere.test'}, format='json')
    assert r.data['detail'] == 'User with this email does not exist. They must sign up first.'
    r = client.post(url, {'email': staff_user.email}, format='json')
    assert r.data['detail'] == 'User is already assigned to this facility.'


def test_remove_staff(super_user, agency, staff_user):
    client = client_for(super_user)
    assert client.delete(f'/api/facilities/{agency.id}/staff/{staff_user.pk}').status_code == 200
    assert not AgencyUser.objects.filter(user=staff_user).exists()
    assert client.delete(f'/api/facilities/{agency.id}/staff/{staff_user.pk}').status_code == 404


def test_resend_invite_rotates_token(super_user):
    client = client_for(super_user)
    fid = client.post('/api/facilities', {'name': 'West Wing', 'adminEmail': 'boss@west.test'},
                      format='json').data['data']['id']
    before = FacilityInvite.objects.get(agency_id=fid).token
    r = client.post(f'/api/facilities/{fid}/resend-invite')
    assert r.status_code == 200
    assert r.data['email'] == 'boss@west.test'
    assert FacilityInvite.objects.get(agency_id=fid).token != before


def test_resend_without_admin_email(super_user):
    agency = Agency.objects.create(name='No Contact Hospice')
    r = client_for(super_user).post(f'/api/facilities/{agency.id}/resend-invite')
    assert r.status_code == 400


def test_delete_facility(super_user, agency, staff_user):
    assert client_for(super_user).delete(f'/api/facilities/{agency.id}').status_code == 200
    assert not Agency.objects.filter(id=agency.id).exists()
    staff_user.refresh_from_db()
    assert staff_user.agency_id is None
