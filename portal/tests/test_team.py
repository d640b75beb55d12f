from datetime import timedelta

import pytest
import requests
from django.utils import timezone
from rest_framework.test import APIClient

from portal.models import AgencyUser, FamilyMember, TeamInvitation
from portal.services.invitations import ALREADY_USED, EXPIRED, NOT_FOUND

from .conftest import client_for, make_staff

pytestmark = pytest.mark.django_db


def _invite(admin, email='new.nurse@sunrise.test', **extra):
    body = {'email': email, 'fullName': 'New Nurse', 'role': 'agency_staff', **extra}
    return client_for(admin).post('/api/team/invitations', body, format='json')


def _accept(inv, password='welcome1', confirm=None, email=None):
    return APIClient().post('/api/invitations/accept', {
        'token': inv.token,
        'email': email or inv.email,
        'fullName': 'New Nurse',
        'password': password,
        'confirmPassword': confirm if confirm is not None else password,
    }, format='json')


def test_admin_invites_and_token_stays_private(admin_user):
    r = _invite(admin_user, jobRole='RN')
    assert r.status_code == 201
    assert r.data['success'] is True
    assert 'token' not in r.data
    inv = TeamInvitation.objects.get(id=r.data['invitationId'])
    assert len(inv.token) == 64
    assert inv.status == 'pending'
    assert inv.invited_by_name == admin_user.display_name


def test_duplicate_invite_is_rejected(admin_user):
    assert _invite(admin_user).status_code == 201
    r = _invite(admin_user, email='NEW.NURSE@sunrise.test')
    assert r.status_code == 400
    assert r.data['detail'] == 'This email has already been invited'


def test_existing_member_cannot_be_invited(admin_user, staff_user):
    r = _invite(admin_user, email=staff_user.email)
    assert r.status_code == 400
    assert r.data['detail'] == 'This user is already a member of your team'


def test_staff_limit(admin_user, agency):
    agency.max_staff = 1
    agency.save()
    r = _invite(admin_user)
    assert r.status_code == 400
    assert r.data['detail'] == 'Staff limit reached for this agency'


def test_staff_cannot_manage_team(staff_user):
    assert _invite(staff_user).status_code == 403


def test_invitation_token_is_single_use(admin_user, agency):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])

    r = APIClient().get('/api/invitations/validate', {'token': inv.token, 'email': inv.email})
    assert r.status_code == 200
    assert r.data['valid'] is True
    assert r.data['invitation']['agencyName'] == agency.name
    assert r.data['invitation']['roleLabel'] == 'Staff Member'

    r = _accept(inv)
    assert r.status_code == 200
    assert r.data['role'] == 'agency_staff'
    assert r.data['agencyId'] == str(agency.id)
    assert AgencyUser.objects.filter(user_id=r.data['userId'], agency=agency).exists()
    inv.refresh_from_db()
    assert inv.status == 'accepted' and inv.accepted_at is not None

    r = _accept(inv)
    assert r.status_code == 400
    assert r.data['detail'] == ALREADY_USED

    login = APIClient().post('/api/auth/login', {'email': inv.email, 'password': 'welcome1'}, format='json')
    assert login.status_code == 200


def test_expired_invitation_is_rejected(admin_user):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])
    TeamInvitation.objects.filter(pk=inv.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
    r = APIClient().get('/api/invitations/validate', {'token': inv.token, 'email': inv.email})
    assert r.status_code == 400
    assert r.data['valid'] is False
    assert r.data['detail'] == EXPIRED
    assert _accept(inv).data['detail'] == EXPIRED


def test_cancelled_invitation_is_rejected(admin_user):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])
    r = client_for(admin_user).post(f'/api/team/invitations/{inv.id}/cancel')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'cancelled'
    assert _accept(inv).data['detail'] == ALREADY_USED


def test_wrong_email_or_token(admin_user):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])
    assert _accept(inv, email='someone.else@sunrise.test').data['detail'] == NOT_FOUND
    inv.token = 'f' * 64
    assert _accept(inv).data['detail'] == NOT_FOUND


def test_accept_validates_passwords(admin_user):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])
    assert _accept(inv, password='abc').data['detail'] == 'Password must be at least 6 characters'
    assert _accept(inv, password='welcome1', confirm='welcome2').data['detail'] == 'Passwords do not match'
    inv.refresh_from_db()
    assert inv.status == 'pending'


def test_resend_rotates_token(admin_user):
    inv = TeamInvitation.objects.get(id=_invite(admin_user).data['invitationId'])
    r = client_for(admin_user).post(f'/api/team/invitations/{inv.id}/resend')
    assert r.status_code == 200
    old = inv.token
    inv.refresh_from_db()
    assert inv.token != old


def test_pending_list_and_members(admin_user, staff_user):
    _invite(admin_user)
    client = client_for(admin_user)
    pending = client.get('/api/team/invitations').data['data']
    assert [p['email'] for p in pending] == ['new.nurse@sunrise.test']
    members = client_for(staff_user).get('/api/team/members').data['data']
    assert {m['email'] for m in members} == {admin_user.email, staff_user.email}


def test_admin_cannot_change_own_role_or_remove_self(admin_user):
    client = client_for(admin_user)
    r = client.patch(f'/api/team/members/{admin_user.pk}', {'role': 'agency_staff'}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'You cannot change your own role'
    r = client.delete(f'/api/team/members/{admin_user.pk}')
    assert r.status_code == 400
    assert r.data['detail'] == 'You cannot remove yourself from the team'


def test_admin_promotes_and_removes_staff(admin_user, staff_user, agency):
    client = client_for(admin_user)
    r = client.patch(f'/api/team/members/{staff_user.pk}', {'role': 'agency_admin'}, format='json')
    assert r.status_code == 200
    staff_user.refresh_from_db()
    assert staff_user.role == 'agency_admin'

    assert client.delete(f'/api/team/members/{staff_user.pk}').status_code == 200
    assert not AgencyUser.objects.filter(user=staff_user, agency=agency).exists()
    staff_user.refresh_from_db()
    assert staff_user.agency_id is None


def test_member_of_other_agency_is_not_found(admin_user, other_agency):
    outsider = make_staff(other_agency, 'outsider@evening.test')
    r = client_for(admin_user).delete(f'/api/team/members/{outsider.pk}')
    assert r.status_code == 404


# ---------------------------------------------------------------------------
# Family invites redeemed through the same endpoints
# ---------------------------------------------------------------------------

def _family_invite(staff, patient, email='niece@family.test', role='family_member'):
    r = client_for(staff).post(f'/api/patients/{patient.id}/family',
                               {'name': 'Niece Lu', 'email': email, 'relationship': 'niece', 'role': role},
                               format='json')
    assert r.status_code == 201
    return FamilyMember.objects.get(id=r.data['data']['id'])


def _accept_family(member, password='welcome1', full_name=''):
    return APIClient().post('/api/invitations/accept', {
        'token': member.invite_token, 'email': member.email, 'fullName': full_name,
        'password': password, 'confirmPassword': password,
    }, format='json')


def test_family_invite_validates(staff_user, patient):
    member = _family_invite(staff_user, patient)
    r = APIClient().get('/api/invitations/validate', {'token': member.invite_token, 'email': member.email})
    assert r.status_code == 200
    assert r.data['invitation']['kind'] == 'family'
    assert r.data['invitation']['patientName'] == patient.full_name
    assert r.data['invitation']['roleLabel'] == 'Family Member'


def test_family_invite_accept_activates_member(staff_user, patient):
    member = _family_invite(staff_user, patient, role='family_admin')
    r = _accept_family(member)
    assert r.status_code == 200
    assert r.data['role'] == 'family_admin'
    assert r.data['patientId'] == str(patient.id)

    member.refresh_from_db()
    assert member.status == 'active'
    assert member.user.full_name == 'Niece Lu'
    assert member.user.check_password('welcome1')

    family = APIClient()
    family.force_authenticate(user=member.user)
    assert [p['id'] for p in family.get('/api/patients').data['data']] == [str(patient.id)]


def test_family_invite_is_single_use(staff_user, patient):
    member = _family_invite(staff_user, patient)
    assert _accept_family(member).status_code == 200
    r = _accept_family(member)
    assert r.status_code == 400
    assert r.data['detail'] == ALREADY_USED


def test_family_invite_expires(staff_user, patient):
    member = _family_invite(staff_user, patient)
    member.invite_expires_at = timezone.now() - timedelta(minutes=1)
    member.save()
    assert _accept_family(member).data['detail'] == EXPIRED
    member.refresh_from_db()
    assert member.status == 'invited'


def test_staff_account_cannot_redeem_family_invite(staff_user, admin_user, patient):
    member = _family_invite(staff_user, patient, email=admin_user.email)
    r = _accept_family(member)
    assert r.status_code == 409
    member.refresh_from_db()
    assert member.user_id is None


class _Sent:
    def raise_for_status(self):
        pass


def test_invite_email_goes_out_after_row_is_saved(settings, admin_user, monkeypatch):
    settings.BREVO_API_KEY = 'brevo-key'
    seen = []

    def fake_post(url, json=None, headers=None, timeout=None):
        inv = TeamInvitation.objects.get(email='new.nurse@sunrise.test')
        seen.append((json['to'][0]['email'], inv.token in json['htmlContent']))
        return _Sent()

    monkeypatch.setattr(requests, 'post', fake_post)
    r = _invite(admin_user)
    assert r.status_code == 201
    assert r.data['emailSent'] is True
    assert seen == [('new.nurse@sunrise.test', True)]


def test_failed_invite_email_keeps_invitation(settings, admin_user, monkeypatch):
    settings.BREVO_API_KEY = 'brevo-key'

    def boom(*a, **kw):
        raise requests.ConnectionError('smtp relay down')

    monkeypatch.setattr(requests, 'post', boom)
    r = _invite(admin_user)
    assert r.status_code == 201
    assert r.data['emailSent'] is False
    assert TeamInvitation.objects.filter(email='new.nurse@sunrise.test', status='pending').exists()
