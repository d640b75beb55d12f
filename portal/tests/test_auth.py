from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from portal.models import FacilityInvite
from portal.services.magic_links import make_login_code

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db


def login(client, account, password=PASSWORD):
    return client.post(reverse('login_view'), {'email': account, 'password': password}, format='json')


def test_login_returns_jwt_and_legacy_token(staff_user):
    r = login(APIClient(), 'Nurse@Sunrise.test')
    assert r.status_code == 200
    assert r.data['token'] and r.data['jwt_access'] and r.data['jwt_refresh']
    assert r.data['user']['role'] == 'agency_staff'
    assert r.data['user']['agencyId'] == str(staff_user.agency_id)


def test_login_rejects_wrong_password(staff_user):
    r = login(APIClient(), staff_user.email, 'nope')
    assert r.status_code == 400
    assert r.data['ok'] is False


def test_no_role_bypass_in_login(family_user):
    client = APIClient()
    r = client.post(reverse('login_view'),
                    {'email': family_user.email, 'password': PASSWORD, 'role': 'super_admin'}, format='json')
    assert r.status_code == 200
    family_user.refresh_from_db()
    assert family_user.role == 'family_member'


def test_token_authenticates_me(staff_user):
    client = APIClient()
    token = login(client, staff_user.email).data['token']
    assert client.get(reverse('me_view')).status_code == 401
    client.credentials(HTTP_AUTHORIZATION=f'Token {token}')
    r = client.get(reverse('me_view'))
    assert r.status_code == 200
    assert r.data['user']['email'] == staff_user.email


def test_logout_blacklists_refresh_token(staff_user):
    client = APIClient()
    data = login(client, staff_user.email).data
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwt_access']}")
    r = client.post('/api/auth/logout', {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    r = APIClient().post('/api/auth/refresh', {'refresh': data['jwt_refresh']}, format='json')
    assert r.status_code == 401


def test_magic_link_redirects_by_role(client, staff_user):
    r = client.get(reverse('auth_callback'), {'code': make_login_code(staff_user)})
    assert r.status_code == 302
    assert r['Location'] == '/admin'


def test_magic_link_honours_safe_next_only(client, family_user):
    code = make_login_code(family_user)
    r = client.get(reverse('auth_callback'), {'code': code, 'next': '/family/messages'})
    assert r['Location'] == '/family/messages'
    r = client.get(reverse('auth_callback'), {'code': code, 'next': '//evil.test/'})
    assert r['Location'] == '/family'


def test_magic_link_sends_new_admin_to_facility_setup(client, agency, admin_user):
    admin_user.needs_password_setup = True
    admin_user.save(update_fields=['needs_password_setup'])
    invite = FacilityInvite.objects.create(agency=agency, email=admin_user.email,
                                           expires_at=timezone.now() + timedelta(days=7))
    r = client.get(reverse('auth_callback'), {'code': make_login_code(admin_user)})
    assert r.status_code == 302
    assert r['Location'].startswith('/facility-setup?')
    assert f'facility={agency.id}' in r['Location']
    assert f'token={invite.token}' in r['Location']


def test_magic_link_rejects_tampered_code(client, staff_user):
    r = client.get(reverse('auth_callback'), {'code': make_login_code(staff_user) + 'x'})
    assert r.status_code == 302
    assert r['Location'].startswith('/login?error=')


def test_magic_link_expired_code(client, settings, staff_user):
    code = make_login_code(staff_user)
    settings.MAGIC_LINK_MAX_AGE = -1
    r = client.get(reverse('auth_callback'), {'code': code})
    assert r.status_code == 302
    assert r['Location'] == '/login?error=This+sign-in+link+has+expired'
