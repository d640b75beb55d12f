import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from portal.models import (
    Agency,
    AgencyUser,
    FamilyMember,
    Patient,
    ROLE_AGENCY_ADMIN,
    ROLE_AGENCY_STAFF,
    ROLE_FAMILY_ADMIN,
    ROLE_FAMILY_MEMBER,
    ROLE_SUPER_ADMIN,
)

User = get_user_model()

PASSWORD = 'Hospice!2024'


@pytest.fixture(autouse=True)
def _quiet_integrations(settings):
    # throttle counters live in the cache
    cache.clear()
    settings.BREVO_API_KEY = ''
    settings.TRACKING_API_KEY = ''
    settings.NOTIFICATION_WEBHOOK_SECRET = ''
    settings.TRACKING_WEBHOOK_SECRET = ''
    yield
    cache.clear()


def make_staff(agency, email, role=ROLE_AGENCY_STAFF):
    user = User.objects.create_user(email=email, password=PASSWORD, role=role, agency=agency,
                                    full_name=email.split('@')[0].title())
    AgencyUser.objects.create(user=user, agency=agency, role=role)
    return user


def make_family(patient, email, role=ROLE_FAMILY_MEMBER):
    user = User.objects.create_user(email=email, password=PASSWORD, role=role,
                                    full_name=email.split('@')[0].title())
    FamilyMember.objects.create(patient=patient, user=user, name=user.full_name, email=email,
                                role=role, status='active')
    return user


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def agency(db):
    return Agency.objects.create(name='Sunrise Hospice', email='office@sunrise.test')


@pytest.fixture
def other_agency(db):
    return Agency.objects.create(name='Evening Star Hospice')


@pytest.fixture
def admin_user(agency):
    return make_staff(agency, 'admin@sunrise.test', ROLE_AGENCY_ADMIN)


@pytest.fixture
def staff_user(agency):
    return make_staff(agency, 'nurse@sunrise.test')


@pytest.fixture
def super_user(db):
    return User.objects.create_user(email='root@portal.test', password=PASSWORD, role=ROLE_SUPER_ADMIN)


@pytest.fixture
def patient(agency):
    return Patient.objects.create(agency=agency, first_name='Ada', last_name='Lovelace')


@pytest.fixture
def foreign_patient(other_agency):
    return Patient.objects.create(agency=other_agency, first_name='Grace', last_name='Hopper')


@pytest.fixture
def family_user(patient):
    return make_family(patient, 'son@family.test')


@pytest.fixture
def family_admin(patient):
    return make_family(patient, 'daughter@family.test', ROLE_FAMILY_ADMIN)
