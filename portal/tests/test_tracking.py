import pytest
import requests

from portal.models import Delivery, Notification
from portal.services import tracking
from portal.services.catalog import DEFAULT_CATALOG, display_name, normalize_item_key

from .conftest import client_for

CATALOG = {e['key']: dict(e, sizes=[]) for e in DEFAULT_CATALOG}


@pytest.mark.parametrize('url,expected', [
    ('https://www.ups.com/track?loc=en_US&tracknum=1Z999AA10123456784', '1Z999AA10123456784'),
    ('https://www.fedex.com/fedextrack/?tracknumbers=123456789012', '123456789012'),
    ('https://tools.usps.com/go/TrackConfirmAction?tracking_number=9400111899223397846215',
     '9400111899223397846215'),
    ('https://carrier.example/parcels/AB12345678CD', 'AB12345678CD'),
    ('https://example.com/', None),
    ('', None),
])
def test_extract_tracking_number(url, expected):
    assert tracking.extract_tracking_number(url) == expected


def test_carrier_code_prefers_url_domain():
    assert tracking.detect_carrier_code('https://www.dhl.com/track?id=1', '123456789012') == 100001
    assert tracking.detect_carrier_code('', '1Z999AA10123456784') == 100002
    assert tracking.detect_carrier_code('', '123456789012') == 100003
    assert tracking.detect_carrier_code('', 'ABC') is None


@pytest.mark.parametrize('number,expected', [
    ('1Z999AA10123456784', 'UPS'),
    ('123456789012', 'FedEx'),
    ('TBA123456789012', 'Amazon Logistics'),
    ('JJD01234567890123456', 'DHL'),
    ('', None),
    ('HELLO', None),
])
def test_detect_carrier_name(number, expected):
    assert tracking.detect_carrier_name(number) == expected


@pytest.mark.parametrize('code,description,expected', [
    (40, '', 'delivered'),
    (35, '', 'out_for_delivery'),
    (10, '', 'in_transit'),
    (0, '', 'shipped'),
    (0, 'Package delivered to front porch', 'delivered'),
    ('InTransit', None, 'in_transit'),
])
def test_map_tracking_status(code, description, expected):
    assert tracking.map_tracking_status(code, description) == expected


@pytest.mark.parametrize('key,expected', [
    ('gloves', ('gloves', None)),
    ('diapers_l', ('diapers', 'l')),
    ('gloves__medium', ('gloves', 'medium')),
    ('medical_equipment', ('medical_equipment', None)),
    ('oxygen_tank', ('oxygen_tank', None)),
])
def test_normalize_item_key(key, expected):
    assert normalize_item_key(key, CATALOG) == expected


def test_display_name_falls_back_to_titleized_key():
    assert display_name('diapers_xl', CATALOG) == 'Adult Diapers (XL)'
    assert display_name('gloves__medium', CATALOG) == 'Disposable Gloves (medium)'
    assert display_name('oxygen_tank', CATALOG) == 'Oxygen Tank'


@pytest.mark.django_db
def test_register_without_api_key_is_a_noop(patient):
    result = tracking.register_tracking_number('1Z999AA10123456784', '', patient.id)
    assert result == {'success': False, 'error': 'Tracking API not configured'}


class _Resp:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self._payload


@pytest.mark.django_db
def test_register_tags_delivery_and_stores_number(settings, patient, monkeypatch):
    settings.TRACKING_API_KEY = 'k'
    d = Delivery.objects.create(patient=patient, item_name='Gloves',
                                tracking_url='https://www.ups.com/track?tracknum=1Z999AA10123456784')
    sent = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.update(url=url, json=json, headers=headers)
        return _Resp({'code': 0, 'data': {'accepted': [{'number': '1Z999AA10123456784'}], 'rejected': []}})

    monkeypatch.setattr(requests, 'post', fake_post)
    result = tracking.register_tracking_number(None, d.tracking_url, d.id)
    assert result == {'success': True}
    assert sent['url'].endswith('/register')
    assert sent['headers']['17token'] == 'k'
    assert sent['json'] == [{'number': '1Z999AA10123456784', 'tag': str(d.id), 'carrier': 100002}]
    d.refresh_from_db()
    assert d.tracking_number == '1Z999AA10123456784'


@pytest.mark.django_db
def test_register_reports_network_failure(settings, patient, monkeypatch):
    settings.TRACKING_API_KEY = 'k'

    def boom(*a, **kw):
        raise requests.ConnectionError('unreachable')

    monkeypatch.setattr(requests, 'post', boom)
    result = tracking.register_tracking_number('1Z999AA10123456784', '', patient.id)
    assert result['success'] is False
    assert 'unreachable' in result['error']


@pytest.mark.django_db
def test_register_all_counts_failures(settings, patient, monkeypatch):
    settings.TRACKING_REGISTER_DELAY = 0
    Delivery.objects.create(patient=patient, item_name='A', tracking_url='https://example.com/')
    Delivery.objects.create(patient=patient, item_name='B',
                            tracking_url='https://www.ups.com/track?tracknum=1Z999AA10123456784')
    Delivery.objects.create(patient=patient, item_name='C', status='delivered',
                            tracking_url='https://www.ups.com/track?tracknum=1Z999AA10123456799')
    monkeypatch.setattr(tracking, 'register_tracking_number', lambda *a: {'success': True})
    results = tracking.register_all_tracking_numbers()
    assert results['total'] == 2
    assert results['registered'] == 1
    assert results['failed'] == 1


@pytest.mark.django_db
def test_register_treats_already_registered_as_success(settings, patient, monkeypatch):
    settings.TRACKING_API_KEY = 'k'
    monkeypatch.setattr(requests, 'post', lambda *a, **kw: _Resp({'data': {
        'accepted': [], 'rejected': [{'number': '1Z999AA10123456784', 'error': {'code': 0, 'message': 'exists'}}],
    }}))
    assert tracking.register_tracking_number('1Z999AA10123456784', '', patient.id) == {'success': True}


@pytest.mark.django_db
def test_register_reports_other_rejections(settings, patient, monkeypatch):
    settings.TRACKING_API_KEY = 'k'
    monkeypatch.setattr(requests, 'post', lambda *a, **kw: _Resp({'data': {
        'accepted': [], 'rejected': [{'error': {'code': -18019901, 'message': 'Invalid number'}}],
    }}))
    result = tracking.register_tracking_number('1Z999AA10123456784', '', patient.id)
    assert result == {'success': False, 'error': 'Invalid number'}


def _tracker(status_code):
    def fake_post(url, json=None, headers=None, timeout=None):
        if url.endswith('/gettrackinfo'):
            return _Resp({'data': {'accepted': [
                {'number': json[0]['number'], 'track_info': {'latest_status': {'status': status_code}}},
            ]}})
        return _Resp({'data': {'accepted': [{'number': json[0]['number']}]}})
    return fake_post


@pytest.mark.django_db
def test_refresh_stores_status_and_notifies_once(settings, patient, family_user, monkeypatch):
    settings.TRACKING_API_KEY = 'k'
    d = Delivery.objects.create(patient=patient, item_name='Gloves', status='shipped',
                                tracking_url='https://www.ups.com/track?tracknum=1Z999AA10123456784')
    monkeypatch.setattr(requests, 'post', _tracker(40))

    assert tracking.refresh_tracking_info(d.id) == {'success': True, 'status': 'delivered', 'changed': True}
    d.refresh_from_db()
    assert d.status == 'delivered'
    first_delivered_at, first_update = d.delivered_at, d.last_update
    assert first_delivered_at is not None

    assert tracking.refresh_tracking_info(d.id)['changed'] is False
    d.refresh_from_db()
    assert (d.delivered_at, d.last_update) == (first_delivered_at, first_update)
    assert Notification.objects.filter(user=family_user, type='delivery_updated').count() == 1


@pytest.mark.django_db
def test_refresh_without_tracking_url(patient):
    d = Delivery.objects.create(patient=patient, item_name='Gloves')
    assert tracking.refresh_tracking_info(d.id)['success'] is False


@pytest.mark.django_db
def test_tracking_lookup_endpoint(staff_user):
    r = client_for(staff_user).get('/api/tracking',
                                   {'url': 'https://www.ups.com/track?tracknum=1Z999AA10123456784'})
    assert r.status_code == 200
    assert r.data['trackingNumber'] == '1Z999AA10123456784'
    assert r.data['carrier'] == 'UPS'
    assert r.data['carrierCode'] == 100002


@pytest.mark.django_db
def test_tracking_register_endpoint(settings, admin_user, staff_user, patient, monkeypatch):
    settings.TRACKING_API_KEY = 'k'
    d = Delivery.objects.create(patient=patient, item_name='Gloves', status='shipped',
                                tracking_url='https://www.ups.com/track?tracknum=1Z999AA10123456784')
    monkeypatch.setattr(requests, 'post', _tracker(10))
    body = {'deliveryId': str(d.id), 'refresh': True}

    assert client_for(staff_user).post('/api/tracking/register', body, format='json').status_code == 403
    r = client_for(admin_user).post('/api/tracking/register', body, format='json')
    assert r.status_code == 200
    assert r.data['ok'] is True
    assert r.data['status'] == 'in_transit'
    d.refresh_from_db()
    assert d.status == 'in_transit'
