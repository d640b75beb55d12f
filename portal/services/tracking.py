"""
Parcel tracking through the 17track API.

Registration tags each tracking number with the delivery id so that the
push webhook (``/api/webhooks/17track``) can be matched back to a
:class:`~portal.models.Delivery`.  Nothing in here raises into the
caller: every call returns a small result dict and logs the failure.
"""
from __future__ import annotations

import logging
import re
import time
from typing import Optional

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from portal.models import Delivery
from portal.services.notifications import EVENT_DELIVERY_UPDATED, notify_family

logger = logging.getLogger(__name__)

CARRIER_CODES = {
    'ups': 100002,
    'fedex': 100003,
    'usps': 21051,
    'dhl': 100001,
    'amazon': 100143,
    'ontrac': 100049,
    'lasership': 100050,
}

CARRIER_NAME_TO_CODE = {
    'UPS': 100002,
    'FedEx': 100003,
    'USPS': 21051,
    'DHL': 100001,
    'Amazon Logistics': 100143,
    'OnTrac': 100049,
    'LaserShip': 100050,
}

_URL_PATTERNS = [
    re.compile(r'tracknumbers=([A-Z0-9]+)', re.I),
    re.compile(r'tracknum=([A-Z0-9]+)', re.I),
    re.compile(r'tracking[_-]?number=([A-Z0-9]+)', re.I),
    re.compile(r'trackingId=([A-Z0-9]+)', re.I),
    re.compile(r'track/([A-Z0-9]+)', re.I),
    re.compile(r'tracking/([A-Z0-9]+)', re.I),
    re.compile(r'\?id=([A-Z0-9]+)', re.I),
]
_PATH_SEGMENT = re.compile(r'/([A-Z0-9]{10,30})(?:/|\?|$)', re.I)

# 17track latest_status.status codes
STATUS_DELIVERED = 40
STATUS_OUT_FOR_DELIVERY = 35
STATUS_IN_TRANSIT_MIN = 10


class TrackingError(Exception):
    pass


def extract_tracking_number(tracking_url: Optional[str]) -> Optional[str]:
    if not tracking_url:
        return None
    for pattern in _URL_PATTERNS:
        m = pattern.search(tracking_url)
        if m:
            return m.group(1)
    m = _PATH_SEGMENT.search(tracking_url)
    if m:
        return m.group(1)
    return None


def detect_carrier_code(tracking_url: str, tracking_number: str) -> Optional[int]:
    """17track carrier code from the URL's domain, then from the number format.

    ``None`` lets 17track auto-detect the carrier.
    """
    url = (tracking_url or '').lower()
    for domain, key in (
        ('ups.com', 'ups'),
        ('fedex.com', 'fedex'),
        ('usps.com', 'usps'),
        ('dhl.com', 'dhl'),
        ('amazon.com', 'amazon'),
        ('ontrac.com', 'ontrac'),
        ('lasership.com', 'lasership'),
    ):
        if domain in url:
            return CARRIER_CODES[key]

    number = tracking_number or ''
    if number.startswith('1Z'):
        return CARRIER_CODES['ups']
    if re.fullmatch(r'\d{12,22}', number):
        return CARRIER_CODES['fedex']
    if re.fullmatch(r'\d{20,22}', number) or re.fullmatch(r'9\d{15,21}', number):
        return CARRIER_CODES['usps']
    return None


def detect_carrier_name(tracking_number: Optional[str]) -> Optional[str]:
    """Best guess at the carrier's display name from the number alone."""
    if not tracking_number:
        return None
    num = tracking_number.strip().upper()
    if re.fullmatch(r'1Z[A-Z0-9]{16,18}', num):
        return 'UPS'
    if re.fullmatch(r'\d{12}|\d{15}|\d{20}|\d{22}', num) or re.fullmatch(r'\d{12,22}', num):
        return 'FedEx'
    if re.fullmatch(r'9\d{15,21}', num) or re.fullmatch(r'\d{20,22}', num) or re.fullmatch(r'(94|93|92|91)\d{18,20}', num):
        return 'USPS'
    if re.fullmatch(r'\d{10,11}', num) or re.fullmatch(r'JD\d{18}', num) or re.fullmatch(r'JJD\d{17}', num):
        return 'DHL'
    if re.fullmatch(r'TBA\d{12,}', num):
        return 'Amazon Logistics'
    return None


def map_tracking_status(status_code, description: Optional[str] = None) -> str:
    """Translate a 17track status code (and event text) to a delivery status."""
    text = (description or '').lower()
    try:
        code = int(status_code or 0)
    except (TypeError, ValueError):
        # newer payloads send names such as "Delivered" / "InTransit"
        code = 0
        name = str(status_code).lower()
        text = f"{text} {name}"
        if name == 'intransit':
            code = STATUS_IN_TRANSIT_MIN
        elif name == 'outfordelivery':
            code = STATUS_OUT_FOR_DELIVERY
    if code == STATUS_DELIVERED or 'delivered' in text:
        return 'delivered'
    if code == STATUS_OUT_FOR_DELIVERY or 'out for delivery' in text:
        return 'out_for_delivery'
    if STATUS_IN_TRANSIT_MIN <= code < STATUS_OUT_FOR_DELIVERY:
        return 'in_transit'
    return 'shipped'


def _post(endpoint: str, payload) -> dict:
    url = f"{settings.TRACKING_API_BASE}/{endpoint}"
    r = requests.post(
        url,
        json=payload,
        headers={'17token': settings.TRACKING_API_KEY, 'Content-Type': 'application/json'},
        timeout=settings.TRACKING_TIMEOUT,
    )
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise TrackingError('Unexpected response from tracking API')
    return data


def register_tracking_number(tracking_number: Optional[str], tracking_url: str, delivery_id) -> dict:
    if not settings.TRACKING_API_KEY:
        logger.info("no TRACKING_API_KEY configured, skipping registration for %s", delivery_id)
        return {'success': False, 'error': 'Tracking API not configured'}

    tracking_number = tracking_number or extract_tracking_number(tracking_url)
    if not tracking_number:
        return {'success': False, 'error': 'Could not extract tracking number'}

    carrier = detect_carrier_code(tracking_url, tracking_number)
    entry = {'number': tracking_number, 'tag': str(delivery_id)}
    if carrier is not None:
        entry['carrier'] = carrier

    try:
        logger.info("registering tracking number %s for delivery %s", tracking_number, delivery_id)
        result = _post('register', [entry])
    except (requests.RequestException, ValueError, TrackingError) as e:
        logger.warning("tracking registration failed for %s: %s", delivery_id, e)
        return {'success': False, 'error': str(e) or 'Registration failed'}

    data = result.get('data') or {}
    if data.get('accepted'):
        Delivery.objects.filter(id=delivery_id).update(tracking_number=tracking_number)
        return {'success': True}
    rejected = data.get('rejected') or []
    if rejected:
        error = rejected[0].get('error') or {}
        # code 0: number is already registered
        if error.get('code') == 0:
            return {'success': True}
        return {'success': False, 'error': error.get('message') or 'Registration rejected'}
    return {'success': False, 'error': 'Unknown registration response'}


def register_all_tracking_numbers() -> dict:
    deliveries = (
        Delivery.objects.exclude(tracking_url='')
        .exclude(status=Delivery.STATUS_DELIVERED)
        .order_by('created_at')
    )
    results = {'total': deliveries.count(), 'registered': 0, 'failed': 0, 'errors': []}
    for i, delivery in enumerate(deliveries):
        number = delivery.tracking_number or extract_tracking_number(delivery.tracking_url)
        if not number:
            results['failed'] += 1
            results['errors'].append(f"Delivery {delivery.id}: Could not extract tracking number")
            continue
        if i and settings.TRACKING_REGISTER_DELAY:
            # 17track rate limit
            time.sleep(settings.TRACKING_REGISTER_DELAY)
        outcome = register_tracking_number(number, delivery.tracking_url, delivery.id)
        if outcome['success']:
            results['registered'] += 1
        else:
            results['failed'] += 1
            results['errors'].append(f"Delivery {delivery.id}: {outcome.get('error')}")
    logger.info("tracking registration: %s registered, %s failed of %s",
                results['registered'], results['failed'], results['total'])
    return results


@transaction.atomic
def apply_status(delivery: Delivery, new_status: str) -> bool:
    """Store ``new_status`` and notify the family; False when nothing changed."""
    if delivery.status == new_status:
        return False
    now = timezone.now()
    delivery.status = new_status
    delivery.last_update = now
    fields = ['status', 'last_update', 'updated_at']
    if new_status == Delivery.STATUS_DELIVERED:
        delivery.delivered_at = now
        fields.append('delivered_at')
    delivery.save(update_fields=fields)
    notify_family(delivery.patient, EVENT_DELIVERY_UPDATED,
                  {'item_name': delivery.item_name, 'status': new_status}, reference_id=delivery.id)
    return True


def refresh_tracking_info(delivery_id) -> dict:
    """Pull the latest status for one delivery and store it."""
    delivery = Delivery.objects.select_related('patient').filter(id=delivery_id).first()
    if not delivery or not delivery.tracking_url:
        return {'success': False, 'error': 'Delivery not found or no tracking URL'}

    number = delivery.tracking_number or extract_tracking_number(delivery.tracking_url)
    if not number:
        return {'success': False, 'error': 'Could not extract tracking number'}

    register_tracking_number(number, delivery.tracking_url, delivery.id)
    if not settings.TRACKING_API_KEY:
        return {'success': False, 'error': 'Tracking API not configured'}

    try:
        result = _post('gettrackinfo', [{'number': number}])
    except (requests.RequestException, ValueError, TrackingError) as e:
        logger.warning("tracking refresh failed for %s: %s", delivery_id, e)
        return {'success': False, 'error': str(e) or 'Failed to fetch tracking info'}

    accepted = (result.get('data') or {}).get('accepted') or []
    if not accepted:
        return {'success': False, 'error': 'No tracking info available'}

    latest = (accepted[0].get('track_info') or {}).get('latest_status') or {}
    new_status = map_tracking_status(latest.get('status'))
    changed = apply_status(delivery, new_status)
    return {'success': True, 'status': new_status, 'changed': changed}
