"""
Supply catalog lookups and item-key normalization.

Supply requests store items as ``{item_key: quantity}``.  Keys may carry a
size suffix (``diapers_l``, ``gloves__medium``); deliveries need a readable
``item_name`` built from those keys.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from portal.models import SupplyItem

DEFAULT_CATALOG = [
    # Personal Care
    {'key': 'gloves', 'name': 'Disposable Gloves', 'category': 'Personal Care'},
    {'key': 'wipes', 'name': 'Adult Wipes', 'category': 'Personal Care'},
    {'key': 'pads', 'name': 'Bed Pads', 'category': 'Personal Care'},
    {'key': 'diapers', 'name': 'Adult Diapers', 'category': 'Personal Care'},
    # Medical Supplies
    {'key': 'gauze', 'name': 'Gauze Pads', 'category': 'Medical Supplies'},
    {'key': 'tape', 'name': 'Medical Tape', 'category': 'Medical Supplies'},
    {'key': 'swabs', 'name': 'Cotton Swabs', 'category': 'Medical Supplies'},
    {'key': 'bandages', 'name': 'Bandages', 'category': 'Medical Supplies'},
    # Comfort Items
    {'key': 'lotion', 'name': 'Moisturizing Lotion', 'category': 'Comfort Items'},
    {'key': 'chapstick', 'name': 'Lip Balm', 'category': 'Comfort Items'},
    {'key': 'tissues', 'name': 'Tissues', 'category': 'Comfort Items'},
    {'key': 'blanket', 'name': 'Comfort Blanket', 'category': 'Comfort Items'},
    # General
    {'key': 'medication', 'name': 'Medication', 'category': 'General'},
    {'key': 'medical_equipment', 'name': 'Medical Equipment', 'category': 'General'},
]

GENERIC_SIZES = {'xs', 's', 'm', 'l', 'xl', 'xxl', 'small', 'medium', 'large', 'x-large', 'one-size'}

_SIZE_SPLIT = re.compile(r'^(?P<base>.+?)_{1,2}(?P<size>[A-Za-z0-9-]+)$')


def get_catalog(agency_id=None) -> dict[str, dict]:
    """Return ``{key: entry}`` with agency items layered over the defaults."""
    catalog = {e['key']: dict(e, sizes=[]) for e in DEFAULT_CATALOG}
    qs = SupplyItem.objects.filter(is_active=True, agency__isnull=True)
    if agency_id:
        qs = SupplyItem.objects.filter(is_active=True).filter(agency_id=agency_id) | qs
    # global rows first so agency rows override them
    for item in sorted(qs, key=lambda i: i.agency_id is not None):
        catalog[item.key] = {
            'key': item.key,
            'name': item.name,
            'category': item.category,
            'sizes': list(item.sizes or []),
        }
    return catalog


def titleize(key: str) -> str:
    return ' '.join(w[:1].upper() + w[1:] for w in key.split('_') if w)


def normalize_item_key(key: str, catalog: Optional[dict] = None) -> tuple[str, Optional[str]]:
    """Split ``key`` into ``(catalog_key, size)``.

    The suffix after the last ``_``/``__`` is treated as a size only when it
    is one of the catalog item's sizes or a generic size token, so keys such
    as ``medical_equipment`` survive intact.
    """
    catalog = catalog if catalog is not None else get_catalog()
    key = (key or '').strip()
    if key in catalog:
        return key, None
    m = _SIZE_SPLIT.match(key)
    if m:
        base, size = m.group('base').rstrip('_'), m.group('size')
        known = {str(s).lower() for s in catalog.get(base, {}).get('sizes', [])}
        if size.lower() in known or size.lower() in GENERIC_SIZES:
            return base, size
    return key, None


def display_name(key: str, catalog: Optional[dict] = None) -> str:
    catalog = catalog if catalog is not None else get_catalog()
    base, size = normalize_item_key(key, catalog)
    entry = catalog.get(base)
    name = entry['name'] if entry else titleize(base)
    return f"{name} ({size.upper() if len(size) <= 3 else size})" if size else name


def describe_items(items, agency_id=None) -> str:
    """Build the comma-joined ``item_name`` for a delivery.

    ``items`` may be a ``{key: qty}`` mapping or an iterable of keys.
    """
    catalog = get_catalog(agency_id)
    keys: Iterable[str] = items.keys() if isinstance(items, dict) else items
    return ', '.join(display_name(k, catalog) for k in keys if k)


def list_catalog(agency_id=None) -> list[dict]:
    grouped: dict[str, list[dict]] = {}
    for entry in get_catalog(agency_id).values():
        grouped.setdefault(entry.get('category') or 'Other', []).append(entry)
    return [{'category': cat, 'items': entries} for cat, entries in grouped.items()]


def upsert_item(agency_id, *, key: str, name: str, category: str = '', sizes=None, is_active: bool = True) -> SupplyItem:
    key = (key or '').strip().lower()
    if not key or not name:
        raise ValueError('Item key and name are required')
    item, _ = SupplyItem.objects.update_or_create(
        agency_id=agency_id, key=key,
        defaults={'name': name, 'category': category or '', 'sizes': list(sizes or []), 'is_active': is_active},
    )
    return item
