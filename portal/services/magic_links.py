from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import signing

User = get_user_model()

SALT = 'portal.magic-link'


def make_login_code(user) -> str:
    return signing.dumps({'uid': user.pk, 'email': user.email}, salt=SALT, compress=True)


def read_login_code(code: str) -> User:
    """Resolve a magic-link code to its user.

    Raises ``ValueError`` for tampered, expired or stale codes.
    """
    try:
        data = signing.loads(code, salt=SALT, max_age=settings.MAGIC_LINK_MAX_AGE)
    except signing.SignatureExpired:
        raise ValueError('This sign-in link has expired')
    except signing.BadSignature:
        raise ValueError('Invalid sign-in link')
    user = User.objects.filter(pk=data.get('uid'), is_active=True).first()
    if not user or (user.email or '').lower() != (data.get('email') or '').lower():
        raise ValueError('Invalid sign-in link')
    return user


def login_url(user, *, facility_id=None, next_path: Optional[str] = None) -> str:
    params = {'code': make_login_code(user)}
    if facility_id:
        params['facility'] = str(facility_id)
    if next_path:
        params['next'] = next_path
    return f"{settings.SITE_URL}/auth/callback?{urlencode(params)}"
