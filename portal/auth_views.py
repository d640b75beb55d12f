"""
Authentication views.

Password login hands out both a legacy DRF token and a JWT pair; the
magic-link callback signs the user into a Django session and forwards
them to the right part of the web app.  Kept apart from
``portal.authentication`` so DRF can load the authentication class
without importing views.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from django.contrib.auth import authenticate, get_user_model, login
from django.http import HttpResponseRedirect
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_GET
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from portal.models import FAMILY_ROLES, FacilityInvite, ROLE_SUPER_ADMIN, STAFF_ROLES
from portal.serializers.auth import LoginSerializer, LogoutSerializer
from portal.services.access import get_agency_id, parse_uuid
from portal.services.audit import log_action
from portal.services.magic_links import read_login_code

logger = logging.getLogger(__name__)

User = get_user_model()


def user_payload(user) -> dict:
    agency_id = get_agency_id(user)
    return {
        'id': user.pk,
        'email': user.email,
        'username': user.username,
        'name': user.display_name,
        'role': user.role,
        'agencyId': str(agency_id) if agency_id else None,
        'needsPasswordSetup': user.needs_password_setup,
        'onboardingCompleted': user.onboarding_completed,
    }


# ---------------------------------------------------------------------
# Email/password login
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """
    Accepts ``email`` (or ``username``) and ``password``.
    """
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    account = s.validated_data['account']
    password = s.validated_data['password']

    username = account
    if '@' in account:
        match = User.objects.filter(email__iexact=account).only('username').first()
        if match:
            username = match.username
    user = authenticate(request, username=username, password=password)
    if not user:
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'account': account, 'ip': request.META.get('REMOTE_ADDR')})
        return Response({'ok': False, 'detail': 'Invalid email or password'}, status=400)

    log_action(user=user, action='login', object_type='user', object_id=user.pk,
               detail={'result': 'ok', 'ip': request.META.get('REMOTE_ADDR')})

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return Response({
        'ok': True,
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'user': user_payload(user),
    }, status=200)

# ScopedRateThrottle reads throttle_scope from the view class
login_view.cls.throttle_scope = 'login'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    return Response({'ok': True, 'user': user_payload(request.user)})


# ---------------------------------------------------------------------
# JWT: refresh & logout
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from refresh token."""
    resp = TokenRefreshView.as_view()(request._request)
    if isinstance(resp, Response):
        data = dict(resp.data)
        if 'access' in data and 'jwt_access' not in data:
            data['jwt_access'] = data.pop('access')
        return Response(data, status=resp.status_code)
    return resp


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the user."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
            count = 1
        except TokenError as e:
            return Response({'ok': False, 'detail': str(e)}, status=400)
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    Token.objects.filter(user=request.user).delete()
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.pk,
               detail={'blacklisted': count})
    return Response({'ok': True, 'blacklisted': count})


# ---------------------------------------------------------------------
# Magic-link callback
# ---------------------------------------------------------------------
def _safe_next(next_path: Optional[str], request) -> Optional[str]:
    if not next_path or not next_path.startswith('/') or next_path.startswith('//'):
        return None
    if not url_has_allowed_host_and_scheme(next_path, allowed_hosts={request.get_host()}):
        return None
    return next_path


def role_home(user) -> str:
    if user.role == ROLE_SUPER_ADMIN:
        return '/super-admin'
    if user.role in STAFF_ROLES:
        return '/admin'
    if user.role in FAMILY_ROLES:
        return '/family'
    return '/dashboard'


@require_GET
def auth_callback(request):
    code = request.GET.get('code')
    if not code:
        return HttpResponseRedirect('/login?' + urlencode({'error': 'Missing sign-in code'}))
    try:
        user = read_login_code(code)
    except ValueError as e:
        logger.info("rejected magic-link sign-in: %s", e)
        return HttpResponseRedirect('/login?' + urlencode({'error': str(e)}))

    login(request, user, backend='django.contrib.auth.backends.ModelBackend')
    log_action(user=user, action='magic_link_login', object_type='user', object_id=user.pk)

    facility = request.GET.get('facility') or (str(user.agency_id) if user.agency_id else '')
    if user.needs_password_setup and facility:
        token = request.GET.get('token') or ''
        if not token:
            invite = (FacilityInvite.objects
                      .filter(email__iexact=user.email, agency_id=facility, accepted_at__isnull=True)
                      .order_by('-created_at').first()) if _is_uuid(facility) else None
            token = str(invite.token) if invite else ''
        params = {'facility': facility}
        if token:
            params['token'] = token
        return HttpResponseRedirect('/facility-setup?' + urlencode(params))

    next_path = _safe_next(request.GET.get('next'), request)
    return HttpResponseRedirect(next_path or role_home(user))


def _is_uuid(value: str) -> bool:
    try:
        parse_uuid(value)
    except ValueError:
        return False
    return True
