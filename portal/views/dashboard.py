"""
Administrative dashboard and audit log endpoints.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsAgencyAdmin, IsAgencyStaff
from portal.services.audit import list_events
from portal.services.dashboard import agency_dashboard


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAgencyStaff])
def admin_dashboard(request):
    return Response({'ok': True, **agency_dashboard(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def audit_logs(request):
    page = int(request.query_params.get('page') or 1)
    page_size = int(request.query_params.get('pageSize') or 50)
    items, total = list_events(request.user, action=request.query_params.get('action'),
                               page=page, page_size=page_size)
    return Response({'ok': True, 'data': items,
                     'pagination': {'total': total, 'page': page, 'pageSize': page_size}})
