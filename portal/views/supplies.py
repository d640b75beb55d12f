from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import StaffWriteOrReadOnly
from portal.serializers.deliveries import DeliveryFieldsSerializer
from portal.serializers.supplies import (
    CatalogItemSerializer,
    SupplyRequestCreateSerializer,
    SupplyRequestListQuerySerializer,
    SupplyRequestUpdateSerializer,
)
from portal.services import catalog
from portal.services import deliveries as delivery_svc
from portal.services import supplies as svc
from portal.services.access import get_agency_id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supply_requests(request):
    if request.method == 'POST':
        s = SupplyRequestCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        req = svc.create_request(request.user, s.validated_data['patient_id'], s.validated_data['items'],
                                 s.validated_data.get('notes', ''))
        return Response({'ok': True, 'data': svc.serialize(req)}, status=status.HTTP_201_CREATED)

    q = SupplyRequestListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_requests(request.user, patient_id=q.validated_data.get('patientId'),
                           status=q.validated_data.get('status'))
    return Response({'ok': True, 'data': [svc.serialize(r) for r in qs]})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supply_request_detail(request, request_id):
    if request.method == 'DELETE':
        svc.delete_request(request.user, request_id)
        return Response({'ok': True})
    s = SupplyRequestUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = svc.update_status(request.user, request_id, s.validated_data['status'],
                            notes=s.validated_data.get('notes'))
    return Response({'ok': True, 'data': svc.serialize(req)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def supply_request_delivery(request, request_id):
    s = DeliveryFieldsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    delivery = svc.create_delivery_from_request(request.user, request_id, s.validated_data)
    return Response({'ok': True, 'data': delivery_svc.serialize(delivery)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, StaffWriteOrReadOnly])
def supply_catalog(request):
    agency_id = get_agency_id(request.user)
    if request.method == 'POST':
        s = CatalogItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        if not agency_id:
            return Response({'ok': False, 'detail': 'No agency found'}, status=400)
        item = catalog.upsert_item(agency_id, **s.validated_data)
        return Response({'ok': True, 'data': {'key': item.key, 'name': item.name, 'category': item.category,
                                              'sizes': item.sizes, 'isActive': item.is_active}},
                        status=status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': catalog.list_catalog(agency_id)})
