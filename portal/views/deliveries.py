"""
Delivery endpoints and the tracking helpers behind the delivery form.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from portal.permissions import IsAgencyAdmin, IsAgencyStaff
from portal.serializers.deliveries import (
    DeliveryCreateSerializer,
    DeliveryListQuerySerializer,
    DeliveryUpdateSerializer,
    TrackingRegisterSerializer,
)
from portal.services import deliveries as svc
from portal.services import tracking


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def deliveries(request):
    if request.method == 'POST':
        s = DeliveryCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        delivery = svc.create_delivery(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.serialize(delivery)}, status=status.HTTP_201_CREATED)

    q = DeliveryListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_deliveries(request.user, patient_id=q.validated_data.get('patientId'),
                             status=q.validated_data.get('status'))
    return Response({'ok': True, 'data': [svc.serialize(d) for d in qs]})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def delivery_detail(request, delivery_id):
    if request.method == 'DELETE':
        svc.delete_delivery(request.user, delivery_id)
        return Response({'ok': True})
    s = DeliveryUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    delivery = svc.update_delivery(request.user, delivery_id, s.validated_data)
    return Response({'ok': True, 'data': svc.serialize(delivery)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAgencyStaff])
def tracking_lookup(request):
    """Extract the number and guess the carrier from a pasted tracking link."""
    url = request.query_params.get('url') or ''
    number = request.query_params.get('number') or tracking.extract_tracking_number(url)
    return Response({
        'ok': True,
        'trackingNumber': number,
        'carrier': tracking.detect_carrier_name(number),
        'carrierCode': tracking.detect_carrier_code(url, number or ''),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAgencyAdmin])
def tracking_register(request):
    """Register one delivery (optionally refreshing its status) or all open ones."""
    s = TrackingRegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    delivery_id = s.validated_data.get('deliveryId')
    if not delivery_id:
        return Response({'ok': True, **tracking.register_all_tracking_numbers()})

    delivery = svc.get_delivery(request.user, delivery_id)
    if s.validated_data.get('refresh'):
        result = tracking.refresh_tracking_info(delivery.id)
    else:
        result = tracking.register_tracking_number(delivery.tracking_number, delivery.tracking_url, delivery.id)
    return Response({'ok': bool(result.get('success')), **result})
