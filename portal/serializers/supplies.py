from rest_framework import serializers

from portal.models import SupplyRequest


class SupplyRequestCreateSerializer(serializers.Serializer):
    patientId = serializers.CharField(source='patient_id')
    items = serializers.DictField(child=serializers.IntegerField(min_value=0))
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class SupplyRequestUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SupplyRequest.STATUS_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)


class SupplyRequestListQuerySerializer(serializers.Serializer):
    patientId = serializers.CharField(required=False)
    status = serializers.ChoiceField(choices=SupplyRequest.STATUS_CHOICES, required=False)


class CatalogItemSerializer(serializers.Serializer):
    key = serializers.SlugField(max_length=64)
    name = serializers.CharField(max_length=255)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    sizes = serializers.ListField(child=serializers.CharField(max_length=16), required=False)
    isActive = serializers.BooleanField(source='is_active', required=False, default=True)
