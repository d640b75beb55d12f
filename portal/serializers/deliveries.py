from rest_framework import serializers

from portal.models import Delivery


class ItemsField(serializers.Field):
    """``{key: qty}`` or a plain list of item keys."""

    def to_internal_value(self, data):
        if isinstance(data, dict):
            return data
        if isinstance(data, list) and all(isinstance(k, str) for k in data):
            return data
        raise serializers.ValidationError('items must be an object of quantities or a list of item keys')

    def to_representation(self, value):
        return value


class DeliveryFieldsSerializer(serializers.Serializer):
    itemName = serializers.CharField(source='item_name', max_length=1024, required=False, allow_blank=True)
    items = ItemsField(required=False)
    carrier = serializers.CharField(max_length=64, required=False, allow_blank=True)
    trackingNumber = serializers.CharField(source='tracking_number', max_length=64, required=False,
                                           allow_blank=True)
    trackingUrl = serializers.URLField(source='tracking_url', max_length=1024, required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Delivery.STATUS_CHOICES, required=False)
    estimatedDelivery = serializers.DateField(source='estimated_delivery', required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class DeliveryCreateSerializer(DeliveryFieldsSerializer):
    # plain string: malformed ids get the service's 400
    patientId = serializers.CharField(source='patient_id')


class DeliveryUpdateSerializer(serializers.Serializer):
    itemName = serializers.CharField(source='item_name', max_length=1024, required=False)
    carrier = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    trackingNumber = serializers.CharField(source='tracking_number', max_length=64, required=False,
                                           allow_blank=True, allow_null=True)
    trackingUrl = serializers.URLField(source='tracking_url', max_length=1024, required=False, allow_blank=True,
                                       allow_null=True)
    status = serializers.ChoiceField(choices=Delivery.STATUS_CHOICES, required=False)
    estimatedDelivery = serializers.DateField(source='estimated_delivery', required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class DeliveryListQuerySerializer(serializers.Serializer):
    patientId = serializers.CharField(required=False)
    status = serializers.ChoiceField(choices=Delivery.STATUS_CHOICES, required=False)


class TrackingRegisterSerializer(serializers.Serializer):
    deliveryId = serializers.CharField(required=False)
    refresh = serializers.BooleanField(required=False, default=False)
