from rest_framework import serializers

from portal.models import Agency

from .team import TEAM_ROLE_CHOICES


class FacilityWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    state = serializers.CharField(max_length=50, required=False, allow_blank=True)
    zipCode = serializers.CharField(source='zip_code', max_length=20, required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Agency.STATUS_CHOICES, required=False)
    subscriptionTier = serializers.CharField(source='subscription_tier', max_length=32, required=False)
    maxPatients = serializers.IntegerField(source='max_patients', min_value=1, required=False)
    maxStaff = serializers.IntegerField(source='max_staff', min_value=1, required=False)
    adminEmail = serializers.EmailField(source='admin_email', required=False, allow_blank=True)
    adminName = serializers.CharField(source='admin_name', max_length=255, required=False, allow_blank=True)


class FacilityStaffSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(choices=TEAM_ROLE_CHOICES, required=False)
