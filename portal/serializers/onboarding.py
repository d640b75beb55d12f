from rest_framework import serializers

from .team import TEAM_ROLE_CHOICES


class FacilityQuerySerializer(serializers.Serializer):
    facility = serializers.CharField()


class SetPasswordSerializer(serializers.Serializer):
    password = serializers.CharField(allow_blank=True, write_only=True)
    confirmPassword = serializers.CharField(source='confirm', allow_blank=True, write_only=True)


class ConfigureFacilitySerializer(serializers.Serializer):
    facility = serializers.CharField()
    name = serializers.CharField(max_length=255, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    state = serializers.CharField(max_length=50, required=False, allow_blank=True)
    zipCode = serializers.CharField(source='zip_code', max_length=20, required=False, allow_blank=True)


class StaffRowSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, allow_blank=True)
    email = serializers.CharField(max_length=254, allow_blank=True)
    role = serializers.ChoiceField(choices=TEAM_ROLE_CHOICES, required=False)


class InviteStaffSerializer(serializers.Serializer):
    facility = serializers.CharField()
    staff = StaffRowSerializer(many=True)


class CompleteSetupSerializer(serializers.Serializer):
    facility = serializers.CharField()
    token = serializers.CharField(required=False, allow_blank=True)


class OnboardingStepSerializer(serializers.Serializer):
    step = serializers.IntegerField(min_value=1, max_value=20)
    completed = serializers.BooleanField(required=False, default=True)
