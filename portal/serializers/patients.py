import bleach
from rest_framework import serializers

from portal.models import FamilyMember, Patient


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class PatientWriteSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Patient.STATUS_CHOICES, required=False)
    admissionDate = serializers.DateField(source='admission_date', required=False, allow_null=True)
    dischargeDate = serializers.DateField(source='discharge_date', required=False, allow_null=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    agencyId = serializers.CharField(source='agency_id', required=False)

    def validate_firstName(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('First name is required')
        return v

    def validate_lastName(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Last name is required')
        return v

    def validate_address(self, v):
        return _clean(v)


class PatientListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Patient.STATUS_CHOICES, required=False)
    q = serializers.CharField(max_length=64, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class FamilyMemberSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    relationship = serializers.CharField(max_length=64, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=FamilyMember.ROLE_CHOICES, required=False)
    isPrimaryContact = serializers.BooleanField(source='is_primary_contact', required=False)

    def validate_name(self, v):
        v = _clean(v)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v
