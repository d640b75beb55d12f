import bleach
from rest_framework import serializers

TEAM_ROLE_CHOICES = ['agency_admin', 'agency_staff']


class TeamInviteSerializer(serializers.Serializer):
    email = serializers.EmailField()
    fullName = serializers.CharField(source='full_name', max_length=255, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=TEAM_ROLE_CHOICES, required=False)
    jobRole = serializers.CharField(source='job_role', max_length=100, required=False, allow_blank=True)

    def validate_fullName(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class TeamRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=TEAM_ROLE_CHOICES)


class InvitationValidateSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)
    email = serializers.CharField(max_length=254)


class InvitationAcceptSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)
    email = serializers.CharField(max_length=254)
    fullName = serializers.CharField(source='full_name', max_length=255, allow_blank=True)
    password = serializers.CharField(allow_blank=True, write_only=True)
    confirmPassword = serializers.CharField(source='confirm', allow_blank=True, write_only=True)

    def validate_fullName(self, v):
        return bleach.clean((v or '').strip(), strip=True)
