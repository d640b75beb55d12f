from rest_framework import serializers

from portal.models import Visit


class VisitCreateSerializer(serializers.Serializer):
    patientId = serializers.CharField(source='patient_id')
    staffName = serializers.CharField(source='staff_name', max_length=255, required=False, allow_blank=True)
    discipline = serializers.CharField(max_length=64, required=False, allow_blank=True)
    scheduledDate = serializers.DateField(source='scheduled_date')
    scheduledTime = serializers.TimeField(source='scheduled_time', required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class VisitUpdateSerializer(serializers.Serializer):
    id = serializers.CharField()
    staffName = serializers.CharField(source='staff_name', max_length=255, required=False, allow_blank=True,
                                      allow_null=True)
    discipline = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    scheduledDate = serializers.DateField(source='scheduled_date', required=False)
    scheduledTime = serializers.TimeField(source='scheduled_time', required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Visit.STATUS_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class VisitListQuerySerializer(serializers.Serializer):
    patientId = serializers.CharField(required=False)
    status = serializers.ChoiceField(choices=Visit.STATUS_CHOICES, required=False)
    upcoming = serializers.BooleanField(required=False, default=False)


class VisitFeedbackSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, max_length=2000)
