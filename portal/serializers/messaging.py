from rest_framework import serializers

from portal.models import Message, MessageThread


class MessageCreateSerializer(serializers.Serializer):
    patientId = serializers.CharField(source='patient_id')
    recipientId = serializers.IntegerField(source='recipient_id', required=False, allow_null=True)
    subject = serializers.CharField(max_length=255, required=False, allow_blank=True)
    body = serializers.CharField(max_length=5000)
    topicTag = serializers.CharField(source='topic_tag', max_length=64, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Message.PRIORITY_CHOICES, required=False)
    parentId = serializers.CharField(source='parent_id', required=False, allow_null=True)


class MessageListQuerySerializer(serializers.Serializer):
    patientId = serializers.CharField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class ThreadCreateSerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=MessageThread.CATEGORY_CHOICES)
    subject = serializers.CharField(max_length=255, required=False, allow_blank=True)
    participantIds = serializers.ListField(source='participant_ids', child=serializers.IntegerField(min_value=1),
                                           allow_empty=False)
    patientId = serializers.CharField(source='patient_id', required=False, allow_null=True)
    initialMessage = serializers.CharField(source='initial_message', required=False, allow_blank=True,
                                           max_length=5000)


class ThreadMessageSerializer(serializers.Serializer):
    body = serializers.CharField(max_length=5000, allow_blank=True)
    attachments = serializers.ListField(child=serializers.DictField(), required=False)


class ThreadListQuerySerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=MessageThread.CATEGORY_CHOICES, required=False)
    archived = serializers.BooleanField(required=False, default=False)


class ThreadParticipantSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1)


class NotificationWebhookSerializer(serializers.Serializer):
    event = serializers.CharField(max_length=64)
    data = serializers.DictField(required=False)
