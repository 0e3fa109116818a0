from rest_framework import serializers

from .models import NotificationRecord, NotificationSettings, normalize_reminder_times


class ReminderTimesField(serializers.ListField):
    child = serializers.IntegerField(min_value=0)

    def to_internal_value(self, data):
        return normalize_reminder_times(super().to_internal_value(data))


class NotificationSettingsSerializer(serializers.ModelSerializer):
    reminder_times = ReminderTimesField(required=False)

    class Meta:
        model = NotificationSettings
        fields = ['email', 'phone', 'email_notifications', 'sms_notifications', 'reminder_times', 'updated_at']
        read_only_fields = ['updated_at']


class SettingsOverrideSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=32)
    email_notifications = serializers.BooleanField(required=False)
    sms_notifications = serializers.BooleanField(required=False)
    reminder_times = ReminderTimesField(required=False)


class NotificationTriggerSerializer(serializers.Serializer):
    testMode = serializers.BooleanField(required=False, default=False)
    sendNow = serializers.BooleanField(required=False, default=False)
    settings = SettingsOverrideSerializer(required=False, allow_null=True)


class NotificationRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationRecord
        fields = ['id', 'task', 'reminder_minutes', 'notification_type', 'sent_at']
