# task_manager\tasks\serializers.py
from rest_framework import serializers

from .exceptions import InvalidPattern
from .models import Task
from .recurrence import RecurrencePattern


class RecurrencePatternField(serializers.JSONField):
    """Validates and normalizes a recurrence pattern object."""

    def to_internal_value(self, data):
        data = super().to_internal_value(data)
        if data is None:
            return None
        try:
            return RecurrencePattern.from_dict(data).to_dict()
        except InvalidPattern as e:
            raise serializers.ValidationError(str(e))


class TaskSerializer(serializers.ModelSerializer):
    recurrence_pattern = RecurrencePatternField(required=False, allow_null=True)
    parent_task = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Task
        fields = [
            'id', 'title', 'description', 'status', 'priority', 'due_date',
            'is_recurring', 'recurrence_pattern', 'next_due_date', 'recurrence_end_date',
            'parent_task', 'notifications_enabled', 'created_at', 'updated_at'
        ]
        read_only_fields = ['parent_task', 'created_at', 'updated_at']

    def validate(self, attrs):
        instance = self.instance
        is_recurring = attrs.get('is_recurring', instance.is_recurring if instance else False)
        pattern = attrs.get('recurrence_pattern', instance.recurrence_pattern if instance else None)

        if is_recurring and not pattern:
            raise serializers.ValidationError({'recurrence_pattern': 'A recurring task needs a recurrence pattern.'})
        if pattern and not is_recurring:
            raise serializers.ValidationError({'is_recurring': 'Set is_recurring to use a recurrence pattern.'})

        end_date = attrs.get('recurrence_end_date', instance.recurrence_end_date if instance else None)
        due_date = attrs.get('due_date', instance.due_date if instance else None)
        if end_date and due_date and end_date < due_date:
            raise serializers.ValidationError({'recurrence_end_date': 'End date must be after the due date.'})
        return attrs


class OccurrencePreviewSerializer(serializers.Serializer):
    task = serializers.IntegerField()
    occurrences = serializers.ListField(child=serializers.DateTimeField())
