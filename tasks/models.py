# task_manager\tasks\models.py
from django.core.exceptions import ValidationError
from django.db import models

from .exceptions import InvalidPattern
from .recurrence import RecurrencePattern


class TaskQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(status=Task.STATUS_PENDING)

    def templates(self):
        """Recurring definitions that generate instances."""
        return self.filter(is_recurring=True, parent_task__isnull=True)

    def due_templates(self, now):
        return self.templates().filter(next_due_date__isnull=False, next_due_date__lte=now)

    def remindable(self):
        return self.pending().filter(due_date__isnull=False, notifications_enabled=True)


class Task(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    PRIORITY_CHOICES = [
        (1, 'Low'),
        (2, 'Medium'),
        (3, 'High'),
    ]

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    priority = models.IntegerField(choices=PRIORITY_CHOICES, default=1)
    due_date = models.DateTimeField(null=True, blank=True)

    is_recurring = models.BooleanField(default=False)
    recurrence_pattern = models.JSONField(null=True, blank=True)
    next_due_date = models.DateTimeField(null=True, blank=True)
    recurrence_end_date = models.DateTimeField(null=True, blank=True)
    parent_task = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='instances'
    )

    notifications_enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TaskQuerySet.as_manager()

    class Meta:
        ordering = [models.F('due_date').asc(nulls_last=True), 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['parent_task', 'due_date'],
                name='unique_task_instance_per_due_date'
            ),
        ]

    def __str__(self):
        return self.title

    @property
    def is_template(self):
        return self.is_recurring and self.parent_task_id is None

    @property
    def lineage_id(self):
        return self.parent_task_id or self.id

    @property
    def pattern(self):
        """The parsed recurrence pattern, or None for one-off tasks."""
        if not self.recurrence_pattern:
            return None
        return RecurrencePattern.from_dict(self.recurrence_pattern)

    def clean(self):
        super().clean()
        if self.is_recurring and not self.recurrence_pattern:
            raise ValidationError({'recurrence_pattern': 'A recurring task needs a recurrence pattern.'})
        if self.recurrence_pattern and not self.is_recurring:
            raise ValidationError({'recurrence_pattern': 'Only recurring tasks can have a recurrence pattern.'})
        if self.recurrence_pattern:
            try:
                self.recurrence_pattern = self.pattern.to_dict()
            except InvalidPattern as e:
                raise ValidationError({'recurrence_pattern': str(e)})
