import logging
from dataclasses import replace

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .exceptions import InvalidPattern, StoreError
from .models import Task
from .recurrence import MONTHLY, next_occurrence, occurrences

logger = logging.getLogger(__name__)


class RecurringTaskService:
    """Materializes the next instance of recurring tasks."""

    @staticmethod
    def prepare_new(task):
        """
        Seeds `next_due_date` on a new recurring task from its own due date.

        A monthly pattern without a day of month is pinned to the due date's
        day, so clamping in short months does not shift later occurrences.

        Args:
            task (Task): an unsaved or freshly validated task.

        Returns:
            Task: the same task, modified in place.
        """
        if not task.is_recurring or not task.due_date:
            return task
        pattern = task.pattern
        if pattern is not None and pattern.type == MONTHLY and pattern.day_of_month is None:
            task.recurrence_pattern = replace(pattern, day_of_month=task.due_date.day).to_dict()
        if not task.next_due_date:
            task.next_due_date = next_occurrence(task.due_date, task.recurrence_pattern)
        return task

    @classmethod
    def reschedule(cls, task):
        """Recomputes `next_due_date` after the due date or recurrence of a task changed."""
        task.next_due_date = None
        return cls.prepare_new(task)

    @staticmethod
    def advance(source):
        """
        Creates the successor instance for `source.next_due_date`.

        The new instance is dated `source.next_due_date` and carries its own
        `next_due_date`. The lineage template's `next_due_date` moves forward in
        the same transaction.

        Args:
            source (Task): a template, or a recurring instance being completed.

        Returns:
            Task: the created instance, or None when the chain has ended, the
            source is not recurring, or the instance already exists.

        Raises:
            InvalidPattern: the source's pattern cannot be evaluated.
            StoreError: the instance or the template could not be written.
        """
        if not source.is_recurring or source.next_due_date is None:
            return None

        due_date = source.next_due_date
        following = next_occurrence(due_date, source.pattern)

        if source.recurrence_end_date and following > source.recurrence_end_date:
            logger.info(
                f"Recurrence of task {source.id} ended: {following.isoformat()} "
                f"is past {source.recurrence_end_date.isoformat()}"
            )
            return None

        root_id = source.lineage_id

        try:
            if Task.objects.filter(parent_task_id=root_id, due_date=due_date).exists():
                logger.debug(f"Instance of task {root_id} due {due_date.isoformat()} already exists")
                return None

            with transaction.atomic():
                instance = Task.objects.create(
                    title=source.title,
                    description=source.description,
                    priority=source.priority,
                    notifications_enabled=source.notifications_enabled,
                    status=Task.STATUS_PENDING,
                    due_date=due_date,
                    is_recurring=True,
                    recurrence_pattern=source.recurrence_pattern,
                    recurrence_end_date=source.recurrence_end_date,
                    next_due_date=following,
                    parent_task_id=root_id,
                )
                Task.objects.filter(pk=root_id, next_due_date=due_date).update(
                    next_due_date=following,
                    updated_at=timezone.now()
                )
        except IntegrityError:
            logger.info(f"Instance of task {root_id} due {due_date.isoformat()} was created concurrently")
            return None
        except DatabaseError as e:
            logger.error(f"Failed to advance recurring task {source.id}: {e}")
            raise StoreError(f"Failed to advance recurring task {source.id}") from e

        if source.id == root_id:
            source.next_due_date = following

        logger.info(f"Created instance {instance.id} of task {root_id} due {due_date.isoformat()}")
        return instance

    @classmethod
    def advance_due(cls, now=None):
        """
        Advances every template whose `next_due_date` has arrived.

        Templates with an invalid pattern are logged and skipped for this run.

        Returns:
            list[Task]: the instances created.
        """
        now = now or timezone.now()
        try:
            templates = list(Task.objects.due_templates(now))
        except DatabaseError as e:
            raise StoreError("Failed to load recurring templates") from e

        created = []
        for template in templates:
            try:
                instance = cls.advance(template)
            except InvalidPattern as e:
                logger.warning(f"Skipping recurring task {template.id}: {e}")
                continue
            if instance is not None:
                created.append(instance)
        return created

    @classmethod
    def complete(cls, task):
        """
        Marks a task completed and, for recurring tasks, creates the next instance.

        Returns:
            Task: the next instance, if one was created.
        """
        if task.status != Task.STATUS_COMPLETED:
            task.status = Task.STATUS_COMPLETED
            try:
                task.save(update_fields=['status', 'updated_at'])
            except DatabaseError as e:
                raise StoreError(f"Failed to complete task {task.id}") from e

        if not task.is_recurring:
            return None
        try:
            return cls.advance(task)
        except InvalidPattern as e:
            logger.warning(f"Task {task.id} completed but its recurrence could not be advanced: {e}")
            return None

    @staticmethod
    def reopen(task):
        task.status = Task.STATUS_PENDING
        try:
            task.save(update_fields=['status', 'updated_at'])
        except DatabaseError as e:
            raise StoreError(f"Failed to reopen task {task.id}") from e
        return task

    @staticmethod
    def preview(task, count=5):
        """Upcoming occurrences after the task's next (or current) due date."""
        start = task.next_due_date or task.due_date
        if not task.is_recurring or start is None:
            return []
        upcoming = [start] if task.next_due_date else []
        upcoming.extend(occurrences(start, task.pattern, until=task.recurrence_end_date, limit=count))
        return upcoming[:count]
