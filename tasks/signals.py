# task_manager\tasks\signals.py
import logging

from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import Task

logger = logging.getLogger(__name__)


@receiver(pre_delete, sender=Task)
def detach_instances(sender, instance, **kwargs):
    """
    Turns the generated instances of a deleted template into one-off tasks.

    Once `parent_task` is nulled they would otherwise look like templates
    themselves and each start its own chain.
    """
    if not instance.is_template:
        return
    detached = instance.instances.update(
        is_recurring=False,
        recurrence_pattern=None,
        next_due_date=None,
        recurrence_end_date=None,
    )
    if detached:
        logger.info(f"Detached {detached} instance(s) of deleted recurring task {instance.id}")
