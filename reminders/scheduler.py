import logging
from dataclasses import dataclass

from tasks.models import Task

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 15


@dataclass(frozen=True)
class DueReminder:
    task: Task
    reminder_minutes: int
    minutes_until_due: float


def minutes_until(due_date, now):
    return (due_date - now).total_seconds() / 60


def is_remindable(task):
    return (
        task.status == Task.STATUS_PENDING
        and task.due_date is not None
        and task.notifications_enabled
    )


def compute_due(now, tasks, settings, ledger, *, window_minutes=DEFAULT_WINDOW_MINUTES, bypass=False):
    """
    Selects the reminders to send at `now`.

    Regular mode: a lead time fires when the minutes left until the due date
    are within `window_minutes` of it and the ledger has no entry for the
    (task, lead time) pair. Lead times are checked in configured order and the
    first one that fires wins, so a task gets at most one reminder per run.

    Bypass mode (test / send now) skips the window and the ledger and picks the
    first lead time not greater than the minutes left, or 0.

    Args:
        now (datetime): aware reference time.
        tasks (iterable[Task]): candidates; non-pending, undated and muted
            tasks are ignored.
        settings (ReminderSettings): provides `reminder_times`.
        ledger: object with `exists(task_id, reminder_minutes)`.

    Returns:
        list[DueReminder]: in input order.
    """
    due = []
    for task in tasks:
        if not is_remindable(task):
            continue

        remaining = minutes_until(task.due_date, now)

        if bypass:
            lead = next((m for m in settings.reminder_times if m <= remaining), 0)
            due.append(DueReminder(task, lead, remaining))
            continue

        for lead in settings.reminder_times:
            if abs(remaining - lead) > window_minutes:
                continue
            if ledger.exists(task.id, lead):
                logger.debug(f"Reminder for task {task.id} at {lead} min already sent")
                continue
            due.append(DueReminder(task, lead, remaining))
            break

    return due
