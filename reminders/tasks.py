import logging

from celery import shared_task

from tasks.exceptions import StoreError
from .exceptions import NoContactConfigured
from .services import ReminderService

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def check_and_send_reminders(self):
    """
    Periodic reminder run with the default settings.

    Not retried on failure: the next scheduled run picks up where this one
    stopped and the ledger keeps it from resending.
    """
    try:
        result = ReminderService().run()
    except NoContactConfigured as e:
        logger.warning(f"Skipping reminder run: {e}")
        return {"error": str(e)}
    except StoreError as e:
        logger.error(f"Reminder run {self.request.id} failed: {e}")
        return {"error": str(e)}
    return result.as_response()
