"""
Celery background tasks.
"""
from celery import Task
from esupervision.scheduler.celery_app import app
from esupervision.scheduler.sweeps import (
    run_checkin_creation_sweep,
    run_checkin_expiry_sweep,
    run_checkin_reminder_sweep,
)
from esupervision.services import get_services
from esupervision.utils.logging import get_logger
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


class ServiceTask(Task):
    """Base task with access to the process's services."""
    
    @property
    def services(self):
        return get_services()


def _skipped(result):
    return result if result is not None else {'skipped': True}


@app.task(base=ServiceTask, bind=True)
def create_due_checkins(self):
    """
    Daily task: create check-ins due today.
    Runs at 00:05 UTC.
    """
    logger.info("Starting check-in creation sweep")
    try:
        return _skipped(run_checkin_creation_sweep(self.services))
    except Exception as e:
        logger.error("Check-in creation sweep failed", error=sanitize_exception(e))
        raise


@app.task(base=ServiceTask, bind=True)
def expire_overdue_checkins(self):
    """
    Daily task: expire check-ins past their grace period.
    Runs at 00:30 UTC.
    """
    logger.info("Starting check-in expiry sweep")
    try:
        return _skipped(run_checkin_expiry_sweep(self.services))
    except Exception as e:
        logger.error("Check-in expiry sweep failed", error=sanitize_exception(e))
        raise


@app.task(base=ServiceTask, bind=True)
def send_checkin_reminders(self):
    """
    Daily task: remind offenders on the last open day of a check-in.
    Runs at 10 AM UTC.
    """
    logger.info("Starting check-in reminder sweep")
    try:
        return _skipped(run_checkin_reminder_sweep(self.services))
    except Exception as e:
        logger.error("Check-in reminder sweep failed", error=sanitize_exception(e))
        raise
