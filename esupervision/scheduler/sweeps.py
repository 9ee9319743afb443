"""
Cluster-safe scheduled sweeps.

Each sweep runs under a lease lock named after the sweep. An instance that
cannot take the lock skips the run; the instance holding it records the run
in the job log.
"""
import time
from datetime import date, timedelta
from typing import Callable, Dict, Optional

from config.settings import get_sweeps_config
from esupervision.integrations.base import LockProvider
from esupervision.models.base import SessionLocal, session_scope
from esupervision.models.job_log import JobLog
from esupervision.utils.clock import utc_now
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_sweep_run

logger = get_logger(__name__)

CHECKIN_CREATION = 'checkin-creation'
CHECKIN_EXPIRY = 'checkin-expiry'
CHECKIN_REMINDER = 'checkin-reminder'


class SweepRunner:
    
    def __init__(self, lock_provider: LockProvider, session_factory=SessionLocal, clock=utc_now,
                 monotonic: Callable[[], float] = time.monotonic):
        self.lock_provider = lock_provider
        self.session_factory = session_factory
        self.clock = clock
        self.monotonic = monotonic
    
    def run(self, sweep_name: str, body: Callable[[], Dict], lock_at_most_for: timedelta,
            lock_at_least_for: timedelta = timedelta(0)) -> Optional[Dict]:
        """
        Run body under the sweep's lock.
        
        Args:
            sweep_name: Lock and job log name
            body: Sweep work, returning an outcome summary
            lock_at_most_for: Lease; the lock expires after this even if never released
            lock_at_least_for: Minimum time the lock is held, even after a fast run
        
        Returns:
            Outcome from body, or None when another instance holds the lock
        """
        if not self.lock_provider.try_acquire(sweep_name, lock_at_most_for):
            logger.info("Sweep already running elsewhere, skipping", sweep=sweep_name)
            record_sweep_run(sweep_name, 'skipped')
            return None
        
        started = self.monotonic()
        try:
            job_id = self._start_log(sweep_name)
            try:
                outcome = body()
            except Exception as e:
                self._end_log(job_id, 'FAILED', {'error': type(e).__name__})
                record_sweep_run(sweep_name, 'failed')
                raise
            self._end_log(job_id, 'COMPLETED', outcome)
            record_sweep_run(sweep_name, 'completed')
            logger.info("Sweep completed", sweep=sweep_name, **outcome)
            return outcome
        finally:
            remaining = lock_at_least_for - timedelta(seconds=self.monotonic() - started)
            self.lock_provider.release(sweep_name, hold_for=remaining if remaining > timedelta(0) else None)
    
    def _start_log(self, sweep_name: str) -> int:
        with session_scope(self.session_factory) as db:
            job = JobLog(job_type=sweep_name, created_at=self.clock(), status='RUNNING')
            db.add(job)
            db.flush()
            return job.id
    
    def _end_log(self, job_id: int, status: str, outcome: Dict):
        with session_scope(self.session_factory) as db:
            job = db.get(JobLog, job_id)
            job.status = status
            job.ended_at = self.clock()
            job.outcome = outcome


def last_open_day(today: date, grace_days: int) -> date:
    """Last day a check-in due on the returned date may still be submitted."""
    return today - timedelta(days=max(grace_days, 1) - 1)


def _lock_times(sweep_name: str):
    config = get_sweeps_config().get(sweep_name, {})
    return (
        timedelta(minutes=config.get('lock_at_most_for_minutes', 30)),
        timedelta(seconds=config.get('lock_at_least_for_seconds', 5)),
    )


def run_checkin_creation_sweep(services, today: date = None) -> Optional[Dict]:
    """Create check-ins due today."""
    today = today or services.clock().date()
    
    def body():
        created = services.checkins.create_due_checkins(today, today + timedelta(days=1))
        return {'date': today.isoformat(), 'created': len(created)}
    
    return services.sweep_runner.run(CHECKIN_CREATION, body, *_lock_times(CHECKIN_CREATION))


def run_checkin_expiry_sweep(services, today: date = None) -> Optional[Dict]:
    """Expire check-ins whose submission window has closed."""
    today = today or services.clock().date()
    as_of = last_open_day(today, services.settings.CHECKIN_EXPIRY_GRACE_DAYS)
    
    def body():
        expired = services.checkins.expire_overdue(as_of)
        return {'as_of': as_of.isoformat(), 'expired': len(expired)}
    
    return services.sweep_runner.run(CHECKIN_EXPIRY, body, *_lock_times(CHECKIN_EXPIRY))


def run_checkin_reminder_sweep(services, today: date = None) -> Optional[Dict]:
    """Remind offenders on the last day their check-in is open."""
    today = today or services.clock().date()
    due_on = last_open_day(today, services.settings.CHECKIN_EXPIRY_GRACE_DAYS)
    
    def body():
        reminded = services.checkins.remind(due_on)
        return {'due_on': due_on.isoformat(), 'reminded': len(reminded)}
    
    return services.sweep_runner.run(CHECKIN_REMINDER, body, *_lock_times(CHECKIN_REMINDER))
