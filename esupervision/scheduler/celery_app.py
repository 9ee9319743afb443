"""
Celery application configuration.
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init
from config.settings import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    'esupervision',
    broker=f'redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/0',
    backend=f'redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/0',
    include=['esupervision.scheduler.tasks']
)

# Celery configuration
app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # matches the sweep lock lease
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Schedule configuration
app.conf.beat_schedule = {
    'create-due-checkins-daily': {
        'task': 'esupervision.scheduler.tasks.create_due_checkins',
        'schedule': crontab(hour=0, minute=5),  # 00:05 UTC daily
    },
    'expire-overdue-checkins-daily': {
        'task': 'esupervision.scheduler.tasks.expire_overdue_checkins',
        'schedule': crontab(hour=0, minute=30),  # 00:30 UTC daily
    },
    'send-checkin-reminders-daily': {
        'task': 'esupervision.scheduler.tasks.send_checkin_reminders',
        'schedule': crontab(hour=10, minute=0),  # 10 AM UTC daily
    },
}


@worker_process_init.connect
def init_worker(**kwargs):
    """Resolve external clients once per worker process."""
    from esupervision.services import init_services
    init_services()


if __name__ == '__main__':
    app.start()
