"""
Celery application configuration.

Celery handles periodic maintenance:
- applying plan downgrades that were scheduled for the period end
"""

from celery import Celery
from celery.signals import task_failure, task_success
import structlog

from planguard.config import settings

logger = structlog.get_logger(__name__)

celery_app = Celery(
    "planguard",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "planguard.features.subscriptions.tasks",
    ]
)

celery_app.conf.update(
    # Task execution
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "planguard.features.subscriptions.tasks.*": {"queue": "subscriptions"},
    },

    # Sweep results are only read by monitoring
    result_expires=3600,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)


@task_success.connect
def log_task_success(sender=None, result=None, **kwargs):
    logger.info("task_succeeded", task=sender.name, result=result)


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    logger.error("task_failed", task=sender.name, task_id=task_id, error=str(exception))


# Periodic sweeps
celery_app.conf.beat_schedule = {
    "apply-scheduled-downgrades": {
        "task": "planguard.features.subscriptions.tasks.apply_scheduled_downgrades",
        "schedule": settings.downgrade_sweep_interval_seconds,
    },
}
