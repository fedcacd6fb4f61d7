from celery import Celery
from celery.schedules import crontab
from storefront.core.config import settings

celery_app = Celery(
    "storefront",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["storefront.tasks.notification_tasks", "storefront.tasks.maintenance_tasks"]
)

# Celery Configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_track_started=True,

    task_time_limit=300,        # Hard limit (5 min)
    task_soft_time_limit=240,   # Soft limit (4 min)

    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,  # 1 hour

    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

celery_app.conf.task_routes = {
    "storefront.tasks.notification_tasks.*": {"queue": "notifications"},
}

celery_app.conf.beat_schedule = {
    "cleanup-expired-otps-every-15-min": {
        "task": "storefront.tasks.maintenance_tasks.cleanup_expired_otps",
        "schedule": crontab(minute="*/15"),
    },
    "cleanup-expired-blacklisted-tokens-daily": {
        "task": "storefront.tasks.maintenance_tasks.cleanup_expired_blacklisted_tokens",
        "schedule": crontab(hour=3, minute=0),
    },
    "backup-database-every-6-hours": {
        "task": "storefront.tasks.maintenance_tasks.backup_database",
        "schedule": crontab(minute=0, hour="*/6"),
    },
}
