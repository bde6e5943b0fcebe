from celery import Celery
from budgetsync.config import get_settings

settings = get_settings()

celery_app = Celery(
    "budgetsync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # A mailbox scan must not run forever
    task_soft_time_limit=settings.gmail_sync_time_limit_seconds,
    task_time_limit=settings.gmail_sync_time_limit_seconds + 60,
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["budgetsync.workers"], related_name="receipt_sync")
