from celery import Celery

from app.core.config import settings

celery_app = Celery("bookkeepers", broker=settings.redis_url)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Fire-and-forget: nobody waits on a notification's result
    task_ignore_result=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={"app.services.notifications.*": {"queue": "notifications"}},
    broker_connection_retry_on_startup=True,
)

# The worker has no autodiscovery target (no tasks.py), so list task modules here.
celery_app.conf.include = [
    "app.services.notifications",
]
