from celery import Celery
from kombu import Queue

from core.config import settings

EMAIL_QUEUE = "emails"

celery_app = Celery(
    "storefront",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=24 * 60 * 60,
    timezone="Africa/Johannesburg",
    enable_utc=True,
    task_queues=(Queue(EMAIL_QUEUE),),
    task_default_queue=EMAIL_QUEUE,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    # Publishing must fail fast so the request can fall back to direct SMTP
    broker_connection_retry_on_startup=True,
    broker_connection_timeout=3,
    task_publish_retry=False,
)
