import logging

from core.celery import EMAIL_QUEUE, celery_app
from services.smtp import deliver

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60


@celery_app.task(bind=True, max_retries=3, queue=EMAIL_QUEUE, acks_late=True)
def deliver_email_task(self, to_email: str, subject: str, body: str):
    """Deliver an order email off the request path, backing off between retries."""
    try:
        sent = deliver(to_email, subject, body)
    except Exception as exc:
        countdown = min(2 ** self.request.retries, MAX_BACKOFF_SECONDS)
        logger.warning("Email to %s failed (attempt %d), retrying in %ds: %s",
                       to_email, self.request.retries + 1, countdown, exc)
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "sent" if sent else "skipped", "to": to_email}
