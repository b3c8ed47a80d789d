"""SMTP delivery shared by the Celery worker and the in-process fallback."""
import logging
import smtplib
from email.message import EmailMessage

from core.config import settings

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return not settings.TESTING and bool(settings.SMTP_PASSWORD)


def build_message(to_email: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)
    return msg


def deliver(to_email: str, subject: str, body: str) -> bool:
    """Send one plain-text message; False when SMTP is not configured.

    SMTP errors propagate to the caller.
    """
    if not smtp_configured():
        logger.info("SMTP not configured, email to %s not sent (subject=%r)", to_email, subject)
        return False

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as server:
        server.starttls()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(build_message(to_email, subject, body))

    logger.info("Email sent to %s", to_email)
    return True
