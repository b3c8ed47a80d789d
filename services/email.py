"""
Outgoing email for order notifications.

Messages are handed to the Celery mail queue; when the broker cannot be
reached they are delivered over SMTP in-process instead.
"""
import logging
import os
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from services import smtp
from tasks.email_tasks import deliver_email_task

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

_templates_env = Environment(
    loader=FileSystemLoader(searchpath=TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """Queue a message, falling back to direct delivery. Raises if both fail."""
    try:
        deliver_email_task.delay(to_email, subject, body)
        logger.info("Email to %s queued", to_email)
        return
    except Exception as exc:
        logger.warning("Mail queue unavailable, delivering to %s directly: %s", to_email, exc)

    smtp.deliver(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    return _templates_env.get_template(template_path).render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    send_email(to_email, subject, render_template(template_path, context))
