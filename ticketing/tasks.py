import logging
from typing import Any, Dict

from .celery_app import celery_app
from .core.sendgrid_email import email_service

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True,
    queue="emails",
    max_retries=3,
    default_retry_delay=60,
)
def send_templated_email(
    self: Any,
    template_name: str,
    recipient: Dict[str, Any],
    context: Dict[str, Any],
) -> bool:
    """
    Render and deliver one templated email.

    Args:
        template_name: Template name (without extension)
        recipient: ``{"name": ..., "email": ...}``
        context: Template context variables
    """
    try:
        return email_service.send(template_name, recipient, context)
    except Exception as exc:
        logger.error(
            f"Task send_templated_email failed for '{template_name}': {exc}",
            extra={"template": template_name, "recipient": recipient.get("email")},
        )
        raise self.retry(exc=exc, countdown=60)
