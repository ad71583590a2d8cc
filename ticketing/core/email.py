"""
Fire-and-forget mail for the booking and account flows.

``Mailer.send`` only enqueues; rendering and delivery happen in the
``send_templated_email`` Celery task.
"""

import logging
from typing import Any, Dict, Optional

from ticketing.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)


class Mailer:
    def send(
        self,
        template_name: str,
        recipient: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        from ticketing.tasks import send_templated_email

        try:
            send_templated_email.delay(template_name, recipient, context or {})
        except Exception as e:
            logger.error(
                f"Failed to enqueue '{template_name}' email: {e}",
                extra={"template": template_name, "recipient": recipient.get("email")},
            )
            raise UpstreamFailure(
                "There was an error sending the email. Try again later."
            ) from e
        logger.info(
            f"Queued '{template_name}' email",
            extra={"template": template_name, "recipient": recipient.get("email")},
        )


mailer = Mailer()


def get_mailer() -> Mailer:
    return mailer
