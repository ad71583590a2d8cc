import logging
import re
from pathlib import Path
from typing import Any, Dict, Tuple

from jinja2 import Environment, FileSystemLoader, TemplateNotFound
from sendgrid import SendGridAPIClient  # type: ignore
from sendgrid.helpers.mail import Content, From, Mail, To  # type: ignore

from .settings import settings

logger = logging.getLogger(__name__)

SUBJECTS: Dict[str, str] = {
    "welcome": f"Welcome to {settings.PROJECT_NAME}!",
    "password_reset": "Your password reset request (valid for 10 minutes)",
    "booking_success": "Booking confirmation",
    "booking_success_guest": "Booking confirmation",
    "refund_request_organizer": (
        "You've received a booking cancelation request for your event"
    ),
    "refund_accepted_organizer": "You have accepted a booking cancelation request.",
    "refund_accepted_attendee": "Your booking cancelation request has been accepted",
    "refund_rejected_attendee": "Your booking cancelation request has been rejected",
}


class SendGridEmailService:
    """Renders Jinja2 email templates and delivers them through SendGrid"""

    def __init__(self) -> None:
        self.sendgrid_enabled: bool = settings.email.emails_enabled

        if not self.sendgrid_enabled:
            logger.warning("SendGrid not configured. Email notifications disabled.")
        else:
            self.client = SendGridAPIClient(api_key=settings.email.SENDGRID_API_KEY)

        template_dir = Path(__file__).parent.parent / "templates" / "email"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)), autoescape=True
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> Tuple[str, str]:
        """Render email templates (HTML and text versions)"""
        context = {"project_name": settings.PROJECT_NAME, **context}
        html_content = self.jinja_env.get_template(f"{template_name}.html").render(
            **context
        )

        try:
            text_template = self.jinja_env.get_template(f"{template_name}.txt")
            text_content = text_template.render(**context)
        except TemplateNotFound:
            text_content = re.sub(r"<[^>]+>", "", html_content)
            text_content = re.sub(r"\s+", " ", text_content).strip()

        return html_content, text_content

    def send(self, template_name: str, recipient: Dict[str, Any], context: Dict[str, Any]) -> bool:
        """Render ``template_name`` for ``recipient`` ({name, email}) and send it"""
        subject = SUBJECTS.get(template_name, settings.PROJECT_NAME)
        html_content, text_content = self.render(
            template_name, {"name": recipient.get("name"), "subject": subject, **context}
        )
        to_email = recipient["email"]

        if not self.sendgrid_enabled:
            logger.info(f"SendGrid disabled. Would send to {to_email}: {subject}")
            return False

        mail = Mail(
            from_email=From(
                email=settings.email.SENDGRID_FROM_EMAIL,
                name=settings.email.SENDGRID_FROM_NAME,
            ),
            to_emails=To(to_email),
            subject=subject,
            html_content=Content("text/html", html_content),
            plain_text_content=Content("text/plain", text_content),
        )

        response = self.client.send(mail)
        if response.status_code not in (200, 201, 202):
            raise RuntimeError(
                f"SendGrid API error: {response.status_code} - {response.body}"
            )

        logger.info(f"Email sent successfully to {to_email}")
        return True


email_service: SendGridEmailService = SendGridEmailService()
