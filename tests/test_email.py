import pytest

from ticketing.core.sendgrid_email import SUBJECTS, email_service
from ticketing.tasks import send_templated_email

CONTEXT = {
    "url": "http://localhost:3000/bookings/success/order-1",
    "event_name": "Harbor Jazz Night",
    "order_id": "order-1",
}


@pytest.mark.parametrize("template_name", sorted(SUBJECTS))  # type: ignore[misc]
def test_every_template_renders(template_name: str) -> None:
    html, text = email_service.render(
        template_name, {"name": "Alex", "subject": SUBJECTS[template_name], **CONTEXT}
    )
    assert "Alex" in html
    assert "<" not in text


def test_booking_confirmation_links_to_the_order() -> None:
    html, _ = email_service.render("booking_success", {"name": "Alex", **CONTEXT})
    assert CONTEXT["url"] in html


def test_task_skips_delivery_without_sendgrid() -> None:
    result = send_templated_email.apply(
        args=("welcome", {"name": "Alex", "email": "alex@example.com"}, CONTEXT)
    )
    assert result.get() is False
