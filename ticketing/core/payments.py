"""
Stripe checkout sessions and webhook verification.
"""

import logging
from typing import Any, Dict, List, Optional

import stripe

from ticketing.core.errors import UpstreamFailure, ValidationError
from ticketing.core.settings import settings

logger = logging.getLogger(__name__)


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None) -> None:
        self.api_key = api_key or settings.payment.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.payment.STRIPE_WEBHOOK_SECRET

    def create_checkout_session(
        self,
        *,
        order_id: str,
        event_id: int,
        customer_email: str,
        customer_name: str,
        user_id: Optional[int],
        line_items: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        metadata = {"order_id": order_id, "name": customer_name}
        if user_id is not None:
            metadata["user"] = str(user_id)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                mode="payment",
                success_url=f"{settings.FRONTEND_HOST}/bookings/success/{order_id}",
                cancel_url=f"{settings.FRONTEND_HOST}/events/id/{event_id}",
                customer_email=customer_email,
                client_reference_id=str(event_id),
                line_items=line_items,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session failed for order {order_id}: {e}")
            raise UpstreamFailure(f"Payment processor error: {e.user_message or e}") from e

        logger.info(f"Created checkout session {session.id} for order {order_id}")
        return {"id": session.id, "url": session.url}

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        try:
            return stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise ValidationError(f"Webhook error: {e}") from e

    def retrieve_session(self, session_id: str) -> Any:
        """Completed session with its line items and their ticket metadata"""
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                api_key=self.api_key,
                expand=["line_items", "line_items.data.price.product"],
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed for {session_id}: {e}")
            raise UpstreamFailure(f"Payment processor error: {e.user_message or e}") from e
        return session


_gateway: Optional[StripeGateway] = None


def get_payment_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
