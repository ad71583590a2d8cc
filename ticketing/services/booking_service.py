"""
Booking lifecycle: checkout, booking creation, the refund-request workflow
and the grouped refund views organizers work from.
"""

import asyncio
import logging
import math
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing import crud
from ticketing.core.email import Mailer
from ticketing.core.errors import Forbidden, InvalidState, NotFound, ValidationError
from ticketing.core.payments import StripeGateway
from ticketing.core.settings import settings
from ticketing.middleware.monitoring import metrics
from ticketing.models.booking import Booking, RefundStatus
from ticketing.models.event import Event, FeePolicy
from ticketing.models.user import User
from ticketing.schemas.booking import AttendeeLine
from ticketing.schemas.booking import Booking as BookingSchema
from ticketing.schemas.booking import (
    BookingCreate,
    CheckoutIn,
    CheckoutSession,
    RefundRequestIn,
    RefundResolveIn,
)
from ticketing.schemas.common import api_names, dump
from ticketing.schemas.event import EventRefundRequest, RefundTicketLine
from ticketing.schemas.event import TicketTier as TicketTierSchema
from ticketing.services.event_service import summarize_event
from ticketing.services.permissions import (
    is_admin,
    is_organizer_or_admin,
    require_admin,
    require_user,
)
from ticketing.services.query_features import Page, QueryFeatures
from ticketing.utils.dates import utcnow

logger = logging.getLogger(__name__)

BOOKING_NAMES = api_names(BookingSchema)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _recipient(name: str, email: str) -> Dict[str, str]:
    return {"name": name, "email": email}


def send_booking_confirmation(
    mailer: Mailer,
    event: Event,
    *,
    name: str,
    email: str,
    order_id: str,
    user_id: Optional[int],
) -> None:
    template = "booking_success" if user_id is not None else "booking_success_guest"
    mailer.send(
        template,
        _recipient(name, email),
        {
            "event_name": event.name,
            "order_id": order_id,
            "url": f"{settings.FRONTEND_HOST}/bookings/success/{order_id}",
        },
    )


async def create_bookings(
    db: AsyncSession,
    event_id: int,
    lines: List[AttendeeLine],
    *,
    order_id: str,
    payer_id: Optional[int] = None,
    source: str = "checkout",
) -> List[Booking]:
    """
    Create one booking per attendee, expanding each line by its quantity.

    The price is copied from the tier at the time of booking. Capacity is
    not checked here.
    """
    event = await crud.event.get_event(db, event_id)
    if event is None:
        raise NotFound("The specified event does not exist.")

    bookings: List[Booking] = []
    for line in lines:
        tier = event.find_tier(line.ticket_id)
        if tier is None:
            raise NotFound("The specified ticket does not exist.")
        for _ in range(line.quantity):
            bookings.append(
                Booking(
                    order_id=order_id,
                    name=line.name,
                    email=line.email.lower(),
                    user_id=payer_id,
                    event_id=event.id,
                    ticket_id=tier.id,
                    price=tier.price,
                    paid=True,
                    active=True,
                )
            )

    await crud.booking.create_bookings(db, bookings)
    metrics.bookings_total.labels(source=source).inc(len(bookings))
    logger.info(
        f"Created {len(bookings)} bookings for order {order_id}",
        extra={"order_id": order_id, "event_id": event.id},
    )
    return bookings


def _unit_amount(price: float, fee_policy: Optional[FeePolicy]) -> int:
    """Price in cents; ``passFee`` adds the processing fee, rounded down"""
    if fee_policy == FeePolicy.PASS_FEE:
        return math.floor(price * settings.payment.PASS_FEE_MULTIPLIER * 100)
    return int(round(price * 100))


def _line_items(
    event: Event, selected: List[Tuple[TicketTierSchema, int]]
) -> List[Dict[str, Any]]:
    return [
        {
            "price_data": {
                "currency": settings.payment.CURRENCY,
                "unit_amount": _unit_amount(tier.price, event.fee_policy),
                "product_data": {
                    "name": f"{event.name}: {tier.tier_name}",
                    "description": tier.tier_description,
                    "metadata": {"ticket_id": str(tier.id)},
                },
            },
            "quantity": quantity,
        }
        for tier, quantity in selected
    ]


async def checkout(
    db: AsyncSession,
    event_id: int,
    checkout_in: CheckoutIn,
    principal: Optional[User],
    gateway: StripeGateway,
    mailer: Mailer,
) -> Tuple[CheckoutSession, List[Booking]]:
    """
    Validate a ticket selection against the event and its tiers.

    Free orders are booked immediately; paid orders get a checkout session
    and are booked by the payment webhook.
    """
    if _blank(checkout_in.name):
        raise ValidationError("A name for the order is required.")
    name = (checkout_in.name or "").strip()

    email = principal.email if principal is not None else checkout_in.email
    if _blank(email):
        raise ValidationError("Please specify an email for the booking.")
    email = (email or "").strip().lower()

    tickets = checkout_in.tickets
    if not tickets:
        raise ValidationError("Please select at least one ticket.")
    if any(quantity < 1 for quantity in tickets.values()):
        raise ValidationError("Ticket quantities must be at least 1.")

    event = await crud.event.get_event(db, event_id)
    if event is None:
        raise NotFound("The specified event does not exist.")
    if event.canceled:
        raise InvalidState("The specified event is canceled.")

    summary = await summarize_event(db, event)
    if summary.sold_out:
        raise InvalidState("The specified event is sold out.")

    requested = sum(tickets.values())
    if (
        summary.total_capacity > 0
        and requested + (summary.total_bookings or 0) > summary.total_capacity
    ):
        raise InvalidState(
            "There are not enough remaining tickets to complete the order."
        )

    tiers = {tier.id: tier for tier in summary.ticket_tiers}
    selected: List[Tuple[TicketTierSchema, int]] = []
    for tier_id, quantity in tickets.items():
        tier = tiers.get(tier_id)
        if tier is None:
            raise NotFound("The specified ticket does not exist.")
        if tier.canceled:
            raise InvalidState(
                f'One of the selected tickets has been canceled: "{tier.tier_name}"'
            )
        if tier.ticket_sold_out:
            raise InvalidState(f'One of the selected tickets is sold out: "{tier.tier_name}"')
        if tier.limit_per_customer > 0 and quantity > tier.limit_per_customer:
            raise ValidationError(
                f'Ticket "{tier.tier_name}" has a limit of '
                f"{tier.limit_per_customer} per customer."
            )
        if tier.capacity > 0 and quantity + (tier.num_bookings or 0) > tier.capacity:
            raise InvalidState(
                f'There are not enough remaining tickets for "{tier.tier_name}" '
                "to complete the order."
            )
        selected.append((tier, quantity))

    order_id = str(uuid.uuid4())
    user_id = principal.id if principal is not None else None
    order_total = sum(tier.price * quantity for tier, quantity in selected)

    if order_total == 0:
        lines = [
            AttendeeLine(name=name, email=email, ticket_id=tier.id, quantity=quantity)
            for tier, quantity in selected
        ]
        bookings = await create_bookings(
            db, event.id, lines, order_id=order_id, payer_id=user_id, source="free"
        )
        send_booking_confirmation(
            mailer, event, name=name, email=email, order_id=order_id, user_id=user_id
        )
        return CheckoutSession(order_id=order_id, free=True), bookings

    session = await asyncio.to_thread(
        gateway.create_checkout_session,
        order_id=order_id,
        event_id=event.id,
        customer_email=email,
        customer_name=name,
        user_id=user_id,
        line_items=_line_items(event, selected),
    )
    return (
        CheckoutSession(order_id=order_id, session_id=session["id"], url=session["url"]),
        [],
    )


async def handle_payment_webhook(
    db: AsyncSession,
    payload: bytes,
    signature: Optional[str],
    gateway: StripeGateway,
    mailer: Mailer,
) -> List[Booking]:
    """Book a paid order once its checkout session completes"""
    webhook_event = gateway.construct_event(payload, signature)
    if webhook_event["type"] != "checkout.session.completed":
        logger.info(f"Ignoring webhook event {webhook_event['type']}")
        return []

    session_id = webhook_event["data"]["object"]["id"]
    session = await asyncio.to_thread(gateway.retrieve_session, session_id)

    metadata = session["metadata"]
    order_id = metadata["order_id"]
    name = metadata["name"]
    user_id = int(metadata["user"]) if metadata.get("user") else None
    email = session["customer_email"]
    event_id = int(session["client_reference_id"])

    lines = [
        AttendeeLine(
            name=name,
            email=email,
            ticket_id=int(item["price"]["product"]["metadata"]["ticket_id"]),
            quantity=item["quantity"],
        )
        for item in session["line_items"]["data"]
    ]
    bookings = await create_bookings(
        db, event_id, lines, order_id=order_id, payer_id=user_id, source="stripe"
    )

    event = await crud.event.get_event(db, event_id)
    if event is not None:
        send_booking_confirmation(
            mailer, event, name=name, email=email, order_id=order_id, user_id=user_id
        )
    return bookings


async def create_booking(
    db: AsyncSession, booking_in: BookingCreate, actor: Optional[User]
) -> Booking:
    require_admin(actor)
    if _blank(booking_in.name) or _blank(booking_in.email):
        raise ValidationError("A booking must have a name and an email.")
    if booking_in.event is None or booking_in.ticket is None:
        raise ValidationError("A booking must reference an event and a ticket.")
    if booking_in.user is not None and await crud.user.get(db, booking_in.user) is None:
        raise NotFound("No user found with specified ID.")

    line = AttendeeLine(
        name=booking_in.name or "",
        email=booking_in.email or "",
        ticket_id=booking_in.ticket,
    )
    bookings = await create_bookings(
        db,
        booking_in.event,
        [line],
        order_id=str(uuid.uuid4()),
        payer_id=booking_in.user,
        source="admin",
    )
    return bookings[0]


async def get_order(db: AsyncSession, order_id: str) -> List[Booking]:
    bookings = await crud.booking.get_bookings_by_order(db, order_id)
    if not bookings:
        raise NotFound("No bookings found with specified order ID.")
    return bookings


async def list_bookings(
    db: AsyncSession, params: Mapping[str, Any], principal: Optional[User]
) -> Tuple[List[Dict[str, Any]], Optional[Page]]:
    user = require_user(principal)
    statement = select(Booking)
    if not is_admin(user):
        statement = statement.where(Booking.user_id == user.id, Booking.active.is_(True))

    features = QueryFeatures(Booking, params, BOOKING_NAMES, statement=statement)
    features.filter().search().sort().limit()
    bookings, page = await features.execute(db)
    return [dump(booking, BookingSchema, features.projection) for booking in bookings], page


async def get_booking(db: AsyncSession, booking_id: int, principal: Optional[User]) -> Booking:
    user = require_user(principal)
    booking = await crud.booking.get_booking(db, booking_id)
    if booking is None:
        raise NotFound("No booking found with specified ID.")
    if not is_admin(user) and booking.user_id != user.id:
        raise Forbidden("You do not have permission to view this booking.")
    return booking


async def request_refund(
    db: AsyncSession,
    event_id: int,
    refund_in: RefundRequestIn,
    requester: Optional[User],
    mailer: Mailer,
) -> Optional[str]:
    """
    Flag the requester's active paid bookings with one new refund request.

    Free bookings are deactivated on the spot. Bookings that are not the
    requester's, inactive, or already under a request are skipped. Returns
    the request id, or None when only free bookings were selected.
    """
    user = require_user(requester)
    if not refund_in.booking_ids:
        raise ValidationError("Please specify bookings to cancel.")

    bookings = await crud.booking.get_bookings_to_refund(
        db, user_id=user.id, event_id=event_id, booking_ids=refund_in.booking_ids
    )
    if not bookings:
        raise NotFound("No active bookings for the event with the specified IDs were found.")

    request_id = str(uuid.uuid4())
    now = utcnow()
    flagged = 0
    for booking in bookings:
        if not booking.price:
            booking.active = False
            continue
        booking.refund_request_id = request_id
        booking.refund_created_at = now
        booking.refund_resolved = False
        booking.refund_reason = refund_in.reason
        booking.refund_processed = False
        flagged += 1
    await db.commit()

    logger.info(
        f"Refund request {request_id} covers {flagged} of {len(bookings)} bookings",
        extra={"event_id": event_id, "user_id": user.id},
    )
    if not flagged:
        return None

    event = await crud.event.get_event(db, event_id)
    organizer = await crud.user.get(db, event.organizer_id) if event else None
    if event is not None and organizer is not None:
        mailer.send(
            "refund_request_organizer",
            _recipient(organizer.name, organizer.email),
            {
                "event_name": event.name,
                "url": f"{settings.FRONTEND_HOST}/events/{event.id}/refunds/{request_id}",
            },
        )
    return request_id


async def resolve_refund_request(
    db: AsyncSession,
    request_id: str,
    resolve_in: RefundResolveIn,
    actor: Optional[User],
    mailer: Mailer,
) -> List[Booking]:
    user = require_user(actor)
    try:
        status = RefundStatus(resolve_in.status)
    except ValueError:
        raise ValidationError("Please specify a valid status to resolve the refund request.")

    bookings = await crud.booking.get_bookings_by_refund_request(db, request_id)
    if not bookings:
        raise NotFound("No bookings with the specified refund request ID were found.")

    event = await crud.event.get_event(db, bookings[0].event_id)
    if event is None or not is_organizer_or_admin(user, event):
        raise Forbidden("You are not the organizer of the event this booking belongs to.")

    for booking in bookings:
        # status must be set before the request can be marked resolved
        booking.refund_status = status
        booking.refund_resolved = True
        if status == RefundStatus.ACCEPTED:
            booking.active = False
    await db.commit()

    if status == RefundStatus.ACCEPTED:
        metrics.bookings_deactivated_total.labels(reason="refund_accepted").inc(len(bookings))

    attendee = bookings[0]
    context = {
        "event_name": event.name,
        "url": f"{settings.FRONTEND_HOST}/events/id/{event.id}",
    }
    if status == RefundStatus.ACCEPTED:
        organizer = await crud.user.get(db, event.organizer_id)
        if organizer is not None:
            mailer.send(
                "refund_accepted_organizer",
                _recipient(organizer.name, organizer.email),
                context,
            )
        mailer.send(
            "refund_accepted_attendee", _recipient(attendee.name, attendee.email), context
        )
    else:
        mailer.send(
            "refund_rejected_attendee", _recipient(attendee.name, attendee.email), context
        )

    logger.info(
        f"Refund request {request_id} {status.value}",
        extra={"request_id": request_id, "bookings": len(bookings)},
    )
    return bookings


def group_refund_rows(rows: List[Any]) -> List[EventRefundRequest]:
    """Fold per-ticket rows into one record per refund request"""
    grouped: Dict[str, EventRefundRequest] = {}
    for row in rows:
        request = grouped.get(row.request_id)
        if request is None:
            request = EventRefundRequest(
                request_id=row.request_id,
                created_at=row.created_at,
                name=row.name,
                email=row.email,
                user_id=row.user_id,
                reason=row.reason,
            )
            grouped[row.request_id] = request
        request.tickets.append(
            RefundTicketLine(
                ticket=row.ticket_id,
                tier_name=row.tier_name,
                price=row.price,
                count=row.count,
            )
        )
        request.total += row.price * row.count
    return list(grouped.values())


async def get_refund_request(
    db: AsyncSession, request_id: str, actor: Optional[User]
) -> EventRefundRequest:
    user = require_user(actor)
    rows = await crud.booking.get_refund_request_rows(db, request_id=request_id)
    if not rows:
        raise NotFound("No refund request with the specified ID was found.")

    event = await crud.event.get_event(db, rows[0].event_id)
    if event is None or not is_organizer_or_admin(user, event):
        raise Forbidden("You are not the organizer of this event.")
    return group_refund_rows(rows)[0]


async def get_event_refund_requests(
    db: AsyncSession, event_id: int, actor: Optional[User]
) -> List[EventRefundRequest]:
    user = require_user(actor)
    event = await crud.event.get_event(db, event_id)
    if event is None:
        raise NotFound("No event found with specified ID.")
    if not is_organizer_or_admin(user, event):
        raise Forbidden("You are not the organizer of this event.")

    rows = await crud.booking.get_refund_request_rows(db, event_id=event_id)
    if not rows:
        raise NotFound("No refund requests for the event with the specified ID were found.")
    return group_refund_rows(rows)
