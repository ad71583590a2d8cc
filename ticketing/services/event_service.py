"""
Event lifecycle: create, update, publish, cancel and tier cancellation, plus
the read side that attaches live booking counts to an event.

Every mutation loads the event, checks the actor and the event state, and
only then touches the row. Failures are raised as ``DomainError`` subclasses
carrying the message of the first rule that was broken.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from slugify import slugify
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing import crud
from ticketing.core.errors import Forbidden, InvalidState, NotFound, ValidationError
from ticketing.core.storage import S3BlobStore, to_jpeg
from ticketing.middleware.monitoring import metrics
from ticketing.models.event import Event, EventCategory, EventType, TicketTier
from ticketing.models.user import User
from ticketing.schemas.common import api_names, dump
from ticketing.schemas.event import BookedEvent as BookedEventSchema
from ticketing.schemas.event import Event as EventSchema
from ticketing.schemas.event import (
    EventCreate,
    EventDetail,
    EventPublish,
    EventUpdate,
    GeoPointIn,
    OrganizerSummary,
    TicketTierIn,
)
from ticketing.services.event_validation import validate_event, validate_fee_policy
from ticketing.services.permissions import (
    can_view_event,
    is_admin,
    require_organizer_or_admin,
    require_user,
)
from ticketing.services.query_features import Page, QueryFeatures
from ticketing.utils.dates import to_naive_utc, utcnow
from ticketing.utils.rich_text import render_markdown

logger = logging.getLogger(__name__)

EVENT_NAMES = api_names(EventSchema)
BOOKED_EVENT_NAMES = api_names(BookedEventSchema)

# Fields an organizer may change after creation
MUTABLE_FIELDS = frozenset(EventCreate.model_fields)


async def get_event_or_404(db: AsyncSession, event_id: int) -> Event:
    event = await crud.event.get_event(db, event_id)
    if event is None:
        raise NotFound("No event found with specified ID.")
    return event


async def get_managed_event(
    db: AsyncSession, event_id: int, actor: Optional[User]
) -> Event:
    """Load an event the actor is allowed to mutate"""
    require_user(actor)
    event = await get_event_or_404(db, event_id)
    require_organizer_or_admin(actor, event)
    return event


def _has_started(event: Event) -> bool:
    return event.date_time_start <= utcnow()


def _normalized(candidate: EventCreate) -> EventCreate:
    return candidate.model_copy(
        update={
            "date_time_start": to_naive_utc(candidate.date_time_start),
            "date_time_end": to_naive_utc(candidate.date_time_end),
        }
    )


def _candidate_from(event: Event) -> EventCreate:
    """The stored event as an input candidate, so updates revalidate in full"""
    location = None
    if event.location is not None:
        location = GeoPointIn(type="Point", coordinates=[event.longitude, event.latitude])
    return EventCreate(
        name=event.name,
        type=event.type.value,
        category=event.category.value,
        description=event.description,
        ticket_tiers=[
            TicketTierIn(
                id=tier.id,
                tier_name=tier.tier_name,
                tier_description=tier.tier_description,
                price=tier.price,
                online=tier.online,
                capacity=tier.capacity,
                limit_per_customer=tier.limit_per_customer,
            )
            for tier in event.ticket_tiers
        ],
        date_time_start=event.date_time_start,
        date_time_end=event.date_time_end,
        address=event.address,
        location=location,
        total_capacity=event.total_capacity,
    )


def _apply_fields(event: Event, candidate: EventCreate) -> None:
    event.name = candidate.name or ""
    event.type = EventType(candidate.type)
    event.category = EventCategory(candidate.category)
    event.description = candidate.description or ""
    event.date_time_start = candidate.date_time_start  # type: ignore[assignment]
    event.date_time_end = candidate.date_time_end  # type: ignore[assignment]
    event.total_capacity = candidate.total_capacity or 0

    if candidate.location is not None and candidate.location.coordinates:
        event.address = candidate.address
        event.longitude, event.latitude = candidate.location.coordinates
    else:
        event.address = None
        event.longitude = None
        event.latitude = None


def _copy_tier(tier: TicketTier, tier_in: TicketTierIn, position: int) -> None:
    tier.position = position
    tier.tier_name = tier_in.tier_name or ""
    tier.tier_description = tier_in.tier_description or ""
    tier.price = tier_in.price or 0
    tier.online = bool(tier_in.online)
    tier.capacity = tier_in.capacity or 0
    tier.limit_per_customer = tier_in.limit_per_customer or 0


def _apply_tiers(event: Event, tiers: List[TicketTierIn], keep_ids: bool) -> None:
    for position, tier_in in enumerate(tiers):
        tier = event.find_tier(tier_in.id) if keep_ids and tier_in.id is not None else None
        if tier is None:
            tier = TicketTier(canceled=False)
            event.ticket_tiers.append(tier)
        _copy_tier(tier, tier_in, position)
    event.ticket_tiers.sort(key=lambda tier: tier.position)


def _run_write_pipeline(event: Event) -> None:
    event.slug = slugify(event.name)
    event.online = any(tier.online for tier in event.ticket_tiers)
    event.description = event.description.replace("\\n", "\n")
    event.converted_description = render_markdown(event.description)


def _check_tier_update(event: Event, tiers: Optional[List[TicketTierIn]]) -> None:
    if tiers is None:
        return
    if len(tiers) < len(event.ticket_tiers):
        raise InvalidState("Tickets cannot be removed from this endpoint.")

    stored_ids = {tier.id for tier in event.ticket_tiers}
    given_ids = [tier.id for tier in tiers if tier.id is not None]
    if len(given_ids) != len(set(given_ids)):
        raise ValidationError("Each ticket may only appear once.")
    unknown = set(given_ids) - stored_ids
    if unknown:
        raise ValidationError("The specified ticket does not exist in this event.")
    if not stored_ids.issubset(given_ids):
        raise ValidationError("Existing tickets must be referenced by id.")


async def create_event(db: AsyncSession, event_in: EventCreate, organizer: User) -> Event:
    candidate = _normalized(event_in)
    validate_event(candidate)

    event = Event(
        organizer_id=organizer.id,
        published=False,
        canceled=False,
        photo="default.jpeg",
    )
    _apply_fields(event, candidate)
    _apply_tiers(event, candidate.ticket_tiers or [], keep_ids=False)
    _run_write_pipeline(event)

    await crud.event.create_event(db, event)
    metrics.events_created_total.inc()
    logger.info(
        f"Event {event.id} created by user {organizer.id}",
        extra={"event_id": event.id, "organizer_id": organizer.id},
    )
    return event


async def update_event(
    db: AsyncSession, event_id: int, event_in: EventUpdate, actor: Optional[User]
) -> Event:
    event = await get_managed_event(db, event_id, actor)
    if _has_started(event):
        raise InvalidState("Past events cannot be updated.")
    if event.canceled:
        raise InvalidState("Canceled events cannot be updated.")

    provided = event_in.model_fields_set & MUTABLE_FIELDS
    if "ticket_tiers" in provided:
        _check_tier_update(event, event_in.ticket_tiers)

    candidate = _candidate_from(event).model_copy(
        update={field: getattr(event_in, field) for field in provided}
    )
    candidate = _normalized(candidate)
    validate_event(candidate)

    _apply_fields(event, candidate)
    if "ticket_tiers" in provided:
        _apply_tiers(event, candidate.ticket_tiers or [], keep_ids=True)
    _run_write_pipeline(event)

    await crud.event.save_event(db, event)
    logger.info(f"Event {event.id} updated", extra={"event_id": event.id})
    return event


async def publish_event(
    db: AsyncSession, event_id: int, publish_in: EventPublish, actor: Optional[User]
) -> Event:
    event = await get_managed_event(db, event_id, actor)
    if _has_started(event):
        raise InvalidState("Past events cannot be published. Please change the start date.")
    if event.canceled:
        raise InvalidState("Canceled events cannot be published.")
    if event.published:
        raise InvalidState("This event is already published.")

    event.fee_policy = validate_fee_policy(publish_in.fee_policy)
    event.refund_policy = publish_in.refund_policy
    event.published = True

    await crud.event.save_event(db, event)
    logger.info(f"Event {event.id} published", extra={"event_id": event.id})
    return event


async def cancel_event(db: AsyncSession, event_id: int, actor: Optional[User]) -> Event:
    event = await get_managed_event(db, event_id, actor)
    if event.canceled:
        raise InvalidState("This event is already canceled.")
    if _has_started(event):
        raise InvalidState("Past events cannot be canceled.")

    event.canceled = True
    await crud.event.save_event(db, event)

    deactivated, failed = await crud.booking.cancel_all_bookings_by(db, "event", event_id)
    metrics.bookings_deactivated_total.labels(reason="event_canceled").inc(deactivated)
    if failed:
        logger.warning(
            f"Event {event_id} canceled with {len(failed)} bookings left active",
            extra={"event_id": event_id, "failed_bookings": failed},
        )
    return event


async def cancel_ticket_tier(
    db: AsyncSession, event_id: int, tier_id: int, actor: Optional[User]
) -> Event:
    event = await get_managed_event(db, event_id, actor)
    if event.canceled:
        raise InvalidState("This event is already canceled.")
    if _has_started(event):
        raise InvalidState("Tickets of past events cannot be canceled.")

    tier = event.find_tier(tier_id)
    if tier is None:
        raise NotFound("No ticket found with specified ID.")
    if tier.canceled:
        raise InvalidState("This ticket is already canceled.")
    if len(event.active_tiers()) <= 1:
        raise InvalidState("Unable to cancel the last ticket of an event.")

    tier.canceled = True
    await crud.event.save_event(db, event)

    deactivated, _ = await crud.booking.cancel_all_bookings_by(db, "ticket", tier.id)
    metrics.bookings_deactivated_total.labels(reason="ticket_canceled").inc(deactivated)
    # a failed cascade save rolls back and expires the event
    await db.refresh(event)
    return event


def attach_booking_counts(summary: EventSchema, counts: Mapping[int, int]) -> EventSchema:
    """Fill per-tier and per-event booking counts and sold-out flags"""
    total = 0
    for tier in summary.ticket_tiers:
        tier.num_bookings = counts.get(tier.id, 0)
        tier.ticket_sold_out = tier.capacity > 0 and tier.num_bookings >= tier.capacity
        total += tier.num_bookings
    summary.total_bookings = total
    summary.sold_out = summary.total_capacity > 0 and total >= summary.total_capacity
    return summary


async def summarize_event(db: AsyncSession, event: Event) -> EventSchema:
    counts = await crud.booking.count_active_by_ticket(db, event.id)
    return attach_booking_counts(EventSchema.model_validate(event), counts)


async def get_event(db: AsyncSession, event_id: int, principal: Optional[User]) -> EventDetail:
    event = await get_event_or_404(db, event_id)
    if not can_view_event(principal, event):
        raise Forbidden("You do not have permission to view this event.")
    summary = await summarize_event(db, event)
    organizer = await crud.user.get(db, event.organizer_id)
    return EventDetail(
        **summary.model_dump(),
        organizer=OrganizerSummary.model_validate(organizer) if organizer else None,
    )


async def _list(
    db: AsyncSession, params: Dict[str, Any]
) -> Tuple[List[Dict[str, Any]], Optional[Page]]:
    features = QueryFeatures(Event, params, EVENT_NAMES).apply()
    events, page = await features.execute(db)
    return [dump(event, EventSchema, features.projection) for event in events], page


async def list_events(
    db: AsyncSession, params: Mapping[str, Any], principal: Optional[User]
) -> Tuple[List[Dict[str, Any]], Optional[Page]]:
    query = dict(params)
    if not is_admin(principal):
        query["published"] = True
    return await _list(db, query)


async def get_managed_events(
    db: AsyncSession, params: Mapping[str, Any], principal: Optional[User]
) -> Tuple[List[Dict[str, Any]], Optional[Page]]:
    user = require_user(principal)
    query = dict(params)
    query["organizer_id"] = user.id
    return await _list(db, query)


async def get_my_booked_events(
    db: AsyncSession, params: Mapping[str, Any], user: User
) -> List[Dict[str, Any]]:
    totals = await crud.booking.count_active_by_event_for_user(db, user.id)
    statement = select(Event).where(Event.id.in_(list(totals)))
    features = QueryFeatures(Event, params, BOOKED_EVENT_NAMES, statement=statement)
    events = await features.filter().sort().limit().all(db)

    fields = None
    if features.projection is not None:
        fields = features.projection | {"total"}

    booked = []
    for event in events:
        summary = BookedEventSchema.model_validate(event)
        summary.total = totals.get(event.id, 0)
        booked.append(dump(summary, BookedEventSchema, fields))
    return booked


async def upload_event_photo(
    db: AsyncSession,
    event_id: int,
    data: bytes,
    actor: Optional[User],
    blob_store: S3BlobStore,
) -> Event:
    event = await get_managed_event(db, event_id, actor)
    if not data:
        raise ValidationError("Please upload a photo.")

    jpeg = await asyncio.to_thread(to_jpeg, data)
    filename = f"{event.id}.jpeg"
    await asyncio.to_thread(blob_store.put, jpeg, f"events/{filename}")

    event.photo = filename
    await crud.event.save_event(db, event)
    return event
