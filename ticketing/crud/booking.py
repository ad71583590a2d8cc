import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.booking import Booking
from ticketing.models.event import TicketTier

logger = logging.getLogger(__name__)

CASCADE_KEYS = {"event": Booking.event_id, "ticket": Booking.ticket_id}


async def get_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(select(Booking).filter(Booking.id == booking_id))
    first: Optional[Booking] = result.scalars().first()
    return first


async def get_bookings_by_order(db: AsyncSession, order_id: str) -> List[Booking]:
    result = await db.execute(
        select(Booking).filter(Booking.order_id == order_id).order_by(Booking.id)
    )
    return list(result.scalars().all())


async def create_bookings(db: AsyncSession, bookings: List[Booking]) -> List[Booking]:
    db.add_all(bookings)
    await db.commit()
    return bookings


async def get_bookings_to_refund(
    db: AsyncSession, *, user_id: int, event_id: int, booking_ids: Sequence[int]
) -> List[Booking]:
    result = await db.execute(
        select(Booking)
        .filter(
            Booking.user_id == user_id,
            Booking.event_id == event_id,
            Booking.active.is_(True),
            Booking.refund_request_id.is_(None),
            Booking.id.in_(booking_ids),
        )
        .order_by(Booking.id)
    )
    return list(result.scalars().all())


async def get_bookings_by_refund_request(
    db: AsyncSession, request_id: str
) -> List[Booking]:
    """Unresolved bookings sharing one refund request"""
    result = await db.execute(
        select(Booking)
        .filter(
            Booking.refund_request_id == request_id,
            Booking.refund_resolved.is_(False),
        )
        .order_by(Booking.id)
    )
    return list(result.scalars().all())


async def count_active_by_ticket(db: AsyncSession, event_id: int) -> Dict[int, int]:
    result = await db.execute(
        select(Booking.ticket_id, func.count(Booking.id))
        .filter(Booking.event_id == event_id, Booking.active.is_(True))
        .group_by(Booking.ticket_id)
    )
    return {ticket_id: count for ticket_id, count in result.all()}


async def count_active_by_event_for_user(
    db: AsyncSession, user_id: int
) -> Dict[int, int]:
    result = await db.execute(
        select(Booking.event_id, func.count(Booking.id))
        .filter(Booking.user_id == user_id, Booking.active.is_(True))
        .group_by(Booking.event_id)
    )
    return {event_id: count for event_id, count in result.all()}


async def get_refund_request_rows(
    db: AsyncSession, *, event_id: Optional[int] = None, request_id: Optional[str] = None
) -> List[Any]:
    """
    Pending refund requests grouped by request and ticket, joined with the
    tier metadata.
    """
    stmt = (
        select(
            Booking.refund_request_id.label("request_id"),
            Booking.event_id,
            Booking.ticket_id,
            TicketTier.tier_name,
            Booking.price,
            func.count(Booking.id).label("count"),
            func.min(Booking.refund_created_at).label("created_at"),
            func.min(Booking.name).label("name"),
            func.min(Booking.email).label("email"),
            func.min(Booking.user_id).label("user_id"),
            func.min(Booking.refund_reason).label("reason"),
        )
        .join(TicketTier, TicketTier.id == Booking.ticket_id)
        .filter(
            Booking.refund_request_id.is_not(None),
            Booking.refund_resolved.is_(False),
        )
        .group_by(
            Booking.refund_request_id,
            Booking.event_id,
            Booking.ticket_id,
            TicketTier.tier_name,
            Booking.price,
        )
        .order_by(func.min(Booking.refund_created_at), Booking.ticket_id)
    )
    if event_id is not None:
        stmt = stmt.filter(Booking.event_id == event_id)
    if request_id is not None:
        stmt = stmt.filter(Booking.refund_request_id == request_id)

    result = await db.execute(stmt)
    return list(result.all())


async def cancel_all_bookings_by(
    db: AsyncSession, match_key: str, match_value: int
) -> Tuple[int, List[int]]:
    """
    Deactivate every booking whose ``match_key`` (``event`` or ``ticket``)
    equals ``match_value``.

    Each booking is committed on its own; a failed save is logged and
    reported, earlier saves stay in place. Returns the number deactivated
    and the ids that failed.
    """
    column = CASCADE_KEYS[match_key]
    result = await db.execute(select(Booking).filter(column == match_value))
    targets = [(booking.id, booking) for booking in result.scalars().all()]

    deactivated = 0
    failed: List[int] = []
    for booking_id, booking in targets:
        booking.active = False
        try:
            await db.commit()
            deactivated += 1
        except SQLAlchemyError as e:
            await db.rollback()
            failed.append(booking_id)
            logger.error(
                f"Failed to deactivate booking {booking_id}: {e}",
                extra={"booking_id": booking_id, match_key: match_value},
            )

    logger.info(
        f"Deactivated {deactivated} bookings by {match_key}={match_value}",
        extra={"deactivated": deactivated, "failed": len(failed)},
    )
    return deactivated, failed
