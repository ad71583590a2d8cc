"""
Field and cross-field rules for an event and its ticket tiers.

Every check raises ``ValidationError`` with the message of the first rule
that fails; nothing is aggregated.
"""

from typing import List, Optional

from ticketing.core.errors import ValidationError
from ticketing.models.event import EventCategory, EventType, FeePolicy
from ticketing.schemas.event import EventCreate, GeoPointIn, TicketTierIn

NAME_MIN_LENGTH = 8
NAME_MAX_LENGTH = 75
TIER_NAME_MAX_LENGTH = 50
TIER_DESCRIPTION_MAX_LENGTH = 150
MAX_TICKET_TIERS = 10


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_name(name: Optional[str]) -> None:
    if _blank(name):
        raise ValidationError("An event must have a name.")
    name = name or ""
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"Event name cannot exceed {NAME_MAX_LENGTH} characters."
        )
    if len(name) < NAME_MIN_LENGTH:
        raise ValidationError(
            f"Event name should be at least {NAME_MIN_LENGTH} characters."
        )


def validate_choice(value: Optional[str], enum_cls: type, label: str) -> None:
    if _blank(value):
        raise ValidationError(f"Please specify an event {label}.")
    if value not in {member.value for member in enum_cls}:  # type: ignore[attr-defined]
        raise ValidationError(f"Invalid event {label}.")


def validate_ticket_tier(tier: TicketTierIn) -> None:
    if _blank(tier.tier_name):
        raise ValidationError("A ticket name is required.")
    if len(tier.tier_name or "") > TIER_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Ticket name cannot exceed {TIER_NAME_MAX_LENGTH} characters."
        )
    if _blank(tier.tier_description):
        raise ValidationError("A ticket description is required.")
    if len(tier.tier_description or "") > TIER_DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Ticket description cannot exceed {TIER_DESCRIPTION_MAX_LENGTH} characters."
        )
    if tier.price is None:
        raise ValidationError("A ticket price is required.")
    if tier.price < 0:
        raise ValidationError("Ticket price must be a positive number.")
    if tier.online is None:
        raise ValidationError("Online ticket status is required.")

    capacity = tier.capacity or 0
    limit = tier.limit_per_customer or 0
    if capacity < 0:
        raise ValidationError("Ticket capacity must be a positive number.")
    if limit < 0:
        raise ValidationError("Per-customer limit must be a positive number.")
    if capacity > 0 and limit > capacity:
        raise ValidationError("Per-customer limit cannot exceed ticket capacity.")


def validate_ticket_tiers(tiers: Optional[List[TicketTierIn]]) -> None:
    if tiers is None:
        raise ValidationError("An event must have ticket tiers.")
    if len(tiers) < 1:
        raise ValidationError("At least one ticket type is required.")
    if len(tiers) > MAX_TICKET_TIERS:
        raise ValidationError(
            f"An event cannot have more than {MAX_TICKET_TIERS} ticket types."
        )

    for tier in tiers:
        validate_ticket_tier(tier)

    seen = set()
    for tier in tiers:
        key = (tier.tier_name or "").strip().lower()
        if key in seen:
            raise ValidationError("Ticket names must be unique.")
        seen.add(key)


def validate_location(address: Optional[str], location: Optional[GeoPointIn]) -> None:
    has_address = not _blank(address)
    if location is None:
        if has_address:
            raise ValidationError("An event cannot have an address without a location.")
        return
    if not has_address:
        raise ValidationError("An event cannot have a location without an address.")
    if location.type not in (None, "Point"):
        raise ValidationError("Invalid location type.")
    if not location.coordinates:
        raise ValidationError("Location coordinates are required.")
    if len(location.coordinates) != 2:
        raise ValidationError("Invalid coordinates.")
    longitude, latitude = location.coordinates
    if not (-180 <= longitude <= 180 and -90 <= latitude <= 90):
        raise ValidationError("Invalid coordinates.")


def validate_capacity(total_capacity: Optional[int], tiers: List[TicketTierIn]) -> None:
    if total_capacity is None:
        raise ValidationError("Please specify a total capacity.")
    if total_capacity < 0:
        raise ValidationError("Total capacity cannot be negative.")
    if total_capacity == 0:
        return

    capacities = [tier.capacity or 0 for tier in tiers]
    allocated = sum(capacities)
    if allocated > total_capacity:
        raise ValidationError(
            "Ticket capacities cannot exceed the event total capacity."
        )
    if all(capacity > 0 for capacity in capacities) and allocated < total_capacity:
        raise ValidationError(
            "Ticket capacities must add up to the event total when all tickets "
            "have limited capacity."
        )


def validate_event(event: EventCreate) -> None:
    """Check a complete event candidate, in field order"""
    validate_name(event.name)
    validate_choice(event.type, EventType, "type")
    validate_choice(event.category, EventCategory, "category")
    if _blank(event.description):
        raise ValidationError("An event must have a description.")
    validate_ticket_tiers(event.ticket_tiers)

    if event.date_time_start is None:
        raise ValidationError("An event must have a start date.")
    if event.date_time_end is None:
        raise ValidationError("An event must have an end date.")
    if event.date_time_end <= event.date_time_start:
        raise ValidationError("The end date must be after the start date.")

    validate_location(event.address, event.location)
    validate_capacity(event.total_capacity, event.ticket_tiers or [])


def validate_fee_policy(fee_policy: Optional[str]) -> FeePolicy:
    if _blank(fee_policy):
        raise ValidationError("An event cannot be published without a fee policy.")
    try:
        return FeePolicy(fee_policy)
    except ValueError:
        raise ValidationError(
            "Fee policy must be either 'absorbFee' or 'passFee'."
        )
