from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ticketing.models.event import EventCategory, EventType, FeePolicy

from .common import APIModel, InputModel


class GeoPoint(APIModel):
    type: str = "Point"
    coordinates: List[float]


class GeoPointIn(InputModel):
    type: Optional[str] = None
    coordinates: Optional[List[float]] = None


# Properties to receive via API on create / update
class TicketTierIn(InputModel):
    id: Optional[int] = None
    tier_name: Optional[str] = None
    tier_description: Optional[str] = None
    price: Optional[float] = None
    online: Optional[bool] = None
    capacity: Optional[int] = 0
    limit_per_customer: Optional[int] = 0


class EventCreate(InputModel):
    """Mutable event fields; server-assigned fields are never read from input"""

    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    ticket_tiers: Optional[List[TicketTierIn]] = None
    date_time_start: Optional[datetime] = None
    date_time_end: Optional[datetime] = None
    address: Optional[str] = None
    location: Optional[GeoPointIn] = None
    total_capacity: Optional[int] = 0


class EventUpdate(EventCreate):
    pass


class EventPublish(InputModel):
    fee_policy: Optional[str] = None
    refund_policy: Optional[str] = None


# Properties to return to client
class TicketTier(APIModel):
    id: int
    tier_name: str
    tier_description: str
    price: float
    online: bool
    capacity: int
    limit_per_customer: int
    canceled: bool
    num_bookings: Optional[int] = None
    ticket_sold_out: Optional[bool] = None


class Event(APIModel):
    id: int
    name: str
    slug: Optional[str] = None
    type: EventType
    category: EventCategory
    description: str
    converted_description: Optional[str] = None
    photo: Optional[str] = None
    date_time_start: datetime
    date_time_end: datetime
    address: Optional[str] = None
    location: Optional[GeoPoint] = None
    total_capacity: int
    organizer_id: int = Field(serialization_alias="organizer")
    published: bool
    canceled: bool
    fee_policy: Optional[FeePolicy] = None
    refund_policy: Optional[str] = None
    online: bool
    created_at: datetime
    ticket_tiers: List[TicketTier] = []
    total_bookings: Optional[int] = None
    sold_out: Optional[bool] = None


class BookedEvent(Event):
    total: int = 0


class OrganizerSummary(APIModel):
    id: int
    name: str
    photo: Optional[str] = None
    tagline: Optional[str] = None


class EventDetail(Event):
    """Single-event read: the organizer id is replaced by a short profile"""

    organizer_id: int = Field(exclude=True)
    organizer: Optional[OrganizerSummary] = None


class RefundTicketLine(APIModel):
    ticket: int
    tier_name: Optional[str] = None
    price: float
    count: int


class EventRefundRequest(APIModel):
    """One pending refund request, grouped over its bookings"""

    request_id: str
    created_at: Optional[datetime] = None
    name: str
    email: str
    user_id: Optional[int] = Field(default=None, serialization_alias="user")
    reason: Optional[str] = None
    tickets: List[RefundTicketLine] = []
    total: float = 0
