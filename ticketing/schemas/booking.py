from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from ticketing.models.booking import RefundStatus

from .common import APIModel, InputModel


class RefundRequest(APIModel):
    request_id: str
    created_at: Optional[datetime] = None
    resolved: Optional[bool] = None
    status: Optional[RefundStatus] = None
    reason: Optional[str] = None
    refund_processed: Optional[bool] = None


class Booking(APIModel):
    id: int
    order_id: str
    name: str
    email: str
    user_id: Optional[int] = Field(default=None, serialization_alias="user")
    event_id: int = Field(serialization_alias="event")
    ticket_id: int = Field(serialization_alias="ticket")
    price: float
    created_at: datetime
    paid: bool
    active: bool
    refund_request: Optional[RefundRequest] = None


class AttendeeLine(APIModel):
    """One attendee booking line; ``quantity`` expands into single bookings"""

    name: str
    email: str
    ticket_id: int
    quantity: int = 1


class BookingCreate(InputModel):
    """Admin-created booking"""

    name: Optional[str] = None
    email: Optional[str] = None
    user: Optional[int] = None
    event: Optional[int] = None
    ticket: Optional[int] = None


class CheckoutIn(InputModel):
    name: Optional[str] = None
    email: Optional[str] = None
    tickets: Dict[int, int] = {}


class CheckoutSession(APIModel):
    order_id: str
    session_id: Optional[str] = None
    url: Optional[str] = None
    free: bool = False


class RefundRequestIn(InputModel):
    booking_ids: List[int] = []
    reason: Optional[str] = None


class RefundResolveIn(InputModel):
    status: Optional[str] = None
