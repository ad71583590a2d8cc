# Import all models for easier access
from .booking import Booking, RefundStatus  # noqa: F401
from .event import (  # noqa: F401
    Event,
    EventCategory,
    EventType,
    FeePolicy,
    TicketTier,
)
from .user import User, UserFavorite, UserRole  # noqa: F401
