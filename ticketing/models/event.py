import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Float, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketing.utils.dates import utcnow

from ..database import Base


class EventType(str, enum.Enum):
    LECTURE = "Lecture"
    CLASS = "Class"
    PERFORMANCE = "Performance"
    SOCIAL = "Social"
    WORKSHOP = "Workshop"
    CONFERENCE = "Conference"
    CONVENTION = "Convention"
    EXPO = "Expo"
    GAME = "Game"
    RALLY = "Rally"
    SCREENING = "Screening"
    TOUR = "Tour"


class EventCategory(str, enum.Enum):
    BUSINESS = "Business"
    FOOD = "Food"
    HEALTH_LIFESTYLE = "Health & Lifestyle"
    MUSIC = "Music"
    VEHICLE = "Vehicle"
    CHARITY = "Charity"
    COMMUNITY = "Community"
    FASHION = "Fashion"
    FILM = "Film"
    HOME = "Home"
    HOBBIES = "Hobbies"
    PERFORMING_VISUAL_ARTS = "Performing & Visual Arts"
    POLITICS = "Politics"
    SPIRITUALITY = "Spirituality"
    SCHOOL = "School"
    SCIENCE_TECHNOLOGY = "Science & Technology"
    HOLIDAY = "Holiday"
    SPORTS_FITNESS = "Sports & Fitness"
    TRAVEL = "Travel"
    OUTDOOR_RECREATION = "Outdoor & Recreation"
    OTHER = "Other"


class FeePolicy(str, enum.Enum):
    PASS_FEE = "passFee"
    ABSORB_FEE = "absorbFee"


class TicketTier(Base):
    __tablename__ = "ticket_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tier_name: Mapped[str] = mapped_column(String(50), nullable=False)
    tier_description: Mapped[str] = mapped_column(String(150), nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    online: Mapped[bool] = mapped_column(Boolean, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    limit_per_customer: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    canceled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    event: Mapped["Event"] = relationship("Event", back_populates="ticket_tiers")


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(75), index=True, nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    type: Mapped[EventType] = mapped_column(SQLEnum(EventType), nullable=False, index=True)
    category: Mapped[EventCategory] = mapped_column(
        SQLEnum(EventCategory), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    converted_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo: Mapped[str] = mapped_column(String, default="default.jpeg")
    date_time_start: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    date_time_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    organizer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    published: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    canceled: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    fee_policy: Mapped[Optional[FeePolicy]] = mapped_column(
        SQLEnum(FeePolicy), nullable=True
    )
    refund_policy: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    online: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    ticket_tiers: Mapped[List[TicketTier]] = relationship(
        TicketTier,
        back_populates="event",
        order_by=TicketTier.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def location(self) -> Optional[dict]:
        if self.longitude is None or self.latitude is None:
            return None
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    def find_tier(self, tier_id: int) -> Optional[TicketTier]:
        return next((tier for tier in self.ticket_tiers if tier.id == tier_id), None)

    def active_tiers(self) -> List[TicketTier]:
        return [tier for tier in self.ticket_tiers if not tier.canceled]

    __table_args__ = (
        Index("idx_event_published_start", "published", "date_time_start"),
        Index("idx_event_organizer_created", "organizer_id", "created_at"),
        Index("idx_event_location", "longitude", "latitude"),
    )
