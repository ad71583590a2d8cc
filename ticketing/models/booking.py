import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from ticketing.core.errors import InvalidState
from ticketing.utils.dates import utcnow

from ..database import Base


class RefundStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id"), nullable=False, index=True
    )
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("ticket_tiers.id"), nullable=False, index=True
    )
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    paid: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Refund request sub-document, flattened
    refund_request_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    refund_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refund_resolved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    refund_status: Mapped[Optional[RefundStatus]] = mapped_column(
        SQLEnum(RefundStatus), nullable=True
    )
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_processed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    @property
    def refund_request(self) -> Optional[dict]:
        if self.refund_request_id is None:
            return None
        return {
            "request_id": self.refund_request_id,
            "created_at": self.refund_created_at,
            "resolved": self.refund_resolved,
            "status": self.refund_status,
            "reason": self.refund_reason,
            "refund_processed": self.refund_processed,
        }

    @validates("refund_resolved")
    def _validate_refund_resolved(self, key: str, value: Optional[bool]) -> Optional[bool]:
        if value and self.refund_status is None:
            raise InvalidState("A refund request cannot be resolved without a status.")
        return value

    __table_args__ = (
        Index("idx_booking_user_active", "user_id", "active"),
        Index("idx_booking_event_active", "event_id", "active"),
        Index("idx_booking_ticket_active", "ticket_id", "active"),
    )
