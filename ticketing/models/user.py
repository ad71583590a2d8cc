import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketing.utils.dates import utcnow

from ..database import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class UserFavorite(Base):
    __tablename__ = "user_favorites"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(42), nullable=False)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole), default=UserRole.USER, nullable=False, index=True
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Profile
    photo: Mapped[str] = mapped_column(String, default="default.jpeg")
    tagline: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interests: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    private_favorites: Mapped[bool] = mapped_column(Boolean, default=False)

    # Password lifecycle
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    password_reset_token: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    favorite_links: Mapped[List[UserFavorite]] = relationship(
        UserFavorite,
        order_by=UserFavorite.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def favorites(self) -> List[int]:
        return [link.event_id for link in self.favorite_links]

    def set_favorites(self, event_ids: List[int]) -> None:
        # ordered set: keep first occurrence, reuse existing rows
        existing = {link.event_id: link for link in self.favorite_links}
        links = []
        for position, event_id in enumerate(dict.fromkeys(event_ids)):
            link = existing.get(event_id) or UserFavorite(event_id=event_id)
            link.position = position
            links.append(link)
        self.favorite_links = links

    def clear_password_reset_token(self) -> None:
        self.password_reset_token = None
        self.password_reset_expires = None

    __table_args__ = (Index("idx_user_active_role", "active", "role"),)
