from typing import Optional

from ticketing.core.errors import Forbidden, Unauthenticated
from ticketing.models.event import Event
from ticketing.models.user import User, UserRole


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.ADMIN


def is_organizer(user: Optional[User], event: Event) -> bool:
    return user is not None and event.organizer_id == user.id


def is_organizer_or_admin(user: Optional[User], event: Event) -> bool:
    return is_admin(user) or is_organizer(user, event)


def require_user(user: Optional[User]) -> User:
    if user is None:
        raise Unauthenticated("You are not logged in. Please log in to get access.")
    return user


def require_admin(user: Optional[User]) -> User:
    user = require_user(user)
    if not is_admin(user):
        raise Forbidden("You do not have permission to perform this action.")
    return user


def require_organizer_or_admin(user: Optional[User], event: Event) -> User:
    """Gate every mutation of an event and its bookings"""
    user = require_user(user)
    if not is_organizer_or_admin(user, event):
        raise Forbidden("Only the organizer may access this event.")
    return user


def can_view_event(user: Optional[User], event: Event) -> bool:
    return event.published or is_organizer_or_admin(user, event)
