from fastapi import APIRouter

from .endpoints import bookings, events, images, users

api_router = APIRouter()
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(images.router, prefix="/images", tags=["images"])
