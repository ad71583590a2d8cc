from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api import deps
from ticketing.core.email import Mailer
from ticketing.core.payments import StripeGateway
from ticketing.models.user import User
from ticketing.schemas.booking import Booking as BookingSchema
from ticketing.schemas.booking import BookingCreate, CheckoutIn, RefundResolveIn
from ticketing.schemas.common import dump, listing, success
from ticketing.services import booking_service

router = APIRouter()


@router.post("/checkout-session/{event_id}", summary="Start Checkout")  # type: ignore[misc]
async def create_checkout_session(
    *,
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    checkout_in: CheckoutIn,
    gateway: StripeGateway = Depends(deps.get_payment_gateway),
    mailer: Mailer = Depends(deps.get_mailer),
    current_user: Optional[User] = Depends(deps.get_optional_user),
) -> Any:
    """
    **Start a Checkout** for a ticket selection

    Guests must send an `email`; signed-in users are booked under their
    account email.

    **Request Body:**
    - `name` (string): Name for the order
    - `email` (string, guests only)
    - `tickets` (object): ticket tier id to quantity, e.g. `{"12": 2}`

    **Response:**
    - paid orders: `{"id": <session id>, "url": <checkout url>, "orderId": ...}`
    - free orders are booked immediately and answered with `201` and the
      created bookings

    **Errors:**
    - `400`: Canceled or sold out event, unknown selection, per-customer
      limit or remaining capacity exceeded
    - `404`: Event or ticket not found
    - `502`: Payment processor unavailable
    """
    session, bookings = await booking_service.checkout(
        db, event_id, checkout_in, current_user, gateway, mailer
    )
    if session.free:
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=success(
                [dump(booking, BookingSchema) for booking in bookings],
                **{"orderId": session.order_id},
            ),
        )
    return {
        "status": "success",
        "id": session.session_id,
        "url": session.url,
        "orderId": session.order_id,
    }


@router.post("/webhook-checkout", summary="Payment Webhook")  # type: ignore[misc]
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(deps.get_db),
    gateway: StripeGateway = Depends(deps.get_payment_gateway),
    mailer: Mailer = Depends(deps.get_mailer),
    stripe_signature: Optional[str] = Header(None),
) -> Dict[str, bool]:
    """Stripe calls this once a checkout session completes; the raw body is needed to verify it."""
    payload = await request.body()
    await booking_service.handle_payment_webhook(db, payload, stripe_signature, gateway, mailer)
    return {"received": True}


@router.get("/orders/{order_id}", summary="Get Order")  # type: ignore[misc]
async def read_order(order_id: str, db: AsyncSession = Depends(deps.get_db)) -> Any:
    """The bookings of one checkout, looked up by the order id from the success page."""
    bookings = await booking_service.get_order(db, order_id)
    return listing([dump(booking, BookingSchema) for booking in bookings])


@router.get("/", summary="List Bookings")  # type: ignore[misc]
async def read_bookings(
    db: AsyncSession = Depends(deps.get_db),
    params: Dict[str, str] = Depends(deps.get_query_params),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **List Bookings**

    Admins see every booking; other users see their own active bookings.
    Accepts the same query parameters as the event list.
    """
    bookings, page = await booking_service.list_bookings(db, params, current_user)
    return listing(bookings, page)


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Create Booking")  # type: ignore[misc]
async def create_booking(
    *,
    db: AsyncSession = Depends(deps.get_db),
    booking_in: BookingCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Create a Booking directly** (Admin Only)

    Bypasses checkout and payment; the price is copied from the ticket tier.
    """
    booking = await booking_service.create_booking(db, booking_in, current_user)
    return success(dump(booking, BookingSchema))


@router.get("/refund-requests/{request_id}", summary="Get Refund Request")  # type: ignore[misc]
async def read_refund_request(
    request_id: str,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    refund_request = await booking_service.get_refund_request(db, request_id, current_user)
    return success(refund_request.model_dump(mode="json", by_alias=True))


@router.patch("/refund-requests/{request_id}", summary="Resolve Refund Request")  # type: ignore[misc]
async def resolve_refund_request(
    *,
    request_id: str,
    db: AsyncSession = Depends(deps.get_db),
    resolve_in: RefundResolveIn,
    mailer: Mailer = Depends(deps.get_mailer),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Resolve a Refund Request** (Organizer or Admin)

    `status` is `accepted` or `rejected`. Accepting deactivates the bookings.
    """
    bookings = await booking_service.resolve_refund_request(
        db, request_id, resolve_in, current_user, mailer
    )
    return listing([dump(booking, BookingSchema) for booking in bookings])


@router.get("/{booking_id}", summary="Get Booking")  # type: ignore[misc]
async def read_booking(
    booking_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    booking = await booking_service.get_booking(db, booking_id, current_user)
    return success(dump(booking, BookingSchema))