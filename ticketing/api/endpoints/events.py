from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api import deps
from ticketing.core.email import Mailer
from ticketing.core.storage import S3BlobStore
from ticketing.models.user import User
from ticketing.schemas.booking import RefundRequestIn
from ticketing.schemas.common import dump, listing, success
from ticketing.schemas.event import Event as EventSchema
from ticketing.schemas.event import EventCreate, EventDetail, EventPublish, EventUpdate
from ticketing.services import booking_service, event_service

router = APIRouter()


@router.get("/", summary="List Events")  # type: ignore[misc]
async def read_events(
    db: AsyncSession = Depends(deps.get_db),
    params: Dict[str, str] = Depends(deps.get_query_params),
    current_user: Optional[User] = Depends(deps.get_optional_user),
) -> Any:
    """
    **List Events**

    Filter, sort, search and paginate events through query parameters.
    Only admins see unpublished events.

    **Query Parameters:**
    - any event field (`category=Music`), or a range with a bracketed
      operator (`totalCapacity[gte]=100`)
    - `sort` (string): comma-separated fields, `-` prefix for descending
    - `fields` (string): comma-separated fields to return
    - `search` (string): case-insensitive match on the name
    - `loc` (json): `{"center": "lon,lat", "radius": miles}`
    - `paginate` (json): `{"page": 1, "limit": 10}`

    **Example Requests:**
    ```bash
    GET /api/v1/events/?category=Music&sort=dateTimeStart
    GET /api/v1/events/?paginate={"page":2,"limit":5}
    ```
    """
    events, page = await event_service.list_events(db, params, current_user)
    return listing(events, page)


@router.get("/me/booked", summary="My Booked Events")  # type: ignore[misc]
async def read_my_booked_events(
    db: AsyncSession = Depends(deps.get_db),
    params: Dict[str, str] = Depends(deps.get_query_params),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """Events the current user holds active bookings for, each with the booking `total`."""
    events = await event_service.get_my_booked_events(db, params, current_user)
    return listing(events)


@router.get("/me/managed", summary="My Managed Events")  # type: ignore[misc]
async def read_my_managed_events(
    db: AsyncSession = Depends(deps.get_db),
    params: Dict[str, str] = Depends(deps.get_query_params),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    events, page = await event_service.get_managed_events(db, params, current_user)
    return listing(events, page)


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Create Event")  # type: ignore[misc]
async def create_event(
    *,
    db: AsyncSession = Depends(deps.get_db),
    event_in: EventCreate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Create New Event**

    The current user becomes the organizer. New events start unpublished;
    `organizer`, `published` and `canceled` are never read from the body.

    **Example Request:**
    ```json
    {
        "name": "Summer Jazz Night",
        "type": "Performance",
        "category": "Music",
        "description": "An evening of live jazz",
        "ticketTiers": [
            {"tierName": "General", "tierDescription": "Standing", "price": 20,
             "online": false, "capacity": 150, "limitPerCustomer": 4},
            {"tierName": "VIP", "tierDescription": "Front row", "price": 60,
             "online": false, "capacity": 50}
        ],
        "dateTimeStart": "2030-07-01T19:00:00Z",
        "dateTimeEnd": "2030-07-01T23:00:00Z",
        "address": "1 Harbor Rd",
        "location": {"type": "Point", "coordinates": [-122.4, 37.8]},
        "totalCapacity": 200
    }
    ```

    **Errors:**
    - `400`: The first violated event rule
    - `401`: Authentication required
    """
    event = await event_service.create_event(db, event_in, current_user)
    return success(dump(event, EventSchema))


@router.get("/{event_id}", summary="Get Event")  # type: ignore[misc]
async def read_event(
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: Optional[User] = Depends(deps.get_optional_user),
) -> Any:
    """
    Get one event with live booking counts per ticket tier.

    Unpublished events are visible to their organizer and admins only.
    """
    summary = await event_service.get_event(db, event_id, current_user)
    return success(dump(summary, EventDetail))


@router.put("/{event_id}", summary="Update Event")  # type: ignore[misc]
async def update_event(
    *,
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    event_in: EventUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Update Event** (Organizer or Admin)

    Only the mutable event fields are applied; everything else in the body is
    ignored. Ticket tiers are matched by `id`: tiers without an id are added,
    and every stored tier must still be present.

    **Errors:**
    - `400`: Validation failure, canceled or past event, removed tickets
    - `403`: Not the organizer
    - `404`: Event not found
    """
    event = await event_service.update_event(db, event_id, event_in, current_user)
    return success(dump(event, EventSchema))


@router.patch("/{event_id}/photo", summary="Upload Event Photo")  # type: ignore[misc]
async def upload_event_photo(
    event_id: int,
    photo: UploadFile = File(...),
    db: AsyncSession = Depends(deps.get_db),
    blob_store: S3BlobStore = Depends(deps.get_blob_store),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    data = await photo.read()
    event = await event_service.upload_event_photo(
        db, event_id, data, current_user, blob_store
    )
    return success(dump(event, EventSchema))


@router.patch("/{event_id}/publish", summary="Publish Event")  # type: ignore[misc]
async def publish_event(
    *,
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    publish_in: EventPublish,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Publish Event** (Organizer or Admin)

    Requires a `feePolicy` of `passFee` or `absorbFee`; `refundPolicy` is
    optional free text.
    """
    event = await event_service.publish_event(db, event_id, publish_in, current_user)
    return success(dump(event, EventSchema))


@router.delete(  # type: ignore[misc]
    "/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Cancel Event",
)
async def cancel_event(
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Response:
    """
    **Cancel Event** (Organizer or Admin)

    Marks the event canceled and deactivates every booking for it. Events are
    never deleted.
    """
    await event_service.cancel_event(db, event_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{event_id}/tickets/{ticket_id}", summary="Cancel Ticket Tier")  # type: ignore[misc]
async def cancel_ticket(
    event_id: int,
    ticket_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """Cancel one ticket tier and deactivate its bookings. The last active tier cannot be canceled."""
    event = await event_service.cancel_ticket_tier(db, event_id, ticket_id, current_user)
    return success(dump(event, EventSchema))


@router.get("/{event_id}/refund-requests", summary="Event Refund Requests")  # type: ignore[misc]
async def read_event_refund_requests(
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    requests = await booking_service.get_event_refund_requests(db, event_id, current_user)
    return listing([request.model_dump(mode="json", by_alias=True) for request in requests])


@router.post(  # type: ignore[misc]
    "/{event_id}/refund-requests",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Request Refund",
)
async def request_refund(
    *,
    event_id: int,
    db: AsyncSession = Depends(deps.get_db),
    refund_in: RefundRequestIn,
    mailer: Mailer = Depends(deps.get_mailer),
    current_user: User = Depends(deps.get_current_user),
) -> Response:
    """
    **Request a Refund** for some of the current user's bookings of this event.

    **Request Body:**
    - `bookingIds` (array of int): bookings to cancel
    - `reason` (string, optional)

    Free bookings are canceled at once; paid bookings wait for the organizer.
    """
    await booking_service.request_refund(db, event_id, refund_in, current_user, mailer)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
