"""
Shared fixtures: an in-memory database per test, the ASGI app behind an
httpx client, and in-process fakes for mail, photo storage and payments.
"""

import os

# Settings are read once at import time
os.environ["TESTING"] = "true"
os.environ.setdefault("SECURITY_SECRET_KEY", "test-secret-key")

from datetime import timedelta  # noqa: E402
from io import BytesIO  # noqa: E402
from typing import Any, AsyncGenerator, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from ticketing import crud  # noqa: E402
from ticketing.api import deps  # noqa: E402
from ticketing.core.database_manager import db_manager  # noqa: E402
from ticketing.core.errors import NotFound, ValidationError  # noqa: E402
from ticketing.main import app  # noqa: E402
from ticketing.models.booking import Booking  # noqa: E402
from ticketing.models.event import (  # noqa: E402
    Event,
    EventCategory,
    EventType,
    FeePolicy,
    TicketTier,
)
from ticketing.models.user import User, UserRole  # noqa: E402
from ticketing.services.user_service import issue_token  # noqa: E402
from ticketing.utils.dates import utcnow  # noqa: E402

API = "/api/v1"
DEFAULT_PASSWORD = "password123"


class FakeMailer:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    def send(
        self,
        template_name: str,
        recipient: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.sent.append(
            {"template": template_name, "recipient": recipient, "context": context or {}}
        )

    def templates(self) -> List[str]:
        return [message["template"] for message in self.sent]


class FakeBlobStore:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}

    def put(self, data: bytes, key: str) -> None:
        self.blobs[key] = data

    def get(self, key: str) -> bytes:
        if key not in self.blobs:
            raise NotFound("The specified image does not exist.")
        return self.blobs[key]


class FakeGateway:
    """Records checkout sessions and replays them as completed webhooks"""

    def __init__(self) -> None:
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def create_checkout_session(self, **kwargs: Any) -> Dict[str, Any]:
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = kwargs
        return {"id": session_id, "url": f"https://checkout.test/{session_id}"}

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if signature != "valid":
            raise ValidationError("Webhook error: No signatures found matching the expected signature")
        return {
            "type": "checkout.session.completed",
            "data": {"object": {"id": payload.decode()}},
        }

    def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        created = self.sessions[session_id]
        metadata = {"order_id": created["order_id"], "name": created["customer_name"]}
        if created["user_id"] is not None:
            metadata["user"] = str(created["user_id"])
        return {
            "id": session_id,
            "metadata": metadata,
            "customer_email": created["customer_email"],
            "client_reference_id": str(created["event_id"]),
            "line_items": {
                "data": [
                    {
                        "quantity": item["quantity"],
                        "price": {
                            "unit_amount": item["price_data"]["unit_amount"],
                            "product": {
                                "metadata": item["price_data"]["product_data"]["metadata"]
                            },
                        },
                    }
                    for item in created["line_items"]
                ]
            },
        }


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    await db_manager.create_all()
    async with db_manager.session_factory() as session:  # type: ignore[misc]
        yield session
    # dropping the pooled in-memory connection discards the database
    await db_manager.engine.dispose()  # type: ignore[union-attr]


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(
    db: AsyncSession,
    mailer: FakeMailer,
    blob_store: FakeBlobStore,
    gateway: FakeGateway,
) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    email: str,
    name: str = "Test User",
    role: UserRole = UserRole.USER,
    password: str = DEFAULT_PASSWORD,
) -> User:
    return await crud.user.create(db, name=name, email=email, password=password, role=role)


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user).access_token}"}


@pytest_asyncio.fixture
async def organizer(db: AsyncSession) -> User:
    return await create_user(db, "organizer@example.com", name="Olivia Organizer")


@pytest_asyncio.fixture
async def attendee(db: AsyncSession) -> User:
    return await create_user(db, "attendee@example.com", name="Alex Attendee")


@pytest_asyncio.fixture
async def admin(db: AsyncSession) -> User:
    return await create_user(db, "admin@example.com", name="Ada Admin", role=UserRole.ADMIN)


def tier_payload(name: str = "General", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "tierName": name,
        "tierDescription": f"{name} admission",
        "price": 0,
        "online": False,
        "capacity": 0,
        "limitPerCustomer": 0,
    }
    payload.update(overrides)
    return payload


def event_payload(**overrides: Any) -> Dict[str, Any]:
    start = utcnow() + timedelta(days=30)
    payload = {
        "name": "Harbor Jazz Night",
        "type": "Performance",
        "category": "Music",
        "description": "An evening of live jazz by the water",
        "ticketTiers": [tier_payload("General"), tier_payload("VIP", price=50)],
        "dateTimeStart": start.isoformat() + "Z",
        "dateTimeEnd": (start + timedelta(hours=4)).isoformat() + "Z",
        "address": "1 Harbor Road",
        "location": {"type": "Point", "coordinates": [-122.4, 37.8]},
        "totalCapacity": 0,
    }
    payload.update(overrides)
    return payload


async def make_event(
    db: AsyncSession,
    organizer: User,
    *,
    name: str = "Harbor Jazz Night",
    published: bool = True,
    tiers: Optional[List[Dict[str, Any]]] = None,
    total_capacity: int = 0,
    starts_in: timedelta = timedelta(days=30),
    longitude: Optional[float] = None,
    latitude: Optional[float] = None,
    fee_policy: Optional[FeePolicy] = None,
) -> Event:
    """Insert an event directly, skipping the API"""
    start = utcnow() + starts_in
    event = Event(
        name=name,
        slug=name.lower().replace(" ", "-"),
        type=EventType.PERFORMANCE,
        category=EventCategory.MUSIC,
        description="An evening of live music",
        date_time_start=start,
        date_time_end=start + timedelta(hours=3),
        address="1 Harbor Road" if longitude is not None else None,
        longitude=longitude,
        latitude=latitude,
        total_capacity=total_capacity,
        organizer_id=organizer.id,
        published=published,
        canceled=False,
        online=False,
        fee_policy=fee_policy,
    )
    for position, tier in enumerate(tiers or [{"tier_name": "General", "price": 0}]):
        event.ticket_tiers.append(
            TicketTier(
                position=position,
                tier_name=tier["tier_name"],
                tier_description=tier.get("tier_description", "Admission"),
                price=tier.get("price", 0),
                online=False,
                capacity=tier.get("capacity", 0),
                limit_per_customer=tier.get("limit_per_customer", 0),
                canceled=tier.get("canceled", False),
            )
        )
    db.add(event)
    await db.commit()
    return event


async def make_booking(
    db: AsyncSession,
    event: Event,
    tier: TicketTier,
    user: Optional[User] = None,
    *,
    order_id: str = "order-1",
    price: Optional[float] = None,
) -> Booking:
    booking = Booking(
        order_id=order_id,
        name=user.name if user else "Guest",
        email=user.email if user else "guest@example.com",
        user_id=user.id if user else None,
        event_id=event.id,
        ticket_id=tier.id,
        price=tier.price if price is None else price,
        paid=True,
        active=True,
    )
    db.add(booking)
    await db.commit()
    return booking


async def reload(model: Any, ident: Any) -> Any:
    """Read a row through a fresh session, bypassing the test session's identity map"""
    async with db_manager.session_factory() as session:  # type: ignore[misc]
        return await session.get(model, ident)


def png_bytes(size: tuple = (40, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGBA", size, (200, 40, 40, 255)).save(buffer, format="PNG")
    return buffer.getvalue()
