from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.booking import Booking, RefundStatus
from ticketing.models.event import FeePolicy
from ticketing.models.user import User

from .conftest import (
    API,
    FakeGateway,
    FakeMailer,
    auth_headers,
    create_user,
    make_booking,
    make_event,
    reload,
)

BOOKINGS = f"{API}/bookings"


async def test_free_checkout_books_immediately(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User, mailer: FakeMailer
) -> None:
    event = await make_event(db, organizer)
    tier = event.ticket_tiers[0]

    response = await client.post(
        f"{BOOKINGS}/checkout-session/{event.id}",
        json={"name": "Alex Attendee", "email": "ignored@example.com", "tickets": {str(tier.id): 2}},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    bookings = data["data"]
    assert len(bookings) == 2
    assert {booking["orderId"] for booking in bookings} == {data["orderId"]}
    assert all(booking["email"] == attendee.email for booking in bookings)
    assert all(booking["user"] == attendee.id for booking in bookings)
    assert mailer.templates() == ["booking_success"]

    response = await client.get(f"{BOOKINGS}/orders/{data['orderId']}")
    assert response.json()["data"]["results"] == 2


async def test_guest_checkout_needs_an_email(
    client: AsyncClient, db: AsyncSession, organizer: User, mailer: FakeMailer
) -> None:
    event = await make_event(db, organizer)
    tier = event.ticket_tiers[0]
    url = f"{BOOKINGS}/checkout-session/{event.id}"

    response = await client.post(url, json={"name": "Guest", "tickets": {str(tier.id): 1}})
    assert response.status_code == 400
    assert response.json()["message"] == "Please specify an email for the booking."

    response = await client.post(
        url, json={"name": "Guest", "email": "Guest@Example.com", "tickets": {str(tier.id): 1}}
    )
    assert response.status_code == 201
    booking = response.json()["data"]["data"][0]
    assert booking["email"] == "guest@example.com"
    assert booking["user"] is None
    assert mailer.templates() == ["booking_success_guest"]


async def test_checkout_rejects_bad_selections(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User
) -> None:
    event = await make_event(
        db,
        organizer,
        total_capacity=5,
        tiers=[
            {"tier_name": "General", "capacity": 4, "limit_per_customer": 2},
            {"tier_name": "VIP", "capacity": 1},
        ],
    )
    general, vip = event.ticket_tiers
    await make_booking(db, event, vip, attendee)
    url = f"{BOOKINGS}/checkout-session/{event.id}"

    async def attempt(tickets: dict) -> str:
        response = await client.post(
            url, json={"name": "Alex", "tickets": tickets}, headers=auth_headers(attendee)
        )
        assert response.status_code in (400, 404)
        return response.json()["message"]

    assert await attempt({}) == "Please select at least one ticket."
    assert await attempt({str(general.id): 0}) == "Ticket quantities must be at least 1."
    assert await attempt({"999999": 1}) == "The specified ticket does not exist."
    assert await attempt({str(vip.id): 1}) == 'One of the selected tickets is sold out: "VIP"'
    assert await attempt({str(general.id): 3}) == (
        'Ticket "General" has a limit of 2 per customer.'
    )

    response = await client.post(
        f"{BOOKINGS}/checkout-session/424242",
        json={"name": "Alex", "tickets": {"1": 1}},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 404
    assert response.json()["message"] == "The specified event does not exist."


async def test_checkout_respects_event_capacity(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User
) -> None:
    event = await make_event(db, organizer, total_capacity=2)
    tier = event.ticket_tiers[0]
    await make_booking(db, event, tier, attendee)

    response = await client.post(
        f"{BOOKINGS}/checkout-session/{event.id}",
        json={"name": "Alex", "tickets": {str(tier.id): 2}},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 400
    assert response.json()["message"] == (
        "There are not enough remaining tickets to complete the order."
    )

    await make_booking(db, event, tier, attendee, order_id="order-2")
    response = await client.post(
        f"{BOOKINGS}/checkout-session/{event.id}",
        json={"name": "Alex", "tickets": {str(tier.id): 1}},
        headers=auth_headers(attendee),
    )
    assert response.json()["message"] == "The specified event is sold out."


async def test_paid_checkout_is_booked_by_webhook(
    client: AsyncClient,
    db: AsyncSession,
    organizer: User,
    attendee: User,
    gateway: FakeGateway,
    mailer: FakeMailer,
) -> None:
    event = await make_event(
        db,
        organizer,
        fee_policy=FeePolicy.PASS_FEE,
        tiers=[{"tier_name": "General", "price": 50}, {"tier_name": "VIP", "price": 100}],
    )
    general, vip = event.ticket_tiers

    response = await client.post(
        f"{BOOKINGS}/checkout-session/{event.id}",
        json={"name": "Alex Attendee", "tickets": {str(general.id): 2, str(vip.id): 1}},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["url"] == f"https://checkout.test/{body['id']}"

    created = gateway.sessions[body["id"]]
    assert created["customer_email"] == attendee.email
    assert [item["price_data"]["unit_amount"] for item in created["line_items"]] == [5150, 10300]
    assert [item["quantity"] for item in created["line_items"]] == [2, 1]
    assert mailer.sent == []

    response = await client.post(
        f"{BOOKINGS}/webhook-checkout",
        content=body["id"],
        headers={"stripe-signature": "valid"},
    )
    assert response.json() == {"received": True}
    assert mailer.templates() == ["booking_success"]

    response = await client.get(f"{BOOKINGS}/orders/{body['orderId']}")
    bookings = response.json()["data"]["data"]
    # the stored price is the tier price, not the charged amount
    assert sorted(booking["price"] for booking in bookings) == [50, 50, 100]
    assert all(booking["user"] == attendee.id for booking in bookings)


async def test_webhook_rejects_bad_signature(client: AsyncClient) -> None:
    response = await client.post(
        f"{BOOKINGS}/webhook-checkout", content=b"cs_test_1", headers={"stripe-signature": "forged"}
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("Webhook error")


async def test_booking_visibility(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User, admin: User
) -> None:
    event = await make_event(db, organizer)
    tier = event.ticket_tiers[0]
    mine = await make_booking(db, event, tier, attendee)
    other = await create_user(db, "other@example.com", name="Other Attendee")
    theirs = await make_booking(db, event, tier, other, order_id="order-2")

    response = await client.get(f"{BOOKINGS}/", headers=auth_headers(attendee))
    assert [booking["id"] for booking in response.json()["data"]["data"]] == [mine.id]

    response = await client.get(f"{BOOKINGS}/", headers=auth_headers(admin))
    assert response.json()["data"]["results"] == 2

    response = await client.get(f"{BOOKINGS}/{theirs.id}", headers=auth_headers(attendee))
    assert response.status_code == 403

    response = await client.get(f"{BOOKINGS}/{mine.id}", headers=auth_headers(attendee))
    assert response.json()["data"]["data"]["refundRequest"] is None

    response = await client.get(f"{BOOKINGS}/")
    assert response.status_code == 401


async def test_admin_creates_booking(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User, admin: User
) -> None:
    event = await make_event(db, organizer, tiers=[{"tier_name": "General", "price": 15}])
    tier = event.ticket_tiers[0]
    payload = {
        "name": "Walk In",
        "email": "walkin@example.com",
        "user": attendee.id,
        "event": event.id,
        "ticket": tier.id,
    }

    response = await client.post(f"{BOOKINGS}/", json=payload, headers=auth_headers(attendee))
    assert response.status_code == 403

    response = await client.post(f"{BOOKINGS}/", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    booking = response.json()["data"]["data"]
    assert (booking["event"], booking["ticket"], booking["price"]) == (event.id, tier.id, 15)


async def test_refund_request_workflow(
    client: AsyncClient,
    db: AsyncSession,
    organizer: User,
    attendee: User,
    mailer: FakeMailer,
) -> None:
    event = await make_event(
        db,
        organizer,
        tiers=[{"tier_name": "General", "price": 20}, {"tier_name": "Lawn", "price": 0}],
    )
    general, lawn = event.ticket_tiers
    paid_a = await make_booking(db, event, general, attendee)
    paid_b = await make_booking(db, event, general, attendee)
    free = await make_booking(db, event, lawn, attendee)

    response = await client.post(
        f"{API}/events/{event.id}/refund-requests",
        json={"bookingIds": [paid_a.id, paid_b.id, free.id], "reason": "Cannot attend"},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 204
    assert (await reload(Booking, free.id)).active is False
    assert mailer.templates() == ["refund_request_organizer"]
    assert mailer.sent[0]["recipient"]["email"] == organizer.email

    response = await client.get(
        f"{API}/events/{event.id}/refund-requests", headers=auth_headers(attendee)
    )
    assert response.status_code == 403

    response = await client.get(
        f"{API}/events/{event.id}/refund-requests", headers=auth_headers(organizer)
    )
    requests = response.json()["data"]["data"]
    assert len(requests) == 1
    request = requests[0]
    assert request["reason"] == "Cannot attend"
    assert request["user"] == attendee.id
    assert request["total"] == 40
    assert request["tickets"] == [
        {"ticket": general.id, "tierName": "General", "price": 20, "count": 2}
    ]

    # bookings already under a request cannot be requested again
    response = await client.post(
        f"{API}/events/{event.id}/refund-requests",
        json={"bookingIds": [paid_a.id]},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 404

    url = f"{BOOKINGS}/refund-requests/{request['requestId']}"
    response = await client.get(url, headers=auth_headers(organizer))
    assert response.json()["data"]["data"]["total"] == 40

    response = await client.patch(url, json={"status": "maybe"}, headers=auth_headers(organizer))
    assert response.status_code == 400

    response = await client.patch(url, json={"status": "accepted"}, headers=auth_headers(organizer))
    assert response.status_code == 200
    for booking_id in (paid_a.id, paid_b.id):
        booking = await reload(Booking, booking_id)
        assert booking.active is False
        assert booking.refund_resolved is True
        assert booking.refund_status == RefundStatus.ACCEPTED
    assert mailer.templates()[1:] == ["refund_accepted_organizer", "refund_accepted_attendee"]

    response = await client.patch(url, json={"status": "accepted"}, headers=auth_headers(organizer))
    assert response.status_code == 404


async def test_rejected_refund_keeps_bookings(
    client: AsyncClient,
    db: AsyncSession,
    organizer: User,
    attendee: User,
    mailer: FakeMailer,
) -> None:
    event = await make_event(db, organizer, tiers=[{"tier_name": "General", "price": 20}])
    booking = await make_booking(db, event, event.ticket_tiers[0], attendee)

    await client.post(
        f"{API}/events/{event.id}/refund-requests",
        json={"bookingIds": [booking.id]},
        headers=auth_headers(attendee),
    )
    stored = await reload(Booking, booking.id)
    response = await client.patch(
        f"{BOOKINGS}/refund-requests/{stored.refund_request_id}",
        json={"status": "rejected"},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 200

    stored = await reload(Booking, booking.id)
    assert stored.active is True
    assert stored.refund_status == RefundStatus.REJECTED
    assert mailer.templates()[-1] == "refund_rejected_attendee"
