import json

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import MalformedQuery
from ticketing.models.event import Event
from ticketing.models.user import User
from ticketing.services.event_service import EVENT_NAMES
from ticketing.services.query_features import Page, QueryFeatures
from ticketing.services.user_service import USER_NAMES

from .conftest import make_event


async def run(db: AsyncSession, params: dict) -> tuple:
    features = QueryFeatures(Event, params, EVENT_NAMES).apply()
    return await features.execute(db)


async def test_filters_by_value_and_range(db: AsyncSession, organizer: User) -> None:
    await make_event(db, organizer, name="Small Room Gig", total_capacity=20)
    await make_event(db, organizer, name="Stadium Tour Night", total_capacity=5000)
    await make_event(db, organizer, name="Draft Session", published=False)

    events, page = await run(db, {"totalCapacity[gte]": "100"})
    assert [event.name for event in events] == ["Stadium Tour Night"]
    assert page is None

    events, _ = await run(db, {"published": "false"})
    assert [event.name for event in events] == ["Draft Session"]

    events, _ = await run(db, {"total_capacity": {"lt": 100, "gt": 0}})
    assert [event.name for event in events] == ["Small Room Gig"]


async def test_unknown_or_hidden_fields_are_rejected(db: AsyncSession) -> None:
    with pytest.raises(MalformedQuery, match="Invalid query field: colour"):
        await run(db, {"colour": "red"})
    with pytest.raises(MalformedQuery):
        QueryFeatures(User, {"hashedPassword": "x"}, USER_NAMES).filter()
    with pytest.raises(MalformedQuery, match="Invalid value"):
        await run(db, {"totalCapacity": "lots"})


async def test_sort_and_search(db: AsyncSession, organizer: User) -> None:
    await make_event(db, organizer, name="Beta Jazz Brunch", total_capacity=30)
    await make_event(db, organizer, name="Alpha Jazz Evening", total_capacity=10)
    await make_event(db, organizer, name="Gamma Folk Evening", total_capacity=20)

    events, _ = await run(db, {"sort": "totalCapacity"})
    assert [event.total_capacity for event in events] == [10, 20, 30]

    events, _ = await run(db, {"sort": "-name", "search": "jazz"})
    assert [event.name for event in events] == ["Beta Jazz Brunch", "Alpha Jazz Evening"]


async def test_search_treats_wildcards_literally(db: AsyncSession, organizer: User) -> None:
    await make_event(db, organizer, name="Harbor Jazz Night")
    await make_event(db, organizer, name="Weekly Meetup 01")
    await make_event(db, organizer, name="100% Vinyl Party")

    events, _ = await run(db, {"search": "%"})
    assert [event.name for event in events] == ["100% Vinyl Party"]

    events, _ = await run(db, {"search": "_"})
    assert events == []

    events, _ = await run(db, {"search": "0% v"})
    assert [event.name for event in events] == ["100% Vinyl Party"]


async def test_default_sort_is_newest_first(db: AsyncSession, organizer: User) -> None:
    first = await make_event(db, organizer, name="First Listed Event")
    second = await make_event(db, organizer, name="Second Listed Event")
    events, _ = await run(db, {})
    assert [event.id for event in events] == [second.id, first.id]


async def test_location_radius(db: AsyncSession, organizer: User) -> None:
    await make_event(db, organizer, name="Downtown Concert", longitude=-122.42, latitude=37.77)
    await make_event(db, organizer, name="Oakland Block Party", longitude=-122.27, latitude=37.80)
    await make_event(db, organizer, name="Los Angeles Showcase", longitude=-118.24, latitude=34.05)
    await make_event(db, organizer, name="Online Only Stream")

    loc = json.dumps({"center": "-122.42,37.77", "radius": 15})
    events, _ = await run(db, {"loc": loc, "sort": "name"})
    assert [event.name for event in events] == ["Downtown Concert", "Oakland Block Party"]

    with pytest.raises(MalformedQuery):
        await run(db, {"loc": json.dumps({"center": "nowhere", "radius": 5})})


async def test_pagination(db: AsyncSession, organizer: User) -> None:
    for i in range(10):
        await make_event(db, organizer, name=f"Weekly Meetup {i:02d}")

    events, page = await run(db, {"paginate": json.dumps({"page": 2, "limit": 4}), "sort": "name"})
    assert isinstance(page, Page)
    assert (page.total, page.page, page.limit, page.pages) == (10, 2, 4, 3)
    assert [event.name for event in events] == [f"Weekly Meetup {i:02d}" for i in (4, 5, 6, 7)]

    # bad page numbers fall back to the defaults
    _, page = await run(db, {"paginate": json.dumps({"page": 0, "limit": "x"})})
    assert page is not None
    assert (page.page, page.limit, page.pages) == (1, 10, 1)

    with pytest.raises(MalformedQuery):
        await run(db, {"paginate": "{page"})


def test_projection_maps_wire_names() -> None:
    features = QueryFeatures(Event, {"fields": "name,dateTimeStart,bogus"}, EVENT_NAMES).limit()
    assert features.projection == {"id", "name", "date_time_start"}
