from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.event import Event


async def get_event(db: AsyncSession, event_id: int) -> Optional[Event]:
    result = await db.execute(select(Event).filter(Event.id == event_id))
    first: Optional[Event] = result.scalars().first()
    return first


async def create_event(db: AsyncSession, db_event: Event) -> Event:
    db.add(db_event)
    await db.commit()
    return db_event


async def save_event(db: AsyncSession, db_event: Event) -> Event:
    db.add(db_event)
    await db.commit()
    return db_event
