from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.user import User, UserRole

from ..core.security import get_password_hash, verify_password


async def get(db: AsyncSession, id: Any) -> Optional[User]:
    result = await db.execute(select(User).filter(User.id == id))
    first: Optional[User] = result.scalars().first()
    return first


async def get_by_email(db: AsyncSession, *, email: str) -> Optional[User]:
    result = await db.execute(select(User).filter(User.email == email.lower()))
    first: Optional[User] = result.scalars().first()
    return first


async def get_by_reset_token(db: AsyncSession, *, token_hash: str) -> Optional[User]:
    result = await db.execute(
        select(User).filter(User.password_reset_token == token_hash)
    )
    first: Optional[User] = result.scalars().first()
    return first


async def create(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.USER,
) -> User:
    db_obj = User(
        name=name,
        email=email.lower(),
        hashed_password=get_password_hash(password),
        role=role,
        active=True,
        favorite_links=[],
    )
    db.add(db_obj)
    await db.commit()
    return db_obj


async def update(db: AsyncSession, *, db_obj: User, update_data: Dict[str, Any]) -> User:
    if "email" in update_data and update_data["email"]:
        update_data["email"] = update_data["email"].lower()
    if "favorites" in update_data:
        db_obj.set_favorites(update_data.pop("favorites") or [])

    for field, value in update_data.items():
        if hasattr(db_obj, field):
            setattr(db_obj, field, value)

    await db.commit()
    return db_obj


async def delete(db: AsyncSession, *, db_obj: User) -> None:
    await db.delete(db_obj)
    await db.commit()


async def authenticate(
    db: AsyncSession, *, email: str, password: str
) -> Optional[User]:
    user = await get_by_email(db, email=email)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
