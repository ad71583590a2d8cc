from typing import AsyncGenerator, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.email import get_mailer  # noqa: F401
from ticketing.core.errors import Unauthenticated
from ticketing.core.payments import get_payment_gateway  # noqa: F401
from ticketing.core.settings import settings
from ticketing.core.storage import get_blob_store  # noqa: F401
from ticketing.database import get_database
from ticketing.models.user import User
from ticketing.services import user_service

# Optional on every route; protected routes reject a missing principal themselves
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_PREFIX}/users/signin", auto_error=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_database():
        yield session


async def get_optional_user(
    db: AsyncSession = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2),
) -> Optional[User]:
    """Anonymous when no token is sent or the token does not resolve"""
    if not token:
        return None
    try:
        return await user_service.user_from_token(db, token)
    except Unauthenticated:
        return None


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2),
) -> User:
    if not token:
        raise Unauthenticated("You are not logged in. Please log in to get access.")
    return await user_service.user_from_token(db, token)


def get_query_params(request: Request) -> Dict[str, str]:
    """Raw query string as a flat mapping for QueryFeatures"""
    return dict(request.query_params)

