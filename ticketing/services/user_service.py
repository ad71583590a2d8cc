"""
Accounts: signup, signin, self-service profile and password flows, and the
admin user management endpoints.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing import crud
from ticketing.core import security
from ticketing.core.email import Mailer
from ticketing.core.errors import (
    Forbidden,
    NotFound,
    Unauthenticated,
    UpstreamFailure,
    ValidationError,
)
from ticketing.core.settings import settings
from ticketing.core.storage import S3BlobStore, to_jpeg
from ticketing.models.user import User
from ticketing.schemas.common import api_names, dump
from ticketing.schemas.user import (
    PasswordReset,
    PasswordUpdate,
    Token,
    UserCreate,
    UserProfile,
    UserSignin,
    UserUpdateAdmin,
    UserUpdateMe,
)
from ticketing.schemas.user import User as UserSchema
from ticketing.services.permissions import require_admin
from ticketing.services.query_features import Page, QueryFeatures
from ticketing.utils.dates import utcnow

logger = logging.getLogger(__name__)

USER_NAMES = api_names(UserSchema)

NAME_MAX_LENGTH = 42
TAGLINE_MAX_LENGTH = 150
BIO_MAX_LENGTH = 1000
INTERESTS_MAX_LENGTH = 500
USER_PHOTO_SIZE = (500, 500)

SELF_UPDATE_FIELDS = {
    "name",
    "email",
    "private_favorites",
    "favorites",
    "bio",
    "interests",
    "tagline",
}
ADMIN_UPDATE_FIELDS = SELF_UPDATE_FIELDS | {"active", "role"}


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _validate_new_password(password: Optional[str], confirm: Optional[str]) -> str:
    if _blank(password):
        raise ValidationError("Please enter a password.")
    if len(password or "") < settings.security.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.security.PASSWORD_MIN_LENGTH} "
            "characters long."
        )
    if _blank(confirm):
        raise ValidationError("Please enter your password again to confirm.")
    if password != confirm:
        raise ValidationError("Passwords do not match.")
    return password or ""


def _validate_profile(data: Dict[str, Any]) -> None:
    if "name" in data:
        if _blank(data["name"]):
            raise ValidationError("Please provide a name.")
        if len(data["name"]) > NAME_MAX_LENGTH:
            raise ValidationError(f"Name must be under {NAME_MAX_LENGTH} characters.")
    if "email" in data and _blank(data["email"]):
        raise ValidationError("Please enter your email address.")
    limits = (
        ("tagline", TAGLINE_MAX_LENGTH, "Tagline"),
        ("bio", BIO_MAX_LENGTH, "Bio"),
        ("interests", INTERESTS_MAX_LENGTH, "Interests"),
    )
    for field, limit, label in limits:
        if data.get(field) and len(data[field]) > limit:
            raise ValidationError(f"{label} must be under {limit} characters.")


async def _ensure_email_free(db: AsyncSession, email: str, user_id: Optional[int] = None) -> None:
    existing = await crud.user.get_by_email(db, email=email)
    if existing is not None and existing.id != user_id:
        raise ValidationError(
            f"Duplicate field value: {email.lower()}. Please use another value."
        )


def issue_token(user: User) -> Token:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return Token(
        access_token=security.create_access_token(user.id, expires_delta=expires),
        expires_in=int(expires.total_seconds()),
        user=UserSchema.model_validate(user),
    )


async def user_from_token(db: AsyncSession, token: str) -> User:
    """Resolve a bearer token to an active user whose password is unchanged"""
    try:
        payload = security.decode_access_token(token)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise Unauthenticated("Invalid token. Please log in again.")

    user = await crud.user.get(db, user_id)
    if user is None or not user.active:
        raise Unauthenticated("The user belonging to this token no longer exists.")

    issued_at = payload.get("iat")
    if user.password_changed_at is not None and issued_at is not None:
        changed = int(
            (user.password_changed_at - security.EPOCH).total_seconds()
        )
        if issued_at < changed:
            raise Unauthenticated("User recently changed password. Please log in again.")
    return user


async def signup(db: AsyncSession, user_in: UserCreate, mailer: Mailer) -> Tuple[User, Token]:
    if _blank(user_in.name):
        raise ValidationError("Please provide a name.")
    if len(user_in.name or "") > NAME_MAX_LENGTH:
        raise ValidationError(f"Name must be under {NAME_MAX_LENGTH} characters.")
    if user_in.email is None:
        raise ValidationError("Please enter your email address.")
    password = _validate_new_password(user_in.password, user_in.password_confirm)
    await _ensure_email_free(db, user_in.email)

    user = await crud.user.create(
        db, name=(user_in.name or "").strip(), email=user_in.email, password=password
    )
    logger.info(f"User {user.id} signed up", extra={"user_id": user.id})

    mailer.send(
        "welcome",
        {"name": user.name, "email": user.email},
        {"url": f"{settings.FRONTEND_HOST}/me"},
    )
    return user, issue_token(user)


async def signin(db: AsyncSession, signin_in: UserSignin) -> Token:
    if _blank(signin_in.email) or not signin_in.password:
        raise ValidationError("Please provide an email and password")

    user = await crud.user.authenticate(
        db, email=(signin_in.email or "").strip(), password=signin_in.password
    )
    if user is None:
        raise Unauthenticated(
            "Either the specified password is incorrect, or a user with this "
            "email address does not exist. Please try again."
        )
    if not user.active:
        raise Forbidden("The account associated with this email address has been deactivated")
    return issue_token(user)


async def update_me(db: AsyncSession, user: User, update_in: UserUpdateMe) -> User:
    if update_in.password is not None or update_in.password_confirm is not None:
        raise ValidationError(
            "Password cannot be updated from this route. Please use /update-password instead."
        )

    data = update_in.model_dump(exclude_unset=True, include=SELF_UPDATE_FIELDS)
    _validate_profile(data)
    if data.get("email"):
        await _ensure_email_free(db, data["email"], user.id)
    return await crud.user.update(db, db_obj=user, update_data=data)


async def update_password(db: AsyncSession, user: User, password_in: PasswordUpdate) -> Token:
    if not password_in.password:
        raise ValidationError("Please enter your current password.")
    if not password_in.new_password:
        raise ValidationError("Please enter your new password.")
    if not password_in.new_password_confirm:
        raise ValidationError("Please confirm your new password.")
    if not security.verify_password(password_in.password, user.hashed_password):
        raise Unauthenticated("The password entered is incorrect.")

    password = _validate_new_password(
        password_in.new_password, password_in.new_password_confirm
    )
    _set_password(user, password)
    await db.commit()
    return issue_token(user)


def _set_password(user: User, password: str) -> None:
    user.hashed_password = security.get_password_hash(password)
    # one second back so a token issued right now stays valid
    user.password_changed_at = utcnow() - timedelta(seconds=1)


async def deactivate_me(db: AsyncSession, user: User) -> None:
    user.active = False
    await db.commit()
    logger.info(f"User {user.id} deactivated their account", extra={"user_id": user.id})


async def forgot_password(db: AsyncSession, email: Optional[str], mailer: Mailer) -> None:
    if _blank(email):
        raise ValidationError("Please provide an email address.")
    user = await crud.user.get_by_email(db, email=(email or "").strip())
    if user is None or not user.active:
        raise NotFound("This email address does not belong to an active user.")

    raw_token, token_hash = security.create_reset_token()
    user.password_reset_token = token_hash
    user.password_reset_expires = utcnow() + timedelta(
        minutes=settings.security.PASSWORD_RESET_EXPIRE_MINUTES
    )
    await db.commit()

    try:
        mailer.send(
            "password_reset",
            {"name": user.name, "email": user.email},
            {"url": f"{settings.FRONTEND_HOST}/reset-password/{raw_token}"},
        )
    except UpstreamFailure:
        user.clear_password_reset_token()
        await db.commit()
        raise


async def reset_password(db: AsyncSession, token: str, reset_in: PasswordReset) -> Token:
    user = await crud.user.get_by_reset_token(
        db, token_hash=security.hash_reset_token(token)
    )
    if (
        user is None
        or user.password_reset_expires is None
        or user.password_reset_expires <= utcnow()
    ):
        raise ValidationError("Token is invalid or has expired.")

    password = _validate_new_password(reset_in.password, reset_in.password_confirm)
    _set_password(user, password)
    user.clear_password_reset_token()
    await db.commit()
    return issue_token(user)


async def get_user_profile(db: AsyncSession, user_id: int) -> UserProfile:
    user = await crud.user.get(db, user_id)
    if user is None or not user.active:
        raise NotFound("No active user found with specified ID")
    profile = UserProfile.model_validate(user)
    if user.private_favorites:
        profile.favorites = None
    return profile


async def upload_user_photo(
    db: AsyncSession, user: User, data: bytes, blob_store: S3BlobStore
) -> User:
    if not data:
        raise ValidationError("Please upload a photo.")
    jpeg = await asyncio.to_thread(to_jpeg, data, USER_PHOTO_SIZE)
    filename = f"{user.id}.jpeg"
    await asyncio.to_thread(blob_store.put, jpeg, f"users/{filename}")
    user.photo = filename
    await db.commit()
    return user


# Admin

async def list_users(
    db: AsyncSession, params: Mapping[str, Any], actor: Optional[User]
) -> Tuple[List[Dict[str, Any]], Optional[Page]]:
    require_admin(actor)
    features = QueryFeatures(User, params, USER_NAMES)
    features.filter().search().sort().limit()
    users, page = await features.execute(db)
    return [dump(user, UserSchema, features.projection) for user in users], page


async def get_user(db: AsyncSession, user_id: int, actor: Optional[User]) -> User:
    require_admin(actor)
    user = await crud.user.get(db, user_id)
    if user is None:
        raise NotFound("No user found with specified ID.")
    return user


async def update_user(
    db: AsyncSession, user_id: int, update_in: UserUpdateAdmin, actor: Optional[User]
) -> User:
    user = await get_user(db, user_id, actor)
    if update_in.password is not None or update_in.password_confirm is not None:
        raise ValidationError("Admins cannot update user passwords.")

    data = update_in.model_dump(exclude_unset=True, include=ADMIN_UPDATE_FIELDS)
    _validate_profile(data)
    if data.get("email"):
        await _ensure_email_free(db, data["email"], user.id)
    user = await crud.user.update(db, db_obj=user, update_data=data)
    logger.info(
        f"User {user.id} updated by admin {actor.id if actor else None}",
        extra={"user_id": user.id},
    )
    return user


async def delete_user(db: AsyncSession, user_id: int, actor: Optional[User]) -> None:
    user = await get_user(db, user_id, actor)
    await crud.user.delete(db, db_obj=user)
    logger.info(f"User {user_id} deleted", extra={"user_id": user_id})
