from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr

from ticketing.models.user import UserRole

from .common import APIModel, InputModel


# Properties to receive via API on creation
class UserCreate(InputModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    password_confirm: Optional[str] = None


class UserSignin(InputModel):
    email: Optional[str] = None
    password: Optional[str] = None


# Properties to receive via API on update
class UserUpdateMe(InputModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    private_favorites: Optional[bool] = None
    favorites: Optional[List[int]] = None
    bio: Optional[str] = None
    interests: Optional[str] = None
    tagline: Optional[str] = None
    # captured only to be rejected
    password: Optional[str] = None
    password_confirm: Optional[str] = None


class UserUpdateAdmin(UserUpdateMe):
    active: Optional[bool] = None
    role: Optional[UserRole] = None


class PasswordUpdate(InputModel):
    password: Optional[str] = None
    new_password: Optional[str] = None
    new_password_confirm: Optional[str] = None


class PasswordReset(InputModel):
    password: Optional[str] = None
    password_confirm: Optional[str] = None


class ForgotPassword(InputModel):
    email: Optional[str] = None


# Properties to return to client
class User(APIModel):
    id: int
    name: str
    email: str
    role: UserRole
    active: bool
    photo: Optional[str] = None
    tagline: Optional[str] = None
    bio: Optional[str] = None
    interests: Optional[str] = None
    favorites: List[int] = []
    private_favorites: bool = False
    created_at: Optional[datetime] = None


class UserProfile(APIModel):
    """Public projection of a user"""

    id: int
    name: str
    photo: Optional[str] = None
    created_at: Optional[datetime] = None
    tagline: Optional[str] = None
    bio: Optional[str] = None
    interests: Optional[str] = None
    favorites: Optional[List[int]] = None
    private_favorites: bool = False


class Token(APIModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: User


class TokenPayload(APIModel):
    sub: Optional[int] = None
    iat: Optional[int] = None
