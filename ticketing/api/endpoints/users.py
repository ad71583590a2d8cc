from typing import Any, Dict

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api import deps
from ticketing.core.email import Mailer
from ticketing.core.storage import S3BlobStore
from ticketing.models.user import User
from ticketing.schemas.common import dump, listing, success
from ticketing.schemas.user import (
    ForgotPassword,
    PasswordReset,
    PasswordUpdate,
    UserCreate,
    UserSignin,
    UserUpdateAdmin,
    UserUpdateMe,
)
from ticketing.schemas.user import User as UserSchema
from ticketing.services import user_service

router = APIRouter()


@router.post("/signup", status_code=status.HTTP_201_CREATED, summary="Sign Up")  # type: ignore[misc]
async def signup(
    *,
    db: AsyncSession = Depends(deps.get_db),
    user_in: UserCreate,
    mailer: Mailer = Depends(deps.get_mailer),
) -> Any:
    """
    **Register New User Account**

    Creates the account, sends a welcome email and signs the user in.

    **Request Body:**
    - `name` (string): Display name, under 42 characters
    - `email` (string): Valid email address (must be unique)
    - `password` (string): At least 8 characters
    - `passwordConfirm` (string): Must match `password`

    **Example Request:**
    ```json
    {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "password": "supersecret",
        "passwordConfirm": "supersecret"
    }
    ```

    **Errors:**
    - `400`: Missing fields, password mismatch or email already registered
    """
    _, token = await user_service.signup(db, user_in, mailer)
    return success(token.model_dump(mode="json", by_alias=True))


@router.post("/signin", summary="Sign In")  # type: ignore[misc]
async def signin(*, db: AsyncSession = Depends(deps.get_db), signin_in: UserSignin) -> Any:
    """
    **Authenticate User and Get Access Token**

    Returns a JWT bearer token for the `Authorization` header.

    **Errors:**
    - `400`: Email or password missing
    - `401`: Wrong email or password
    - `403`: Account deactivated
    """
    token = await user_service.signin(db, signin_in)
    return success(token.model_dump(mode="json", by_alias=True))


@router.post("/forgot-password", summary="Forgot Password")  # type: ignore[misc]
async def forgot_password(
    *,
    db: AsyncSession = Depends(deps.get_db),
    body: ForgotPassword,
    mailer: Mailer = Depends(deps.get_mailer),
) -> Any:
    """Email a password reset link, valid for 10 minutes."""
    await user_service.forgot_password(db, body.email, mailer)
    return {"status": "success", "message": "Token sent to email."}


@router.patch("/reset-password/{token}", summary="Reset Password")  # type: ignore[misc]
async def reset_password(
    *, token: str, db: AsyncSession = Depends(deps.get_db), reset_in: PasswordReset
) -> Any:
    new_token = await user_service.reset_password(db, token, reset_in)
    return success(new_token.model_dump(mode="json", by_alias=True))


@router.get("/profile/{user_id}", summary="Public Profile")  # type: ignore[misc]
async def read_user_profile(user_id: int, db: AsyncSession = Depends(deps.get_db)) -> Any:
    """Public view of an active user; favorites are hidden when the user keeps them private."""
    profile = await user_service.get_user_profile(db, user_id)
    return success(profile.model_dump(mode="json", by_alias=True))


@router.patch("/update-password", summary="Update Password")  # type: ignore[misc]
async def update_password(
    *,
    db: AsyncSession = Depends(deps.get_db),
    password_in: PasswordUpdate,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Change Password**

    Requires the current `password`, `newPassword` and `newPasswordConfirm`.
    Tokens issued before the change stop working; a fresh one is returned.
    """
    token = await user_service.update_password(db, current_user, password_in)
    return success(token.model_dump(mode="json", by_alias=True))


@router.get("/me", summary="Current User")  # type: ignore[misc]
async def read_me(current_user: User = Depends(deps.get_current_user)) -> Any:
    return success(dump(current_user, UserSchema))


@router.patch("/me", summary="Update Current User")  # type: ignore[misc]
async def update_me(
    *,
    db: AsyncSession = Depends(deps.get_db),
    update_in: UserUpdateMe,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Update Own Profile**

    Accepts `name`, `email`, `privateFavorites`, `favorites`, `bio`,
    `interests` and `tagline`. Passwords are changed through
    `/update-password` only.
    """
    user = await user_service.update_me(db, current_user, update_in)
    return success(dump(user, UserSchema))


@router.patch("/me/photo", summary="Upload Profile Photo")  # type: ignore[misc]
async def upload_my_photo(
    photo: UploadFile = File(...),
    db: AsyncSession = Depends(deps.get_db),
    blob_store: S3BlobStore = Depends(deps.get_blob_store),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """The image is cropped to 500x500 and stored as JPEG."""
    data = await photo.read()
    user = await user_service.upload_user_photo(db, current_user, data, blob_store)
    return success(dump(user, UserSchema))


@router.delete(  # type: ignore[misc]
    "/me",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Deactivate Account",
)
async def deactivate_me(
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Response:
    await user_service.deactivate_me(db, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Admin only

@router.get("/", summary="List Users")  # type: ignore[misc]
async def read_users(
    db: AsyncSession = Depends(deps.get_db),
    params: Dict[str, str] = Depends(deps.get_query_params),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    users, page = await user_service.list_users(db, params, current_user)
    return listing(users, page)


@router.get("/{user_id}", summary="Get User")  # type: ignore[misc]
async def read_user(
    user_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    user = await user_service.get_user(db, user_id, current_user)
    return success(dump(user, UserSchema))


@router.patch("/{user_id}", summary="Update User")  # type: ignore[misc]
async def update_user(
    *,
    user_id: int,
    db: AsyncSession = Depends(deps.get_db),
    update_in: UserUpdateAdmin,
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    **Update User** (Admin Only)

    Same fields as the self-service update plus `active` and `role`.
    Passwords cannot be set here.
    """
    user = await user_service.update_user(db, user_id, update_in, current_user)
    return success(dump(user, UserSchema))


@router.delete(  # type: ignore[misc]
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete User",
)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Response:
    await user_service.delete_user(db, user_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
