from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.user import User
from ticketing.utils.dates import utcnow

from .conftest import (
    API,
    DEFAULT_PASSWORD,
    FakeBlobStore,
    FakeMailer,
    auth_headers,
    make_event,
    png_bytes,
    reload,
)

USERS = f"{API}/users"


def signup_payload(**overrides: str) -> dict:
    payload = {
        "name": "Jane Doe",
        "email": "Jane@Example.com",
        "password": "supersecret",
        "passwordConfirm": "supersecret",
    }
    payload.update(overrides)
    return payload


async def test_signup_signs_the_user_in(client: AsyncClient, mailer: FakeMailer) -> None:
    response = await client.post(f"{USERS}/signup", json=signup_payload())
    assert response.status_code == 201
    token = response.json()["data"]["data"]
    assert token["tokenType"] == "bearer"
    assert token["user"]["email"] == "jane@example.com"
    assert token["user"]["role"] == "user"
    assert mailer.templates() == ["welcome"]

    response = await client.get(
        f"{USERS}/me", headers={"Authorization": f"Bearer {token['accessToken']}"}
    )
    assert response.json()["data"]["data"]["name"] == "Jane Doe"


async def test_signup_validation(client: AsyncClient, attendee: User) -> None:
    response = await client.post(f"{USERS}/signup", json=signup_payload(passwordConfirm="other"))
    assert response.status_code == 400
    assert response.json()["message"] == "Passwords do not match."

    response = await client.post(f"{USERS}/signup", json=signup_payload(password="short", passwordConfirm="short"))
    assert response.json()["message"].startswith("Password must be at least")

    response = await client.post(f"{USERS}/signup", json=signup_payload(email="ATTENDEE@example.com"))
    assert response.status_code == 400
    assert response.json()["message"] == (
        "Duplicate field value: attendee@example.com. Please use another value."
    )

    response = await client.post(f"{USERS}/signup", json=signup_payload(email="not-an-email"))
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid input data.")


async def test_signin(client: AsyncClient, db: AsyncSession, attendee: User) -> None:
    response = await client.post(
        f"{USERS}/signin", json={"email": attendee.email, "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200
    assert response.json()["data"]["data"]["user"]["id"] == attendee.id

    response = await client.post(
        f"{USERS}/signin", json={"email": attendee.email, "password": "wrong-password"}
    )
    assert response.status_code == 401

    response = await client.post(f"{USERS}/signin", json={"email": attendee.email})
    assert response.json()["message"] == "Please provide an email and password"

    attendee.active = False
    await db.commit()
    response = await client.post(
        f"{USERS}/signin", json={"email": attendee.email, "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 403


async def test_tokens_issued_before_a_password_change_are_rejected(
    client: AsyncClient, db: AsyncSession, attendee: User
) -> None:
    headers = auth_headers(attendee)
    attendee.password_changed_at = utcnow() + timedelta(minutes=5)
    await db.commit()

    response = await client.get(f"{USERS}/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "User recently changed password. Please log in again."

    response = await client.get(f"{USERS}/me", headers={"Authorization": "Bearer garbage"})
    assert response.json()["message"] == "Invalid token. Please log in again."


async def test_update_password(client: AsyncClient, attendee: User) -> None:
    headers = auth_headers(attendee)
    body = {"password": "wrong-password", "newPassword": "brandnew1", "newPasswordConfirm": "brandnew1"}
    response = await client.patch(f"{USERS}/update-password", json=body, headers=headers)
    assert response.status_code == 401

    body["password"] = DEFAULT_PASSWORD
    response = await client.patch(f"{USERS}/update-password", json=body, headers=headers)
    assert response.status_code == 200
    new_token = response.json()["data"]["data"]["accessToken"]

    response = await client.get(f"{USERS}/me", headers={"Authorization": f"Bearer {new_token}"})
    assert response.status_code == 200

    response = await client.post(
        f"{USERS}/signin", json={"email": attendee.email, "password": "brandnew1"}
    )
    assert response.status_code == 200


async def test_update_me(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User
) -> None:
    event = await make_event(db, organizer)
    headers = auth_headers(attendee)

    response = await client.patch(
        f"{USERS}/me",
        json={"tagline": "Always front row", "favorites": [event.id, event.id], "role": "admin"},
        headers=headers,
    )
    assert response.status_code == 200
    me = response.json()["data"]["data"]
    assert me["tagline"] == "Always front row"
    assert me["favorites"] == [event.id]
    assert me["role"] == "user"

    response = await client.patch(f"{USERS}/me", json={"password": "sneaky123"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"].startswith("Password cannot be updated from this route.")

    response = await client.patch(f"{USERS}/me", json={"email": organizer.email}, headers=headers)
    assert response.status_code == 400


async def test_public_profile_hides_private_favorites(
    client: AsyncClient, db: AsyncSession, organizer: User, attendee: User
) -> None:
    event = await make_event(db, organizer)
    await client.patch(
        f"{USERS}/me",
        json={"favorites": [event.id], "privateFavorites": True},
        headers=auth_headers(attendee),
    )

    response = await client.get(f"{USERS}/profile/{attendee.id}")
    profile = response.json()["data"]["data"]
    assert profile["name"] == attendee.name
    assert profile["favorites"] is None
    assert "email" not in profile

    response = await client.get(f"{USERS}/profile/424242")
    assert response.status_code == 404


async def test_forgot_and_reset_password(
    client: AsyncClient, attendee: User, mailer: FakeMailer
) -> None:
    response = await client.post(f"{USERS}/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 404

    response = await client.post(f"{USERS}/forgot-password", json={"email": attendee.email})
    assert response.json() == {"status": "success", "message": "Token sent to email."}
    assert mailer.templates() == ["password_reset"]
    raw_token = mailer.sent[0]["context"]["url"].rsplit("/", 1)[-1]

    body = {"password": "resetpass1", "passwordConfirm": "resetpass1"}
    response = await client.patch(f"{USERS}/reset-password/{raw_token}", json=body)
    assert response.status_code == 200
    assert response.json()["data"]["data"]["accessToken"]

    response = await client.patch(f"{USERS}/reset-password/{raw_token}", json=body)
    assert response.status_code == 400
    assert response.json()["message"] == "Token is invalid or has expired."

    response = await client.post(
        f"{USERS}/signin", json={"email": attendee.email, "password": "resetpass1"}
    )
    assert response.status_code == 200


async def test_deactivate_me(client: AsyncClient, attendee: User) -> None:
    headers = auth_headers(attendee)
    response = await client.delete(f"{USERS}/me", headers=headers)
    assert response.status_code == 204
    assert (await reload(User, attendee.id)).active is False

    response = await client.get(f"{USERS}/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "The user belonging to this token no longer exists."


async def test_upload_user_photo(
    client: AsyncClient, attendee: User, blob_store: FakeBlobStore
) -> None:
    response = await client.patch(
        f"{USERS}/me/photo",
        files={"photo": ("me.png", png_bytes((800, 600)), "image/png")},
        headers=auth_headers(attendee),
    )
    assert response.status_code == 200
    assert response.json()["data"]["data"]["photo"] == f"{attendee.id}.jpeg"
    assert f"users/{attendee.id}.jpeg" in blob_store.blobs


async def test_admin_user_management(
    client: AsyncClient, attendee: User, admin: User
) -> None:
    response = await client.get(f"{USERS}/", headers=auth_headers(attendee))
    assert response.status_code == 403

    response = await client.get(
        f"{USERS}/", params={"role": "admin"}, headers=auth_headers(admin)
    )
    assert [user["id"] for user in response.json()["data"]["data"]] == [admin.id]

    response = await client.patch(
        f"{USERS}/{attendee.id}", json={"role": "admin"}, headers=auth_headers(admin)
    )
    assert response.json()["data"]["data"]["role"] == "admin"

    response = await client.patch(
        f"{USERS}/{attendee.id}", json={"password": "newpass123"}, headers=auth_headers(admin)
    )
    assert response.json()["message"] == "Admins cannot update user passwords."

    response = await client.delete(f"{USERS}/{attendee.id}", headers=auth_headers(admin))
    assert response.status_code == 204

    response = await client.get(f"{USERS}/{attendee.id}", headers=auth_headers(admin))
    assert response.status_code == 404
    assert response.json()["message"] == "No user found with specified ID."
