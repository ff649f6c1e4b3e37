"""
Tests for authentication endpoints.

These tests verify:
  - Signup creates a PENDING user and exactly one verification mail
  - Duplicate email signup is rejected (409 CONFLICT), but an email held
    only by a DELETED account can be signed up again with a fresh id
  - Email verification activates the account exactly once
  - Login errors: unknown email and wrong password share one error
    (anti-enumeration); account state is only reported after a correct
    password
  - Forgot/reset password, including the "always 202" rule
  - GET /me reflects the session and live roles
"""

import uuid

from sqlalchemy import select, update

from ums.config import settings
from ums.models.audit_log import AuditLog
from ums.models.user import User, UserStatus


async def _signup(client, email="newuser@example.com", password="StrongPass99!"):
    return await client.post("/auth/signup", json={"email": email, "password": password})


# ---------------------------------------------------------------------------
# Signup Tests
# ---------------------------------------------------------------------------

class TestSignup:
    """Tests for POST /auth/signup."""

    async def test_signup_accepted_as_pending(self, client, outbox):
        response = await _signup(client)
        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "PENDING"
        uuid.UUID(data["user_id"])

        messages = await outbox("newuser@example.com")
        assert len(messages) == 1
        assert messages[0].subject == "Verify your email"

    async def test_signup_sets_no_session(self, client):
        response = await _signup(client)
        assert settings.COOKIE_SESSION not in response.cookies

    async def test_signup_duplicate_email(self, client, outbox):
        """A second signup for a live account is a 409 and sends nothing."""
        assert (await _signup(client)).status_code == 202
        response = await _signup(client, email="NewUser@Example.com")
        assert response.status_code == 409
        assert response.json()["error_type"] == "CONFLICT"
        assert len(await outbox("newuser@example.com")) == 1

    async def test_signup_over_deleted_account_creates_fresh_user(
        self, client, create_user, session_factory
    ):
        old_id = await create_user("gone@example.com", status=UserStatus.DELETED)

        response = await _signup(client, email="gone@example.com")
        assert response.status_code == 202
        new_id = uuid.UUID(response.json()["user_id"])
        assert new_id != old_id

        async with session_factory() as session:
            assert await session.get(User, old_id) is None
            user = await session.get(User, new_id)
            assert user.status == UserStatus.PENDING
            assert user.email_verified_at is None

    async def test_signup_invalid_email(self, client):
        response = await _signup(client, email="not-an-email")
        assert response.status_code == 422
        assert response.json()["error_type"] == "VALIDATION_FAILED"

    async def test_signup_short_password(self, client):
        response = await _signup(client, password="short")
        assert response.status_code == 422

    async def test_signup_long_password(self, client):
        response = await _signup(client, password="x" * 129)
        assert response.status_code == 422

    async def test_signup_missing_fields(self, client):
        response = await client.post("/auth/signup", json={})
        assert response.status_code == 422
        assert response.json()["errors"]


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

class TestVerifyEmail:
    """Tests for POST /auth/verify-email."""

    async def test_end_to_end_signup_and_verify(
        self, client, outbox, extract_token, session_factory
    ):
        """Signup -> PENDING + one mail -> verify -> ACTIVE -> second use fails."""
        response = await _signup(client, email="a@x.com", password="longenough1")
        assert response.status_code == 202
        user_id = uuid.UUID(response.json()["user_id"])

        async with session_factory() as session:
            assert (await session.get(User, user_id)).status == UserStatus.PENDING

        messages = await outbox("a@x.com")
        assert len(messages) == 1
        token = extract_token(messages[0].body)

        first = await client.post("/auth/verify-email", json={"token": token})
        assert first.status_code == 200
        assert first.json()["status"] == "ACTIVE"

        async with session_factory() as session:
            user = await session.get(User, user_id)
            assert user.status == UserStatus.ACTIVE
            assert user.email_verified_at is not None

        second = await client.post("/auth/verify-email", json={"token": token})
        assert second.status_code == 400
        assert second.json()["error_type"] == "INVALID_TOKEN"

    async def test_verified_user_can_log_in(self, client, outbox, extract_token):
        await _signup(client, email="a@x.com", password="longenough1")
        token = extract_token((await outbox("a@x.com"))[0].body)
        await client.post("/auth/verify-email", json={"token": token})

        response = await client.post(
            "/auth/login", json={"email": "a@x.com", "password": "longenough1"},
        )
        assert response.status_code == 200
        assert response.json()["roles"] == ["USER"]

    async def test_unknown_token(self, client):
        response = await client.post("/auth/verify-email", json={"token": "nope"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "INVALID_TOKEN"

    async def test_verification_is_audited(self, client, outbox, extract_token, session_factory):
        await _signup(client)
        token = extract_token((await outbox("newuser@example.com"))[0].body)
        await client.post("/auth/verify-email", json={"token": token})

        async with session_factory() as session:
            result = await session.execute(select(AuditLog.action))
            actions = set(result.scalars().all())
        assert {"SIGNUP", "EMAIL_VERIFICATION_SENT", "EMAIL_VERIFIED"} <= actions


# ---------------------------------------------------------------------------
# Login Tests
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success_sets_cookies(self, client, create_user):
        await create_user("login@example.com", "LoginPass1!")
        response = await client.post(
            "/auth/login", json={"email": "login@example.com", "password": "LoginPass1!"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "login@example.com"
        assert data["csrf_token"]
        assert response.cookies.get(settings.COOKIE_SESSION)
        assert response.cookies.get(settings.COOKIE_CSRF) == data["csrf_token"]

        set_cookie = " ".join(response.headers.get_list("set-cookie")).lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    async def test_login_is_case_insensitive_on_email(self, client, create_user):
        await create_user("mixed@example.com", "LoginPass1!")
        response = await client.post(
            "/auth/login", json={"email": "  MIXED@example.com ", "password": "LoginPass1!"},
        )
        assert response.status_code == 200

    async def test_login_wrong_password(self, client, create_user):
        await create_user("login@example.com", "LoginPass1!")
        response = await client.post(
            "/auth/login", json={"email": "login@example.com", "password": "WrongPass1!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "INVALID_CREDENTIALS"

    async def test_login_nonexistent_email(self, client):
        """Same error as wrong password, so accounts cannot be enumerated."""
        response = await client.post(
            "/auth/login", json={"email": "ghost@example.com", "password": "Whatever1!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "INVALID_CREDENTIALS"

    async def test_login_deleted_account(self, client, create_user):
        await create_user("gone@example.com", "LoginPass1!", status=UserStatus.DELETED)
        response = await client.post(
            "/auth/login", json={"email": "gone@example.com", "password": "LoginPass1!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "INVALID_CREDENTIALS"

    async def test_login_disabled_account(self, client, create_user):
        await create_user("off@example.com", "LoginPass1!", status=UserStatus.DISABLED)
        response = await client.post(
            "/auth/login", json={"email": "off@example.com", "password": "LoginPass1!"},
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "ACCOUNT_DISABLED"

    async def test_login_disabled_account_wrong_password(self, client, create_user):
        """Account state is not revealed without the right password."""
        await create_user("off@example.com", "LoginPass1!", status=UserStatus.DISABLED)
        response = await client.post(
            "/auth/login", json={"email": "off@example.com", "password": "WrongPass1!"},
        )
        assert response.status_code == 401

    async def test_login_unverified(self, client):
        await _signup(client, email="fresh@example.com", password="StrongPass99!")
        response = await client.post(
            "/auth/login", json={"email": "fresh@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "EMAIL_NOT_VERIFIED"

    async def test_login_updates_last_login(self, client, create_user, session_factory):
        user_id = await create_user("login@example.com", "LoginPass1!")
        await client.post(
            "/auth/login", json={"email": "login@example.com", "password": "LoginPass1!"},
        )
        async with session_factory() as session:
            assert (await session.get(User, user_id)).last_login_at is not None

    async def test_login_remember_me_extends_cookie(self, client, create_user):
        await create_user("login@example.com", "LoginPass1!")
        response = await client.post(
            "/auth/login",
            json={"email": "login@example.com", "password": "LoginPass1!", "remember": True},
        )
        set_cookie = " ".join(response.headers.get_list("set-cookie")).lower()
        assert f"max-age={settings.SESSION_REMEMBER_AGE_SECONDS}" in set_cookie


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

class TestPasswordReset:
    """Tests for POST /auth/forgot-password and /auth/reset-password."""

    async def test_forgot_password_unknown_email_is_accepted(self, client, outbox):
        response = await client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 202
        assert await outbox("ghost@example.com") == []

    async def test_forgot_password_disabled_sends_nothing(self, client, create_user, outbox):
        await create_user("off@example.com", status=UserStatus.DISABLED)
        response = await client.post("/auth/forgot-password", json={"email": "off@example.com"})
        assert response.status_code == 202
        assert await outbox("off@example.com") == []

    async def test_reset_flow(self, client, create_user, outbox, extract_token):
        await create_user("reset@example.com", "OldPassword1!")
        response = await client.post("/auth/forgot-password", json={"email": "reset@example.com"})
        assert response.status_code == 202

        messages = await outbox("reset@example.com")
        assert len(messages) == 1
        token = extract_token(messages[0].body)

        response = await client.post(
            "/auth/reset-password", json={"token": token, "password": "NewPassword1!"},
        )
        assert response.status_code == 200

        old = await client.post(
            "/auth/login", json={"email": "reset@example.com", "password": "OldPassword1!"},
        )
        assert old.status_code == 401
        new = await client.post(
            "/auth/login", json={"email": "reset@example.com", "password": "NewPassword1!"},
        )
        assert new.status_code == 200

    async def test_reset_token_single_use(self, client, create_user, outbox, extract_token):
        await create_user("reset@example.com", "OldPassword1!")
        await client.post("/auth/forgot-password", json={"email": "reset@example.com"})
        token = extract_token((await outbox("reset@example.com"))[0].body)

        first = await client.post(
            "/auth/reset-password", json={"token": token, "password": "FirstNewPass1!"},
        )
        assert first.status_code == 200
        second = await client.post(
            "/auth/reset-password", json={"token": token, "password": "SecondNewPass1!"},
        )
        assert second.status_code == 400
        assert second.json()["error_type"] == "INVALID_TOKEN"

        login = await client.post(
            "/auth/login", json={"email": "reset@example.com", "password": "FirstNewPass1!"},
        )
        assert login.status_code == 200

    async def test_reset_on_disabled_account(
        self, client, create_user, outbox, extract_token, session_factory
    ):
        user_id = await create_user("reset@example.com", "OldPassword1!")
        await client.post("/auth/forgot-password", json={"email": "reset@example.com"})
        token = extract_token((await outbox("reset@example.com"))[0].body)

        async with session_factory() as session:
            await session.execute(
                update(User).where(User.id == user_id).values(status=UserStatus.DISABLED)
            )
            await session.commit()

        response = await client.post(
            "/auth/reset-password", json={"token": token, "password": "NewPassword1!"},
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "ACCOUNT_DISABLED"

    async def test_reset_short_password(self, client):
        response = await client.post(
            "/auth/reset-password", json={"token": "whatever", "password": "short"},
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# /me
# ---------------------------------------------------------------------------

class TestMe:
    """Tests for GET /me."""

    async def test_me_requires_session(self, client):
        response = await client.get("/me")
        assert response.status_code == 401
        assert response.json()["error_type"] == "UNAUTHENTICATED"

    async def test_me_returns_profile(self, user_client):
        response = await user_client.get("/me")
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "user@example.com"
        assert data["status"] == "ACTIVE"
        assert data["roles"] == ["USER"]
        assert data["csrf_token"] == user_client.headers[settings.CSRF_HEADER]

    async def test_garbage_session_cookie(self, client):
        client.cookies.set(settings.COOKIE_SESSION, "not-a-real-token")
        response = await client.get("/me")
        assert response.status_code == 401
