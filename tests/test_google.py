"""
Tests for Google sign-in.

The HTTP exchange with Google is replaced with an httpx.MockTransport for
fetch_identity, and fetch_identity itself is monkeypatched for the
callback-route tests.
"""

from http.cookies import SimpleCookie

import httpx
import pytest
from sqlalchemy import select

from ums.config import settings
from ums.models.user import User, UserStatus
from ums.services import google_oauth
from ums.services.google_oauth import GoogleAuthError, GoogleIdentity


@pytest.fixture
def google_configured(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "client-secret")


@pytest.fixture
def fake_identity(monkeypatch):
    """Make fetch_identity return a fixed identity for any code."""
    def _install(email="g@example.com", name="Gee User"):
        async def _fetch(code, callback_url, client=None):
            return GoogleIdentity(email=email, display_name=name)
        monkeypatch.setattr(google_oauth, "fetch_identity", _fetch)
    return _install


def set_cookie_value(response: httpx.Response, name: str) -> str | None:
    """Decoded value of a Set-Cookie header (Starlette quotes values containing '/')."""
    for header in response.headers.get_list("set-cookie"):
        morsel = SimpleCookie(header).get(name)
        if morsel is not None:
            return morsel.value
    return None


def _google_transport(token_status=200, token_body=None, info_status=200, info_body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            return httpx.Response(token_status, json=token_body or {"id_token": "idt"})
        return httpx.Response(
            info_status,
            json=info_body or {"email": "g@example.com", "email_verified": "true", "name": "Gee"},
        )
    return httpx.MockTransport(handler)


class TestFetchIdentity:

    async def test_success(self, google_configured):
        async with httpx.AsyncClient(transport=_google_transport()) as client:
            identity = await google_oauth.fetch_identity("code", "http://test/cb", client=client)
        assert identity == GoogleIdentity(email="g@example.com", display_name="Gee")

    async def test_exchange_rejected(self, google_configured):
        async with httpx.AsyncClient(transport=_google_transport(token_status=400)) as client:
            with pytest.raises(GoogleAuthError) as exc_info:
                await google_oauth.fetch_identity("code", "http://test/cb", client=client)
        assert exc_info.value.code == "google_exchange_failed"

    async def test_no_id_token(self, google_configured):
        transport = _google_transport(token_body={"access_token": "x"})
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(GoogleAuthError) as exc_info:
                await google_oauth.fetch_identity("code", "http://test/cb", client=client)
        assert exc_info.value.code == "google_no_id_token"

    async def test_unverified_email(self, google_configured):
        transport = _google_transport(info_body={"email": "g@example.com", "email_verified": "false"})
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(GoogleAuthError) as exc_info:
                await google_oauth.fetch_identity("code", "http://test/cb", client=client)
        assert exc_info.value.code == "google_email_unverified"

    async def test_name_falls_back_to_local_part(self, google_configured):
        transport = _google_transport(info_body={"email": "solo@example.com", "email_verified": True})
        async with httpx.AsyncClient(transport=transport) as client:
            identity = await google_oauth.fetch_identity("code", "http://test/cb", client=client)
        assert identity.display_name == "solo"


class TestGoogleRoutes:

    async def test_start_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "")
        response = await client.get("/auth/google")
        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=google_not_configured"

    async def test_start_redirects_to_google(self, client, google_configured):
        response = await client.get("/auth/google", params={"redirect": "/admin/users"})
        assert response.status_code == 302
        assert response.headers["location"].startswith(google_oauth.AUTH_URL)
        assert response.cookies.get(google_oauth.STATE_COOKIE)
        assert set_cookie_value(response, google_oauth.REDIRECT_COOKIE) == "/admin/users"

    async def test_start_rejects_offsite_redirect(self, client, google_configured):
        response = await client.get("/auth/google", params={"redirect": "//evil.example"})
        assert set_cookie_value(response, google_oauth.REDIRECT_COOKIE) == "/admin"

    async def test_start_then_callback_returns_to_requested_page(
        self, client, google_configured, fake_identity, create_user
    ):
        await create_user("g@example.com")
        fake_identity(email="g@example.com")

        start = await client.get("/auth/google", params={"redirect": "/admin/users"})
        state = client.cookies.get(google_oauth.STATE_COOKIE)
        assert start.status_code == 302 and state

        response = await client.get(
            "/auth/google/callback", params={"code": "c", "state": state},
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/admin/users"

    async def test_callback_state_mismatch(self, client, google_configured, fake_identity):
        fake_identity()
        client.cookies.set(google_oauth.STATE_COOKIE, "expected")
        response = await client.get(
            "/auth/google/callback", params={"code": "c", "state": "other"},
        )
        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=google_state_mismatch"

    async def test_callback_creates_active_user(
        self, client, google_configured, fake_identity, session_factory
    ):
        fake_identity(email="New.Google@example.com", name="Newbie")
        client.cookies.set(google_oauth.STATE_COOKIE, "s1")
        client.cookies.set(google_oauth.REDIRECT_COOKIE, "/dashboard")

        response = await client.get("/auth/google/callback", params={"code": "c", "state": "s1"})
        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"
        assert response.cookies.get(settings.COOKIE_SESSION)

        me = await client.get("/me")
        assert me.status_code == 200
        assert me.json()["roles"] == ["USER"]

        async with session_factory() as session:
            user = (await session.execute(
                select(User).where(User.email_norm == "new.google@example.com")
            )).scalar_one()
            assert user.status == UserStatus.ACTIVE
            assert user.password_hash is None
            assert user.email_verified_at is not None

    async def test_callback_logs_in_existing_user(
        self, client, google_configured, fake_identity, create_user
    ):
        await create_user("g@example.com")
        fake_identity(email="g@example.com")
        client.cookies.set(google_oauth.STATE_COOKIE, "s1")

        response = await client.get("/auth/google/callback", params={"code": "c", "state": "s1"})
        assert response.status_code == 302
        assert response.headers["location"] == "/admin"
        assert (await client.get("/me")).json()["email"] == "g@example.com"

    @pytest.mark.parametrize(
        "status,code",
        [(UserStatus.DISABLED, "account_disabled"), (UserStatus.DELETED, "account_not_found")],
    )
    async def test_callback_blocked_user(
        self, client, google_configured, fake_identity, create_user, status, code
    ):
        await create_user("g@example.com", status=status)
        fake_identity(email="g@example.com")
        client.cookies.set(google_oauth.STATE_COOKIE, "s1")

        response = await client.get("/auth/google/callback", params={"code": "c", "state": "s1"})
        assert response.status_code == 302
        assert response.headers["location"] == f"/login?error={code}"
        assert (await client.get("/me")).status_code == 401
