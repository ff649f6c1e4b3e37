"""
Google OAuth2 authorization-code client.

Flow:
  1. GET /auth/google         -> random state in a short-lived cookie,
                                 redirect to Google's consent screen
  2. GET /auth/google/callback -> state check, code exchange, tokeninfo
                                 lookup, then auth_service.google_login

Every failure is a GoogleAuthError carrying a short code. The router turns
it into a redirect to /login?error=<code> rather than a JSON error, since
the caller is a browser mid-redirect.
"""

from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from ums.config import settings
from ums.logging import get_logger
from ums.security import random_token

logger = get_logger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

STATE_COOKIE = "google_oauth_state"
REDIRECT_COOKIE = "google_oauth_redirect"
STATE_MAX_AGE_SECONDS = 10 * 60


class GoogleAuthError(Exception):
    def __init__(self, code: str):
        self.code = code
        super().__init__(code)


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    display_name: str


def redirect_uri(fallback: str) -> str:
    return settings.GOOGLE_REDIRECT_URI or fallback


def new_state() -> str:
    return random_token(16)


def authorization_url(state: str, callback_url: str) -> str:
    if not settings.GOOGLE_CLIENT_ID:
        raise GoogleAuthError("google_not_configured")
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri(callback_url),
        "response_type": "code",
        "scope": "openid email profile",
        "prompt": "select_account",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


def check_state(code: str | None, state: str | None, stored_state: str | None) -> str:
    """Return the authorization code if the state round-trip matches."""
    if not settings.google_configured:
        raise GoogleAuthError("google_not_configured")
    if not code or not state or not stored_state or state != stored_state:
        raise GoogleAuthError("google_state_mismatch")
    return code


async def fetch_identity(
    code: str,
    callback_url: str,
    client: httpx.AsyncClient | None = None,
) -> GoogleIdentity:
    """
    Exchange an authorization code for a verified Google identity.

    Args:
        code: The authorization code from the callback query string.
        callback_url: Redirect URI used when GOOGLE_REDIRECT_URI is unset;
                      it must match the one sent to the consent screen.
        client: Optional httpx client (tests pass one with a mock transport).

    Raises:
        GoogleAuthError: google_exchange_failed, google_no_id_token,
            google_token_invalid or google_email_unverified.
    """
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        try:
            token_response = await client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.GOOGLE_CLIENT_ID,
                    "client_secret": settings.GOOGLE_CLIENT_SECRET,
                    "redirect_uri": redirect_uri(callback_url),
                    "grant_type": "authorization_code",
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("google_exchange_error", error=str(exc))
            raise GoogleAuthError("google_exchange_failed") from exc
        if token_response.status_code != 200:
            logger.warning("google_exchange_rejected", status=token_response.status_code)
            raise GoogleAuthError("google_exchange_failed")

        id_token = token_response.json().get("id_token")
        if not id_token:
            raise GoogleAuthError("google_no_id_token")

        try:
            info_response = await client.get(TOKENINFO_URL, params={"id_token": id_token})
        except httpx.HTTPError as exc:
            logger.warning("google_tokeninfo_error", error=str(exc))
            raise GoogleAuthError("google_token_invalid") from exc
        if info_response.status_code != 200:
            raise GoogleAuthError("google_token_invalid")
        info = info_response.json()
    finally:
        if owns_client:
            await client.aclose()

    email = str(info.get("email") or "").strip()
    verified = info.get("email_verified") in (True, "true")
    if not email or not verified:
        raise GoogleAuthError("google_email_unverified")

    display_name = str(info.get("name") or "").strip() or email.split("@")[0] or "User"
    return GoogleIdentity(email=email, display_name=display_name)
