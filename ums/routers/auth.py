"""
Authentication router — signup, login, logout, verification, password reset
and Google sign-in.

Endpoints:
  POST /auth/signup           — Register; sends a verification email (202)
  POST /auth/login            — Authenticate; sets session + csrf cookies
  POST /auth/logout           — Revoke the current session (CSRF)
  POST /auth/logout-all       — Revoke every session of the caller (CSRF)
  POST /auth/verify-email     — Consume a verification token
  POST /auth/forgot-password  — Start a reset; always 202
  POST /auth/reset-password   — Consume a reset token, set a new password
  GET  /auth/google           — Redirect to Google's consent screen
  GET  /auth/google/callback  — Finish Google sign-in

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Raw session tokens are only ever sent as the HttpOnly session cookie.
    The CSRF token is returned in the body as well, since the frontend
    must echo it back in the x-csrf-token header anyway.
  - One-time tokens appear only in outgoing mail (and the dev outbox).
"""

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ums.config import settings
from ums.context import ActiveSession, RequestContext
from ums.database import get_db
from ums.dependencies import get_request_context, require_csrf
from ums.logging import get_logger
from ums.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    StatusResponse,
    VerifyEmailRequest,
)
from ums.services import auth_service, google_oauth, session_service

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Register a new user",
)
async def signup(
    body: SignupRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new account in PENDING state.

    A verification email is sent; the account cannot log in until the
    token in it has been consumed via /auth/verify-email.

    - **email**: Must be valid and not bound to a non-deleted account
    - **password**: 8-128 characters
    - **display_name**: Optional, defaults to "User"
    """
    user = await auth_service.signup(
        db=db,
        email=str(body.email),
        password=body.password,
        ctx=ctx,
        display_name=body.display_name,
    )
    return SignupResponse(status=user.status.value, user_id=user.id)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Log in with email and password",
)
async def login(
    body: LoginRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate and open a session.

    On success the `session` (HttpOnly) and `csrf` cookies are set. With
    **remember** the session lasts 14 days instead of 24 hours.
    """
    user, issued, roles = await auth_service.login(
        db=db,
        identifier=body.email,
        password=body.password,
        ctx=ctx,
        remember=body.remember,
    )
    session_service.set_session_cookies(response, issued)
    return LoginResponse(
        user_id=user.id,
        email=user.email,
        roles=roles,
        csrf_token=issued.csrf_token,
        expires_at=issued.expires_at,
    )


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Log out of the current session",
)
async def logout(
    session: ActiveSession = Depends(require_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.logout(db, session, ctx)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    session_service.clear_session_cookies(response)
    return response


@router.post(
    "/logout-all",
    response_model=LogoutAllResponse,
    summary="Log out of every session",
)
async def logout_all(
    response: Response,
    session: ActiveSession = Depends(require_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    revoked = await auth_service.logout_all(db, session, ctx)
    session_service.clear_session_cookies(response)
    return LogoutAllResponse(revoked=revoked)


@router.post(
    "/verify-email",
    response_model=StatusResponse,
    summary="Verify an email address",
)
async def verify_email(
    body: VerifyEmailRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.verify_email(db, body.token, ctx)
    return StatusResponse(status=user.status.value)


@router.post(
    "/forgot-password",
    response_model=StatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a password reset email",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Always answers 202, whether or not the account exists."""
    await auth_service.forgot_password(db, body.email, ctx)
    return StatusResponse(status="ok")


@router.post(
    "/reset-password",
    response_model=StatusResponse,
    summary="Set a new password with a reset token",
)
async def reset_password(
    body: ResetPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.reset_password(db, body.token, body.password, ctx)
    return StatusResponse(status=user.status.value)


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------

def _safe_redirect(target: str | None) -> str:
    """Only same-site relative paths; anything else falls back to /admin."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/admin"


def _login_error(code: str) -> RedirectResponse:
    response = RedirectResponse(f"/login?error={code}", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(google_oauth.STATE_COOKIE, path="/")
    response.delete_cookie(google_oauth.REDIRECT_COOKIE, path="/")
    return response


@router.get("/google", summary="Start Google sign-in")
async def google_start(
    request: Request,
    redirect: str | None = Query(default=None),
):
    state = google_oauth.new_state()
    callback_url = str(request.url_for("google_callback"))
    try:
        url = google_oauth.authorization_url(state, callback_url)
    except google_oauth.GoogleAuthError as exc:
        return _login_error(exc.code)

    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    for name, value in (
        (google_oauth.STATE_COOKIE, state),
        (google_oauth.REDIRECT_COOKIE, _safe_redirect(redirect)),
    ):
        response.set_cookie(
            name,
            value,
            max_age=google_oauth.STATE_MAX_AGE_SECONDS,
            httponly=True,
            secure=settings.cookies_secure,
            samesite="lax",
            path="/",
        )
    return response


@router.get("/google/callback", name="google_callback", summary="Finish Google sign-in")
async def google_callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        auth_code = google_oauth.check_state(
            code, state, request.cookies.get(google_oauth.STATE_COOKIE),
        )
        identity = await google_oauth.fetch_identity(
            auth_code, str(request.url_for("google_callback")),
        )
        _, issued, _ = await auth_service.google_login(
            db, identity.email, identity.display_name, ctx,
        )
    except google_oauth.GoogleAuthError as exc:
        logger.info("google_login_failed", code=exc.code)
        return _login_error(exc.code)

    target = _safe_redirect(request.cookies.get(google_oauth.REDIRECT_COOKIE))
    response = RedirectResponse(target, status_code=status.HTTP_302_FOUND)
    session_service.set_session_cookies(response, issued)
    response.delete_cookie(google_oauth.STATE_COOKIE, path="/")
    response.delete_cookie(google_oauth.REDIRECT_COOKIE, path="/")
    return response
