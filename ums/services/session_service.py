"""
Session service — issuing, validating and revoking opaque bearer sessions.

Issuance:
  1. Refuse DISABLED / DELETED (or missing) users with ACCOUNT_DISABLED
  2. Generate a random session token and a separate random CSRF token
  3. Store sha256(session token), never the token itself
  4. Hand both raw values back for delivery as cookies:
       - session cookie: HttpOnly (JavaScript cannot read it)
       - csrf cookie:    readable, so the frontend can echo it back in the
                         x-csrf-token header (double-submit pattern)

Validation:
  A session is valid iff revoked_at IS NULL and expires_at > now. Any other
  outcome (unknown hash, revoked, expired) returns None; callers cannot tell
  which. The user's roles are re-read on every validation, so role changes
  apply on the next request without a new login.

Revocation:
  - logout:      exactly the current session
  - logout-all:  every non-revoked session of the user
  - admin disable of a user revokes all of that user's sessions (see
    user_service.update_user)
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Response
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now, as_utc
from ums.config import settings
from ums.context import ActiveSession, RequestContext
from ums.exceptions import AccountDisabledError, CsrfInvalidError, UnauthenticatedError
from ums.logging import get_logger
from ums.models.role import UserRole
from ums.models.session import UserSession
from ums.models.user import User
from ums.security import (
    CSRF_TOKEN_BYTES,
    SESSION_TOKEN_BYTES,
    hash_token,
    random_token,
    tokens_match,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """Raw credentials of a freshly created session, ready to become cookies."""
    session_id: uuid.UUID
    token: str
    csrf_token: str
    expires_at: datetime
    max_age: int


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def create_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    remember: bool,
    ctx: RequestContext,
) -> IssuedSession:
    """
    Create a new session row for a user.

    Args:
        db: Database session.
        user_id: The user logging in.
        remember: True selects the long-lived ("remember me") duration.
        ctx: Request context; ip and user agent are stored on the row.

    Raises:
        AccountDisabledError: If the user is missing, DISABLED or DELETED.
    """
    user = await db.get(User, user_id, populate_existing=True)
    if user is None or user.status.is_blocked:
        raise AccountDisabledError("Account disabled or invalid")

    now = utc_now()
    max_age = (
        settings.SESSION_REMEMBER_AGE_SECONDS if remember
        else settings.SESSION_MAX_AGE_SECONDS
    )
    token = random_token(SESSION_TOKEN_BYTES)
    csrf_token = random_token(CSRF_TOKEN_BYTES)

    session = UserSession(
        token_hash=hash_token(token),
        user_id=user_id,
        csrf_token=csrf_token,
        created_at=now,
        last_seen_at=now,
        expires_at=now + timedelta(seconds=max_age),
        revoked_at=None,
        ip=ctx.ip,
        user_agent=(ctx.user_agent or "")[:512] or None,
    )
    db.add(session)
    await db.flush()

    logger.info(
        "session_created",
        session_id=str(session.id),
        user_id=str(user_id),
        remember=remember,
    )
    return IssuedSession(
        session_id=session.id,
        token=token,
        csrf_token=csrf_token,
        expires_at=session.expires_at,
        max_age=max_age,
    )


def set_session_cookies(response: Response, issued: IssuedSession) -> None:
    """Attach the session (HttpOnly) and CSRF (readable) cookies to a response."""
    common = dict(
        max_age=issued.max_age,
        path="/",
        secure=settings.cookies_secure,
        samesite="lax",
    )
    response.set_cookie(settings.COOKIE_SESSION, issued.token, httponly=True, **common)
    response.set_cookie(settings.COOKIE_CSRF, issued.csrf_token, httponly=False, **common)


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.COOKIE_SESSION, path="/")
    response.delete_cookie(settings.COOKIE_CSRF, path="/")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

async def get_user_roles(db: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """The user's current role names, read live from the store."""
    result = await db.execute(
        select(UserRole.role_name)
        .where(UserRole.user_id == user_id)
        .order_by(UserRole.role_name)
    )
    return list(result.scalars().all())


async def validate_session_token(
    db: AsyncSession,
    raw_token: str | None,
) -> ActiveSession | None:
    """
    Resolve a raw session token to an ActiveSession, or None.

    Fails closed: no token, unknown hash, revoked or expired all give None.
    """
    if not raw_token:
        return None

    result = await db.execute(
        select(UserSession, User)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.token_hash == hash_token(raw_token))
        .execution_options(populate_existing=True)
    )
    row = result.first()
    if row is None:
        return None

    session, user = row
    now = utc_now()
    if session.revoked_at is not None or as_utc(session.expires_at) <= now:
        return None

    await _touch_last_seen(db, session.id, now)

    return ActiveSession(
        id=session.id,
        user_id=user.id,
        csrf_token=session.csrf_token,
        email=user.email,
        status=user.status.value,
        expires_at=as_utc(session.expires_at),
        roles=await get_user_roles(db, user.id),
    )


async def _touch_last_seen(db: AsyncSession, session_id: uuid.UUID, now: datetime) -> None:
    """
    Best-effort last_seen_at bump.

    Runs inside a SAVEPOINT so a failed write cannot poison the request's
    transaction. Failures are logged and never raised.
    """
    try:
        async with db.begin_nested():
            await db.execute(
                update(UserSession)
                .where(UserSession.id == session_id)
                .values(last_seen_at=now)
                .execution_options(synchronize_session=False)
            )
    except SQLAlchemyError:
        logger.warning(
            "session_last_seen_update_failed",
            session_id=str(session_id),
            exc_info=True,
        )


async def assert_authenticated(db: AsyncSession, ctx: RequestContext) -> ActiveSession:
    """
    Raises:
        UnauthenticatedError: If the request carries no valid session.
    """
    session = await validate_session_token(db, ctx.session_cookie)
    if session is None:
        raise UnauthenticatedError()
    return session


def assert_csrf(ctx: RequestContext, session: ActiveSession) -> None:
    """
    Double-submit CSRF check.

    The csrf cookie, the x-csrf-token header and the value stored on the
    session must all be present and identical.

    Raises:
        CsrfInvalidError: On any absence or mismatch.
    """
    cookie = ctx.csrf_cookie or ""
    header = ctx.csrf_header or ""
    if (
        not cookie
        or not header
        or not tokens_match(cookie, header)
        or not tokens_match(cookie, session.csrf_token)
    ):
        raise CsrfInvalidError()


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------

async def revoke_session(db: AsyncSession, session_id: uuid.UUID) -> bool:
    """Revoke one session. Returns False if it was already revoked or unknown."""
    result = await db.execute(
        update(UserSession)
        .where(UserSession.id == session_id, UserSession.revoked_at.is_(None))
        .values(revoked_at=utc_now())
        .execution_options(synchronize_session="fetch")
    )
    revoked = result.rowcount == 1
    if revoked:
        logger.info("session_revoked", session_id=str(session_id))
    return revoked


async def revoke_user_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Revoke every non-revoked session of a user. Returns how many were revoked."""
    result = await db.execute(
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        .values(revoked_at=utc_now())
        .execution_options(synchronize_session="fetch")
    )
    logger.info("user_sessions_revoked", user_id=str(user_id), count=result.rowcount)
    return result.rowcount


async def list_active_sessions(db: AsyncSession, user_id: uuid.UUID) -> list[UserSession]:
    """Non-revoked, unexpired sessions of a user, most recently seen first."""
    result = await db.execute(
        select(UserSession)
        .where(
            UserSession.user_id == user_id,
            UserSession.revoked_at.is_(None),
            UserSession.expires_at > utc_now(),
        )
        .order_by(UserSession.last_seen_at.desc())
    )
    return list(result.scalars().all())
