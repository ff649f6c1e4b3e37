"""
Authentication service — signup, login, logout, verification and password reset.

This module contains the auth flows, separated from HTTP concerns. The
router calls these functions with an explicit RequestContext and turns the
results into responses and cookies.

Signup flow:
  1. Validate email and password
  2. Existing non-deleted account at that email -> CONFLICT
     Existing DELETED account -> purge it, then continue as a new signup
  3. Create a PENDING user with role USER
  4. Issue a 24h verification token, mail it, audit it
  All of it runs in the request transaction: either everything lands or
  nothing does. The verification mail is only sent for a brand new row.

Login flow:
  1. Look up the user by normalized email
  2. Verify the password, then the account state
  3. Create a session, stamp last_login_at, audit LOGIN_SUCCESS

Security notes:
  - Unknown email, deleted account and wrong password share one error
    (INVALID_CREDENTIALS) to prevent user enumeration
  - The account state is only revealed after a correct password
  - forgot_password answers the same way whether or not the account exists
"""

import uuid

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.context import ActiveSession, RequestContext
from ums.exceptions import (
    AccountDisabledError,
    ConflictError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    ValidationFailedError,
)
from ums.logging import get_logger
from ums.models.role import RoleName, UserRole
from ums.models.user import User, UserStatus
from ums.security import (
    hash_password,
    is_valid_email,
    normalize_email,
    verify_password,
)
from ums.services import audit_service, mail_service, session_service, token_service
from ums.services.google_oauth import GoogleAuthError
from ums.services.session_service import IssuedSession

logger = get_logger(__name__)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def validate_password(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationFailedError(
            f"Password must be at most {PASSWORD_MAX_LENGTH} characters"
        )


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(
        select(User)
        .where(User.email_norm == normalize_email(email))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def verification_mail(ctx: RequestContext, raw_token: str) -> tuple[str, str]:
    link = f"{ctx.base_url}/verify-email?token={raw_token}"
    return (
        "Verify your email",
        f"Your verification code:\n\n{raw_token}\n\nOr open:\n{link}\n",
    )


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------

async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    ctx: RequestContext,
    display_name: str | None = None,
) -> User:
    """
    Register a new PENDING account and send its verification email.

    Returns:
        The new User (status PENDING).

    Raises:
        ValidationFailedError: Malformed email or password.
        ConflictError: A non-deleted account already uses this email.
    """
    email = email.strip()
    if not is_valid_email(email):
        raise ValidationFailedError("Invalid email")
    validate_password(password)

    existing = await get_user_by_email(db, email)
    if existing is not None:
        if existing.status != UserStatus.DELETED:
            raise ConflictError("User already exists")
        # Purge the deleted account; cascades clear its sessions, tokens, roles
        await db.execute(
            delete(User)
            .where(User.id == existing.id)
            .execution_options(synchronize_session="fetch")
        )
        logger.info("deleted_account_purged", user_id=str(existing.id))

    now = utc_now()
    user = User(
        email=email,
        email_norm=normalize_email(email),
        email_verified_at=None,
        password_hash=hash_password(password),
        status=UserStatus.PENDING,
        display_name=(display_name or "").strip() or "User",
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()

    db.add(UserRole(user_id=user.id, role_name=RoleName.USER.value, assigned_at=now))
    await audit_service.record(
        db, "SIGNUP", actor_user_id=user.id, target_user_id=user.id, ip=ctx.ip,
    )

    raw_token = await token_service.issue_verification_token(db, user.id)
    subject, body = verification_mail(ctx, raw_token)
    await mail_service.send_email(db, user.email, subject, body)
    await audit_service.record(
        db, "EMAIL_VERIFICATION_SENT", target_user_id=user.id, ip=ctx.ip,
    )

    logger.info("user_signed_up", user_id=str(user.id))
    return user


async def verify_email(db: AsyncSession, raw_token: str, ctx: RequestContext) -> User:
    """Consume a verification token; the user becomes ACTIVE."""
    user = await token_service.consume_verification_token(db, raw_token.strip())
    await audit_service.record(db, "EMAIL_VERIFIED", target_user_id=user.id, ip=ctx.ip)
    return user


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------

async def login(
    db: AsyncSession,
    identifier: str,
    password: str,
    ctx: RequestContext,
    remember: bool = False,
) -> tuple[User, IssuedSession, list[str]]:
    """
    Authenticate with email + password and open a session.

    Returns:
        Tuple of (User, IssuedSession, role names).

    Raises:
        InvalidCredentialsError: Unknown email, DELETED account, wrong password.
        AccountDisabledError: Correct password but the account is DISABLED.
        EmailNotVerifiedError: Correct password but the email is unverified.
    """
    user = await get_user_by_email(db, identifier)

    # Same error for all three cases, so accounts cannot be enumerated
    if user is None or user.status == UserStatus.DELETED:
        raise InvalidCredentialsError()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()

    if user.status == UserStatus.DISABLED:
        raise AccountDisabledError()
    if user.email_verified_at is None:
        raise EmailNotVerifiedError()

    issued = await session_service.create_session(db, user.id, remember, ctx)

    now = utc_now()
    user.last_login_at = now
    user.updated_at = now
    await audit_service.record(
        db, "LOGIN_SUCCESS", actor_user_id=user.id, target_user_id=user.id, ip=ctx.ip,
    )
    roles = await session_service.get_user_roles(db, user.id)
    return user, issued, roles


async def logout(db: AsyncSession, session: ActiveSession, ctx: RequestContext) -> None:
    """Revoke exactly the caller's session. CSRF must already be checked."""
    await session_service.revoke_session(db, session.id)
    await audit_service.record(
        db, "LOGOUT", actor_user_id=session.user_id, target_user_id=session.user_id, ip=ctx.ip,
    )


async def logout_all(db: AsyncSession, session: ActiveSession, ctx: RequestContext) -> int:
    """Revoke every session of the caller. CSRF must already be checked."""
    count = await session_service.revoke_user_sessions(db, session.user_id)
    await audit_service.record(
        db,
        "LOGOUT_ALL",
        actor_user_id=session.user_id,
        target_user_id=session.user_id,
        ip=ctx.ip,
        metadata={"revoked": count},
    )
    return count


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

async def forgot_password(db: AsyncSession, identifier: str, ctx: RequestContext) -> None:
    """
    Start a password reset.

    Only an existing account that is neither DISABLED nor DELETED gets a
    reset mail. The caller always sees the same outcome.
    """
    user = await get_user_by_email(db, identifier)
    if user is None or user.status.is_blocked:
        return

    raw_token = await token_service.issue_password_reset_token(db, user.id, ctx.ip)
    link = f"{ctx.base_url}/reset-password?token={raw_token}"
    await mail_service.send_email(
        db,
        user.email,
        "Password reset",
        f"Your password reset code:\n\n{raw_token}\n\nOr open:\n{link}\n",
    )
    await audit_service.record(
        db,
        "PASSWORD_RESET_REQUESTED",
        actor_user_id=user.id,
        target_user_id=user.id,
        ip=ctx.ip,
    )


async def reset_password(
    db: AsyncSession,
    raw_token: str,
    new_password: str,
    ctx: RequestContext,
) -> User:
    """
    Finish a password reset.

    Raises:
        ValidationFailedError: New password too short/long.
        InvalidTokenError: Unknown, used or expired token.
        AccountDisabledError: The account is DISABLED or DELETED.
    """
    validate_password(new_password)
    user = await token_service.consume_password_reset_token(db, raw_token.strip(), new_password)
    await audit_service.record(
        db, "PASSWORD_RESET", actor_user_id=user.id, target_user_id=user.id, ip=ctx.ip,
    )
    return user


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------

async def google_login(
    db: AsyncSession,
    email: str,
    display_name: str,
    ctx: RequestContext,
) -> tuple[User, IssuedSession, bool]:
    """
    Log in (or sign up) a user whose email Google has verified.

    New accounts are created ACTIVE and verified, without a password.

    Returns:
        Tuple of (User, IssuedSession, created).

    Raises:
        GoogleAuthError: account_disabled / account_not_found for an
            existing DISABLED / DELETED account.
    """
    user = await get_user_by_email(db, email)
    now = utc_now()
    created = user is None

    if user is not None:
        if user.status == UserStatus.DISABLED:
            raise GoogleAuthError("account_disabled")
        if user.status == UserStatus.DELETED:
            raise GoogleAuthError("account_not_found")
        user.email_verified_at = user.email_verified_at or now
        user.display_name = user.display_name or display_name
    else:
        user = User(
            email=email.strip(),
            email_norm=normalize_email(email),
            email_verified_at=now,
            password_hash=None,
            status=UserStatus.ACTIVE,
            display_name=display_name or "User",
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        await db.flush()
        db.add(UserRole(user_id=user.id, role_name=RoleName.USER.value, assigned_at=now))

    user.last_login_at = now
    user.updated_at = now
    await db.flush()

    issued = await session_service.create_session(db, user.id, True, ctx)
    await audit_service.record(
        db,
        "SIGNUP_GOOGLE" if created else "LOGIN_SUCCESS_GOOGLE",
        actor_user_id=user.id,
        target_user_id=user.id,
        ip=ctx.ip,
    )
    return user, issued, created


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    return await db.get(User, user_id)
