"""
One-time token service — email verification and password reset tokens.

Issuance stores sha256(raw token) with an expiry and returns the raw token;
the caller delivers it out-of-band through mail_service.

Consumption:
  1. Look up a usable token: matching hash, used_at IS NULL, expires_at > now.
     Unknown, used and expired tokens all raise the same InvalidTokenError.
  2. Claim it with a conditional UPDATE (... AND used_at IS NULL). Exactly
     one concurrent caller can win the claim; the loser gets INVALID_TOKEN.
  3. Apply the state change (activate user / set new password) on the same
     session. Claim and change commit or roll back together with the request.

Password reset also refuses DISABLED / DELETED accounts (ACCOUNT_DISABLED)
even when the token itself is valid; the token is left unconsumed.
"""

import uuid
from datetime import timedelta
from typing import TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.config import settings
from ums.exceptions import AccountDisabledError, InvalidTokenError
from ums.logging import get_logger
from ums.models.token import EmailVerificationToken, PasswordResetToken
from ums.models.user import User, UserStatus
from ums.security import ONE_TIME_TOKEN_BYTES, hash_password, hash_token, random_token

logger = get_logger(__name__)

TokenModel = TypeVar("TokenModel", EmailVerificationToken, PasswordResetToken)


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def issue_verification_token(
    db: AsyncSession,
    user_id: uuid.UUID,
    ttl_seconds: int | None = None,
) -> str:
    """
    Issue an email verification token.

    Args:
        ttl_seconds: Lifetime; defaults to VERIFICATION_TOKEN_TTL_SECONDS
                     (24h). Invites pass INVITE_TOKEN_TTL_SECONDS (7 days).

    Returns:
        The raw token. Only its hash is stored.
    """
    ttl = ttl_seconds or settings.VERIFICATION_TOKEN_TTL_SECONDS
    raw_token = random_token(ONE_TIME_TOKEN_BYTES)
    now = utc_now()
    db.add(EmailVerificationToken(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        created_at=now,
        expires_at=now + timedelta(seconds=ttl),
    ))
    await db.flush()
    return raw_token


async def issue_password_reset_token(
    db: AsyncSession,
    user_id: uuid.UUID,
    requested_from_ip: str | None = None,
) -> str:
    """Issue a one-hour password reset token. Returns the raw token."""
    raw_token = random_token(ONE_TIME_TOKEN_BYTES)
    now = utc_now()
    db.add(PasswordResetToken(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        created_at=now,
        expires_at=now + timedelta(seconds=settings.PASSWORD_RESET_TOKEN_TTL_SECONDS),
        requested_from_ip=requested_from_ip,
    ))
    await db.flush()
    return raw_token


# ---------------------------------------------------------------------------
# Lookup + claim
# ---------------------------------------------------------------------------

async def _find_usable(db: AsyncSession, model: type[TokenModel], raw_token: str) -> TokenModel:
    if not raw_token:
        raise InvalidTokenError()
    result = await db.execute(
        select(model)
        .where(
            model.token_hash == hash_token(raw_token),
            model.used_at.is_(None),
            model.expires_at > utc_now(),
        )
        .execution_options(populate_existing=True)
    )
    token = result.scalar_one_or_none()
    if token is None:
        raise InvalidTokenError()
    return token


async def _claim(db: AsyncSession, model: type[TokenModel], token: TokenModel) -> None:
    """Mark a token used; raises InvalidTokenError if someone else got there first."""
    result = await db.execute(
        update(model)
        .where(model.id == token.id, model.used_at.is_(None))
        .values(used_at=utc_now())
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise InvalidTokenError()


# ---------------------------------------------------------------------------
# Consumption
# ---------------------------------------------------------------------------

async def consume_verification_token(db: AsyncSession, raw_token: str) -> User:
    """
    Consume an email verification token and activate its user.

    A DISABLED or DELETED account is not reactivated by verification; the
    token is still consumed.

    Raises:
        InvalidTokenError: Unknown, used or expired token.
    """
    token = await _find_usable(db, EmailVerificationToken, raw_token)
    await _claim(db, EmailVerificationToken, token)

    user = await db.get(User, token.user_id, populate_existing=True)
    if user is None:
        raise InvalidTokenError()

    if not user.status.is_blocked:
        now = utc_now()
        user.status = UserStatus.ACTIVE
        user.email_verified_at = user.email_verified_at or now
        user.updated_at = now
    await db.flush()

    logger.info("email_verified", user_id=str(user.id))
    return user


async def consume_password_reset_token(
    db: AsyncSession,
    raw_token: str,
    new_password: str,
) -> User:
    """
    Consume a password reset token and set the new password.

    The account becomes ACTIVE; receiving the reset mail proves ownership of
    the address, so email_verified_at is filled in if it was empty.

    Raises:
        InvalidTokenError: Unknown, used or expired token.
        AccountDisabledError: The account is DISABLED or DELETED.
    """
    token = await _find_usable(db, PasswordResetToken, raw_token)

    user = await db.get(User, token.user_id, populate_existing=True)
    if user is None:
        raise InvalidTokenError()
    if user.status.is_blocked:
        raise AccountDisabledError()

    await _claim(db, PasswordResetToken, token)

    now = utc_now()
    user.password_hash = hash_password(new_password)
    user.status = UserStatus.ACTIVE
    user.email_verified_at = user.email_verified_at or now
    user.updated_at = now
    await db.flush()

    logger.info("password_reset", user_id=str(user.id))
    return user
