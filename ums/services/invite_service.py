"""
Invites — admin-created accounts that the invitee activates by email.

An invite is simply a PENDING user with a random (unknown) password, one
role, and a 7-day email verification token. Accepting the invite is the
normal verify-email flow; the invitee then sets a password through the
password reset flow.

Invite status is derived, never stored:
  REVOKED   the user row is DELETED
  ACCEPTED  the user is ACTIVE or the latest token was used
  EXPIRED   the latest token has expired
  PENDING   the user is still PENDING with a live token
  SENT      anything else (e.g. a DISABLED invitee)
"""

import uuid

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now, as_utc
from ums.config import settings
from ums.context import RequestContext
from ums.exceptions import ConflictError, InviteRevokedError, NotFoundError, ValidationFailedError
from ums.logging import get_logger
from ums.models.role import RoleName, UserRole
from ums.models.token import EmailVerificationToken
from ums.models.user import User, UserStatus
from ums.security import hash_password, is_valid_email, normalize_email, random_token
from ums.services import audit_service, mail_service, role_service, token_service
from ums.services.user_service import roles_by_user

logger = get_logger(__name__)

INVITE_LIST_LIMIT = 200


def _invite_link(ctx: RequestContext, raw_token: str) -> str:
    return f"{ctx.base_url}/verify-email?token={raw_token}"


def derive_invite_status(user: User, token: EmailVerificationToken | None) -> str:
    if user.status == UserStatus.DELETED:
        return "REVOKED"
    if user.status == UserStatus.ACTIVE or (token is not None and token.used_at is not None):
        return "ACCEPTED"
    if token is not None and as_utc(token.expires_at) < utc_now():
        return "EXPIRED"
    if user.status == UserStatus.PENDING:
        return "PENDING"
    return "SENT"


async def _latest_tokens(
    db: AsyncSession,
    user_ids: list[uuid.UUID],
) -> dict[uuid.UUID, EmailVerificationToken]:
    latest: dict[uuid.UUID, EmailVerificationToken] = {}
    if not user_ids:
        return latest
    result = await db.execute(
        select(EmailVerificationToken)
        .where(EmailVerificationToken.user_id.in_(user_ids))
        .order_by(EmailVerificationToken.created_at.desc())
    )
    for token in result.scalars().all():
        latest.setdefault(token.user_id, token)
    return latest


async def list_invites(db: AsyncSession) -> list[dict]:
    """Recent PENDING, ACTIVE and DELETED users with their derived invite status."""
    result = await db.execute(
        select(User)
        .where(User.status.in_([UserStatus.PENDING, UserStatus.ACTIVE, UserStatus.DELETED]))
        .order_by(User.created_at.desc())
        .limit(INVITE_LIST_LIMIT)
    )
    users = list(result.scalars().all())
    ids = [u.id for u in users]
    tokens = await _latest_tokens(db, ids)
    roles = await roles_by_user(db, ids)

    invites = []
    for user in users:
        token = tokens.get(user.id)
        invites.append({
            "id": user.id,
            "email": user.email,
            "display_name": user.display_name,
            "role": (roles.get(user.id) or [RoleName.USER.value])[0],
            "sent_at": as_utc(token.created_at if token else user.created_at),
            "expires_at": as_utc(token.expires_at) if token else None,
            "status": derive_invite_status(user, token),
        })
    return invites


async def create_invite(
    db: AsyncSession,
    email: str,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ctx: RequestContext,
    role: str | None = None,
    display_name: str | None = None,
) -> User:
    """
    Invite a new user.

    A DELETED row at the same email is reused: it is reset to PENDING with a
    fresh password, its old tokens are discarded and its roles replaced.

    Raises:
        ValidationFailedError: Malformed email.
        NotFoundError: Unknown role.
        ForbiddenError: Inviting as SUPER_ADMIN without holding it.
        ConflictError: A non-deleted account already uses this email.
    """
    email = (email or "").strip()
    if not is_valid_email(email):
        raise ValidationFailedError("Invalid email")
    role_row = await role_service.get_role_or_404(db, role or RoleName.USER.value)
    role_service.check_super_admin_grant(role_row.name, actor_roles)
    name = (display_name or "").strip() or "User"

    existing = await db.execute(
        select(User)
        .where(User.email_norm == normalize_email(email))
        .execution_options(populate_existing=True)
    )
    user = existing.scalar_one_or_none()
    if user is not None and user.status != UserStatus.DELETED:
        raise ConflictError("User already exists")

    now = utc_now()
    # Nobody knows this password; the invitee sets one via password reset
    password_hash = hash_password(random_token(16))

    if user is None:
        user = User(
            email=email,
            email_norm=normalize_email(email),
            created_at=now,
        )
        db.add(user)
    else:
        await db.execute(
            delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id)
        )
        await db.execute(delete(UserRole).where(UserRole.user_id == user.id))
        user.email = email
    user.email_verified_at = None
    user.password_hash = password_hash
    user.status = UserStatus.PENDING
    user.display_name = name
    user.updated_at = now
    await db.flush()

    db.add(UserRole(
        user_id=user.id,
        role_name=role_row.name,
        assigned_by_user_id=actor_user_id,
        assigned_at=now,
    ))

    raw_token = await token_service.issue_verification_token(
        db, user.id, ttl_seconds=settings.INVITE_TOKEN_TTL_SECONDS,
    )
    await mail_service.send_email(
        db,
        email,
        "You have been invited",
        "You have been invited to join the platform.\n\n"
        f"Click here to accept:\n{_invite_link(ctx, raw_token)}\n",
    )
    await audit_service.record(
        db,
        "USER_INVITED",
        actor_user_id=actor_user_id,
        target_user_id=user.id,
        ip=ctx.ip,
        metadata={"email": email, "role": role_row.name},
    )
    logger.info("user_invited", user_id=str(user.id), role=role_row.name)
    return user


async def resend_invite(
    db: AsyncSession,
    user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ctx: RequestContext,
) -> User:
    """
    Send a fresh 7-day invite token and put the user back to PENDING.

    Raises:
        NotFoundError: Unknown user.
        InviteRevokedError: The user is DELETED.
        ForbiddenError: The user holds SUPER_ADMIN and the actor does not.
    """
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError("Invite not found")
    if user.status == UserStatus.DELETED:
        raise InviteRevokedError()
    await role_service.check_super_admin_target(db, user.id, actor_roles)

    raw_token = await token_service.issue_verification_token(
        db, user.id, ttl_seconds=settings.INVITE_TOKEN_TTL_SECONDS,
    )
    await mail_service.send_email(
        db,
        user.email,
        "Invitation resent",
        "You have a pending invitation.\n\n"
        f"Use this link to join:\n{_invite_link(ctx, raw_token)}\n",
    )
    user.status = UserStatus.PENDING
    user.updated_at = utc_now()
    await db.flush()

    await audit_service.record(
        db, "INVITE_RESENT", actor_user_id=actor_user_id, target_user_id=user.id, ip=ctx.ip,
    )
    return user
