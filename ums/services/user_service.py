"""
User administration — listing, inspecting, updating and deleting accounts.

Status changes are the only lifecycle mutation an admin makes through
update_user. Setting DISABLED revokes every live session of the user in the
same transaction, so a disabled account is locked out on its very next
request instead of at session expiry.

Deletion is a hard delete: the users row goes, and the database cascades
sessions, tokens, role assignments and group memberships with it. Audit
entries keep the bare user id (they have no foreign keys).
"""

import uuid
from collections import defaultdict

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.exceptions import InvalidRequestError, NotFoundError, ValidationFailedError
from ums.logging import get_logger
from ums.models.group import Group, GroupMember
from ums.models.role import UserRole
from ums.models.session import UserSession
from ums.models.user import User, UserStatus
from ums.services import audit_service, role_service, session_service

logger = get_logger(__name__)

# Statuses an admin may set directly; DELETED is reached only by deletion
ADMIN_SETTABLE_STATUSES = (UserStatus.ACTIVE, UserStatus.DISABLED, UserStatus.PENDING)


async def get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def roles_by_user(db: AsyncSession, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[str]]:
    """Role names for many users in one query."""
    mapping: dict[uuid.UUID, list[str]] = defaultdict(list)
    if not user_ids:
        return mapping
    result = await db.execute(
        select(UserRole.user_id, UserRole.role_name)
        .where(UserRole.user_id.in_(user_ids))
        .order_by(UserRole.role_name)
    )
    for user_id, role_name in result.all():
        mapping[user_id].append(role_name)
    return mapping


async def list_users(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
) -> list[tuple[User, list[str]]]:
    """Users newest first, each with its role names."""
    result = await db.execute(
        select(User)
        .order_by(User.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    users = list(result.scalars().all())
    roles = await roles_by_user(db, [u.id for u in users])
    return [(user, roles.get(user.id, [])) for user in users]


async def get_user_detail(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """
    A user with roles, groups and active sessions.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = await get_user_or_404(db, user_id)

    groups = await db.execute(
        select(Group.id, Group.name)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.name)
    )

    return {
        "user": user,
        "roles": await session_service.get_user_roles(db, user_id),
        "groups": [{"id": gid, "name": name} for gid, name in groups.all()],
        "sessions": await session_service.list_active_sessions(db, user_id),
    }


async def update_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ip: str | None,
    status: str | None = None,
    display_name: str | None = None,
) -> User:
    """
    Change a user's status and/or display name.

    Raises:
        InvalidRequestError: Neither field given.
        ValidationFailedError: Status other than ACTIVE/DISABLED/PENDING.
        NotFoundError: Unknown user.
        ForbiddenError: The user holds SUPER_ADMIN and the actor does not.
    """
    new_status = status.strip().upper() if status else None
    new_name = display_name.strip() if display_name else None
    if not new_status and not new_name:
        raise InvalidRequestError("Nothing to update")

    if new_status and new_status not in {s.value for s in ADMIN_SETTABLE_STATUSES}:
        raise ValidationFailedError("Unsupported status")

    user = await get_user_or_404(db, user_id)
    await role_service.check_super_admin_target(db, user.id, actor_roles)

    if new_status:
        user.status = UserStatus(new_status)
    if new_name:
        user.display_name = new_name
    user.updated_at = utc_now()
    await db.flush()

    revoked = 0
    if new_status == UserStatus.DISABLED.value:
        revoked = await session_service.revoke_user_sessions(db, user.id)

    await audit_service.record(
        db,
        "USER_UPDATED",
        actor_user_id=actor_user_id,
        target_user_id=user.id,
        ip=ip,
        metadata={"status": new_status, "display_name": new_name, "sessions_revoked": revoked},
    )
    logger.info("user_updated", user_id=str(user.id), status=user.status.value)
    return user


async def delete_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ip: str | None,
) -> None:
    """
    Hard-delete a user; dependent rows cascade.

    Raises:
        NotFoundError: Unknown user.
        ForbiddenError: The user holds SUPER_ADMIN and the actor does not.
    """
    user = await get_user_or_404(db, user_id)
    await role_service.check_super_admin_target(db, user.id, actor_roles)
    email = user.email
    await db.execute(
        delete(User)
        .where(User.id == user_id)
        .execution_options(synchronize_session="fetch")
    )
    await audit_service.record(
        db,
        "USER_DELETED",
        actor_user_id=actor_user_id,
        target_user_id=user_id,
        ip=ip,
        metadata={"email": email},
    )
    logger.info("user_deleted", user_id=str(user_id))


async def revoke_user_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> None:
    """
    Revoke one session of a given user.

    Raises:
        NotFoundError: The session does not exist or belongs to someone else.
    """
    result = await db.execute(
        select(UserSession.id)
        .where(UserSession.id == session_id, UserSession.user_id == user_id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Session not found")

    await session_service.revoke_session(db, session_id)
    await audit_service.record(
        db,
        "SESSION_REVOKED",
        actor_user_id=actor_user_id,
        target_user_id=user_id,
        ip=ip,
        metadata={"session_id": str(session_id)},
    )
