"""
Group management — named collections of users for the admin dashboard.
"""

import uuid

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.exceptions import ConflictError, InvalidRequestError, NotFoundError, ValidationFailedError
from ums.models.group import Group, GroupMember
from ums.models.user import User, UserStatus
from ums.services import audit_service

MEMBER_SAMPLE_SIZE = 4


async def get_group_or_404(db: AsyncSession, group_id: uuid.UUID) -> Group:
    group = await db.get(Group, group_id, populate_existing=True)
    if group is None:
        raise NotFoundError("Group not found")
    return group


async def _name_taken(db: AsyncSession, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = select(Group.id).where(Group.name == name)
    if exclude_id is not None:
        query = query.where(Group.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def list_groups(db: AsyncSession) -> list[dict]:
    """Groups by name, each with a member count and the most recently added members."""
    result = await db.execute(
        select(Group, func.count(GroupMember.user_id))
        .outerjoin(GroupMember, GroupMember.group_id == Group.id)
        .group_by(Group.id)
        .order_by(Group.name)
    )
    groups = []
    for group, members in result.all():
        sample = await db.execute(
            select(User.id, User.display_name, User.email)
            .join(GroupMember, GroupMember.user_id == User.id)
            .where(GroupMember.group_id == group.id)
            .order_by(GroupMember.added_at.desc())
            .limit(MEMBER_SAMPLE_SIZE)
        )
        groups.append({
            "group": group,
            "members": members,
            "member_sample": [
                {"user_id": uid, "display_name": name, "email": email}
                for uid, name, email in sample.all()
            ],
        })
    return groups


async def get_group_detail(db: AsyncSession, group_id: uuid.UUID) -> dict:
    group = await get_group_or_404(db, group_id)
    result = await db.execute(
        select(User, GroupMember.added_at)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.added_at.desc())
    )
    return {
        "group": group,
        "members": [{"user": user, "added_at": added_at} for user, added_at in result.all()],
    }


async def create_group(
    db: AsyncSession,
    name: str,
    actor_user_id: uuid.UUID,
    ip: str | None,
    description: str | None = None,
) -> Group:
    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("Group name is required")
    if await _name_taken(db, name):
        raise ConflictError("Group name already exists")

    now = utc_now()
    group = Group(
        name=name,
        description=(description or "").strip(),
        created_at=now,
        updated_at=now,
    )
    db.add(group)
    await db.flush()

    await audit_service.record(
        db, "GROUP_CREATED", actor_user_id=actor_user_id, ip=ip,
        metadata={"id": str(group.id), "name": name},
    )
    return group


async def update_group(
    db: AsyncSession,
    group_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    ip: str | None,
    name: str | None = None,
    description: str | None = None,
) -> Group:
    new_name = name.strip() if name else None
    new_description = description.strip() if description else None
    if not new_name and not new_description:
        raise InvalidRequestError("Nothing to update")

    group = await get_group_or_404(db, group_id)
    if new_name and new_name != group.name:
        if await _name_taken(db, new_name, exclude_id=group.id):
            raise ConflictError("Group name already exists")
        group.name = new_name
    if new_description:
        group.description = new_description
    group.updated_at = utc_now()
    await db.flush()

    await audit_service.record(
        db, "GROUP_UPDATED", actor_user_id=actor_user_id, ip=ip,
        metadata={"id": str(group.id)},
    )
    return group


async def delete_group(
    db: AsyncSession,
    group_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> None:
    group = await get_group_or_404(db, group_id)
    await db.execute(
        delete(Group)
        .where(Group.id == group.id)
        .execution_options(synchronize_session="fetch")
    )
    await audit_service.record(
        db, "GROUP_DELETED", actor_user_id=actor_user_id, ip=ip,
        metadata={"id": str(group_id)},
    )


async def add_member(
    db: AsyncSession,
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> None:
    """
    Add a user to a group. Adding an existing member is a no-op.

    Raises:
        NotFoundError: Unknown group or user.
        ValidationFailedError: The user is DELETED.
    """
    await get_group_or_404(db, group_id)
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError("User not found")
    if user.status == UserStatus.DELETED:
        raise ValidationFailedError("Cannot add deleted user")

    if await db.get(GroupMember, (group_id, user_id)) is None:
        db.add(GroupMember(group_id=group_id, user_id=user_id, added_at=utc_now()))
        await db.flush()

    await audit_service.record(
        db, "GROUP_MEMBER_ADDED", actor_user_id=actor_user_id, target_user_id=user_id, ip=ip,
        metadata={"group_id": str(group_id)},
    )


async def remove_member(
    db: AsyncSession,
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> None:
    await get_group_or_404(db, group_id)
    await db.execute(
        delete(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .execution_options(synchronize_session="fetch")
    )
    await audit_service.record(
        db, "GROUP_MEMBER_REMOVED", actor_user_id=actor_user_id, target_user_id=user_id, ip=ip,
        metadata={"group_id": str(group_id)},
    )
