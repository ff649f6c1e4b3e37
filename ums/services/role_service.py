"""
Role catalog and role assignment.

Names and permissions are validated here, at the boundary: a role name is an
upper-case identifier, and every permission must be a Permission value.
Anything else is VALIDATION_FAILED rather than being stored as free text.

The built-in roles (USER, ADMIN, SUPER_ADMIN) can be edited but never
deleted. Granting or taking away SUPER_ADMIN requires the acting admin to
hold SUPER_ADMIN themselves, and so does disabling, deleting or re-inviting
an account that holds it.
"""

import re
import uuid

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from ums.models.role import (
    BUILTIN_ROLE_DESCRIPTIONS,
    BUILTIN_ROLE_PERMISSIONS,
    Permission,
    Role,
    RoleName,
    UserRole,
)
from ums.models.user import User, UserStatus
from ums.services import audit_service

ROLE_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{0,63}$")
PROTECTED_ROLES = frozenset(r.value for r in RoleName)


def normalize_role_name(name: str) -> str:
    normalized = (name or "").strip().upper()
    if not ROLE_NAME_PATTERN.match(normalized):
        raise ValidationFailedError("Role name must be an upper-case identifier")
    return normalized


def normalize_permissions(permissions: list[str] | str | None) -> list[str]:
    """
    Accept a list or a comma-separated string; return validated values.

    Raises:
        ValidationFailedError: Empty list or unknown permission.
    """
    if isinstance(permissions, str):
        permissions = permissions.split(",")
    cleaned = [str(p).strip() for p in permissions or [] if str(p).strip()]
    if not cleaned:
        raise ValidationFailedError("At least one permission is required")

    known = {p.value for p in Permission}
    unknown = [p for p in cleaned if p not in known]
    if unknown:
        raise ValidationFailedError(f"Unknown permission: {', '.join(unknown)}")
    # de-duplicate, keep order
    return list(dict.fromkeys(cleaned))


def _fallback_role(name: str) -> tuple[str, list[str]]:
    try:
        builtin = RoleName(name)
    except ValueError:
        return "Custom role", []
    return (
        BUILTIN_ROLE_DESCRIPTIONS[builtin],
        [p.value for p in BUILTIN_ROLE_PERMISSIONS[builtin]],
    )


async def get_role_or_404(db: AsyncSession, name: str) -> Role:
    role = await db.get(Role, name.strip().upper(), populate_existing=True)
    if role is None:
        raise NotFoundError("Role not found")
    return role


async def list_roles(db: AsyncSession) -> list[dict]:
    """Catalog roles with member counts, plus any assigned name missing from the catalog."""
    counts_result = await db.execute(
        select(UserRole.role_name, func.count(UserRole.user_id))
        .group_by(UserRole.role_name)
    )
    counts = dict(counts_result.all())

    roles_result = await db.execute(select(Role).order_by(Role.name))
    roles = [
        {
            "name": role.name,
            "description": role.description or "",
            "permissions": list(role.permissions or []),
            "users": counts.get(role.name, 0),
            "created_at": role.created_at,
            "updated_at": role.updated_at,
        }
        for role in roles_result.scalars().all()
    ]

    catalog = {r["name"] for r in roles}
    for name in sorted(set(counts) - catalog):
        description, permissions = _fallback_role(name)
        roles.append({
            "name": name,
            "description": description,
            "permissions": permissions,
            "users": counts[name],
            "created_at": None,
            "updated_at": None,
        })
    return roles


async def create_role(
    db: AsyncSession,
    name: str,
    permissions: list[str] | str | None,
    actor_user_id: uuid.UUID,
    ip: str | None,
    description: str | None = None,
) -> Role:
    role_name = normalize_role_name(name)
    perms = normalize_permissions(permissions)

    if await db.get(Role, role_name) is not None:
        raise ConflictError("Role already exists")

    now = utc_now()
    role = Role(
        name=role_name,
        description=(description or "").strip(),
        permissions=perms,
        created_at=now,
        updated_at=now,
    )
    db.add(role)
    await db.flush()

    await audit_service.record(
        db, "ROLE_CREATED", actor_user_id=actor_user_id, ip=ip,
        metadata={"name": role_name, "permissions": perms},
    )
    return role


async def update_role(
    db: AsyncSession,
    name: str,
    permissions: list[str] | str | None,
    actor_user_id: uuid.UUID,
    ip: str | None,
    description: str | None = None,
) -> Role:
    perms = normalize_permissions(permissions)
    role = await get_role_or_404(db, name)

    role.permissions = perms
    if description is not None:
        role.description = description.strip()
    role.updated_at = utc_now()
    await db.flush()

    await audit_service.record(
        db, "ROLE_UPDATED", actor_user_id=actor_user_id, ip=ip,
        metadata={"name": role.name, "permissions": perms},
    )
    return role


async def delete_role(
    db: AsyncSession,
    name: str,
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> None:
    """
    Delete a custom role and every assignment of it.

    Raises:
        ForbiddenError: For USER, ADMIN and SUPER_ADMIN.
        NotFoundError: Unknown role.
    """
    role_name = name.strip().upper()
    if role_name in PROTECTED_ROLES:
        raise ForbiddenError("Protected roles cannot be deleted")
    role = await get_role_or_404(db, role_name)

    await db.execute(delete(UserRole).where(UserRole.role_name == role.name))
    await db.execute(
        delete(Role)
        .where(Role.name == role.name)
        .execution_options(synchronize_session="fetch")
    )
    await audit_service.record(
        db, "ROLE_DELETED", actor_user_id=actor_user_id, ip=ip,
        metadata={"name": role_name},
    )


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

def check_super_admin_grant(role_name: str, actor_roles: list[str]) -> None:
    """
    Refuse to hand out or take away SUPER_ADMIN unless the actor holds it.

    Raises:
        ForbiddenError: role_name is SUPER_ADMIN and the actor lacks it.
    """
    if role_name == RoleName.SUPER_ADMIN.value and RoleName.SUPER_ADMIN.value not in actor_roles:
        raise ForbiddenError("Super admin role required")


async def check_super_admin_target(
    db: AsyncSession,
    user_id: uuid.UUID,
    actor_roles: list[str],
) -> None:
    """
    Refuse to modify a SUPER_ADMIN account unless the actor is one too.

    Raises:
        ForbiddenError: The target holds SUPER_ADMIN and the actor does not.
    """
    if RoleName.SUPER_ADMIN.value in actor_roles:
        return
    if await db.get(UserRole, (user_id, RoleName.SUPER_ADMIN.value)) is not None:
        raise ForbiddenError("Super admin role required")


async def assign_role(
    db: AsyncSession,
    user_id: uuid.UUID,
    role_name: str,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ip: str | None,
) -> bool:
    """
    Give a user a role. Returns False if they already had it.

    Raises:
        NotFoundError: Unknown user or role.
        ValidationFailedError: The user is DELETED.
        ForbiddenError: Granting SUPER_ADMIN without holding it.
    """
    role = await get_role_or_404(db, role_name)
    check_super_admin_grant(role.name, actor_roles)

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.status == UserStatus.DELETED:
        raise ValidationFailedError("Cannot assign a role to a deleted user")

    if await db.get(UserRole, (user_id, role.name)) is not None:
        return False

    db.add(UserRole(
        user_id=user_id,
        role_name=role.name,
        assigned_by_user_id=actor_user_id,
        assigned_at=utc_now(),
    ))
    await db.flush()
    await audit_service.record(
        db, "ROLE_ASSIGNED", actor_user_id=actor_user_id, target_user_id=user_id, ip=ip,
        metadata={"role": role.name},
    )
    return True


async def remove_role(
    db: AsyncSession,
    user_id: uuid.UUID,
    role_name: str,
    actor_user_id: uuid.UUID,
    actor_roles: list[str],
    ip: str | None,
) -> None:
    """
    Take a role away from a user.

    Raises:
        NotFoundError: The user does not hold the role.
        ForbiddenError: Removing SUPER_ADMIN without holding it.
    """
    name = role_name.strip().upper()
    check_super_admin_grant(name, actor_roles)

    result = await db.execute(
        delete(UserRole)
        .where(UserRole.user_id == user_id, UserRole.role_name == name)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise NotFoundError("Role assignment not found")

    await audit_service.record(
        db, "ROLE_REMOVED", actor_user_id=actor_user_id, target_user_id=user_id, ip=ip,
        metadata={"role": name},
    )
