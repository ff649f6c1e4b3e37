"""
Role models — the role catalog and role assignments.

Two kinds of role names exist:

  - Built-in roles (RoleName): USER, ADMIN, SUPER_ADMIN. They are a closed
    enumeration with a fixed permission set each (BUILTIN_ROLE_PERMISSIONS),
    are seeded on startup, and cannot be deleted.
  - Custom roles: rows an admin adds to the catalog. Their names must be
    upper-case identifiers and their permissions must come from the closed
    Permission enumeration; both are checked at the API boundary.

Authorization only ever looks at built-in role membership (see
ums.dependencies.require_admin). Custom role permissions are stored and
shown, not enforced.

UserRole is the many-to-many link between users and role names, with the
assigning admin and time. It references the catalog by name, so deleting a
catalog role removes its assignments.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from ums.database import Base


class RoleName(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class Permission(str, enum.Enum):
    READ_SELF = "read_self"
    UPDATE_SELF = "update_self"
    MANAGE_USERS = "manage_users"
    MANAGE_ROLES = "manage_roles"
    MANAGE_GROUPS = "manage_groups"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    ALL_ACCESS = "all_access"


BUILTIN_ROLE_PERMISSIONS: dict[RoleName, list[Permission]] = {
    RoleName.USER: [Permission.READ_SELF, Permission.UPDATE_SELF],
    RoleName.ADMIN: [
        Permission.MANAGE_USERS,
        Permission.MANAGE_ROLES,
        Permission.VIEW_AUDIT_LOGS,
    ],
    RoleName.SUPER_ADMIN: [Permission.ALL_ACCESS],
}

BUILTIN_ROLE_DESCRIPTIONS: dict[RoleName, str] = {
    RoleName.USER: "Standard user access",
    RoleName.ADMIN: "Admin access",
    RoleName.SUPER_ADMIN: "Super admin access",
}

# Roles that pass require_admin
ADMIN_ROLES = frozenset({RoleName.ADMIN.value, RoleName.SUPER_ADMIN.value})


class Role(Base):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
    )

    # List of Permission values
    permissions: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    role_name: Mapped[str] = mapped_column(
        ForeignKey("roles.name", ondelete="CASCADE"),
        primary_key=True,
    )

    # NULL for self-service signup and the seeded admin
    assigned_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
