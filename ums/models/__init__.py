"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from ums.models directly
"""

from ums.models.user import User, UserStatus  # noqa: F401
from ums.models.session import UserSession  # noqa: F401
from ums.models.token import EmailVerificationToken, PasswordResetToken  # noqa: F401
from ums.models.role import (  # noqa: F401
    Role,
    UserRole,
    RoleName,
    Permission,
    ADMIN_ROLES,
    BUILTIN_ROLE_PERMISSIONS,
    BUILTIN_ROLE_DESCRIPTIONS,
)
from ums.models.group import Group, GroupMember  # noqa: F401
from ums.models.audit_log import AuditLog  # noqa: F401
from ums.models.setting import Setting  # noqa: F401
from ums.models.outbox import OutboxMessage  # noqa: F401
