"""
Startup seeding — built-in roles and a first admin.

Both steps are idempotent and run from the application lifespan:
  - seed_builtin_roles inserts USER, ADMIN and SUPER_ADMIN if missing
    (existing rows, possibly edited by an admin, are left alone)
  - seed_admin_if_empty creates an ACTIVE, verified admin only when the
    users table is empty, and drops its credentials into the outbox
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.config import settings
from ums.logging import get_logger
from ums.models.role import BUILTIN_ROLE_DESCRIPTIONS, BUILTIN_ROLE_PERMISSIONS, Role, RoleName, UserRole
from ums.models.user import User, UserStatus
from ums.security import hash_password, normalize_email
from ums.services import audit_service, mail_service

logger = get_logger(__name__)


async def seed_builtin_roles(db: AsyncSession) -> list[str]:
    """Insert missing built-in roles. Returns the names inserted."""
    result = await db.execute(select(Role.name))
    existing = set(result.scalars().all())

    now = utc_now()
    created = []
    for role_name in RoleName:
        if role_name.value in existing:
            continue
        db.add(Role(
            name=role_name.value,
            description=BUILTIN_ROLE_DESCRIPTIONS[role_name],
            permissions=[p.value for p in BUILTIN_ROLE_PERMISSIONS[role_name]],
            created_at=now,
            updated_at=now,
        ))
        created.append(role_name.value)
    await db.flush()

    if created:
        logger.info("builtin_roles_seeded", roles=created)
    return created


async def seed_admin_if_empty(db: AsyncSession) -> User | None:
    """Create the bootstrap admin when there are no users at all."""
    count = await db.scalar(select(func.count()).select_from(User))
    if count:
        return None

    now = utc_now()
    admin = User(
        email=settings.SEED_ADMIN_EMAIL,
        email_norm=normalize_email(settings.SEED_ADMIN_EMAIL),
        email_verified_at=now,
        password_hash=hash_password(settings.SEED_ADMIN_PASSWORD),
        status=UserStatus.ACTIVE,
        display_name="Admin",
        created_at=now,
        updated_at=now,
    )
    db.add(admin)
    await db.flush()

    for role_name in (RoleName.ADMIN, RoleName.USER):
        db.add(UserRole(user_id=admin.id, role_name=role_name.value, assigned_at=now))

    await mail_service.send_email(
        db,
        admin.email,
        "Admin account created",
        "An admin account was created for this installation.\n\n"
        f"Email: {settings.SEED_ADMIN_EMAIL}\n"
        f"Password: {settings.SEED_ADMIN_PASSWORD}\n\n"
        "Change this password after the first login.\n",
    )
    await audit_service.record(db, "ADMIN_SEEDED", target_user_id=admin.id)

    logger.info("admin_seeded", user_id=str(admin.id), email=admin.email)
    return admin


async def run(db: AsyncSession) -> None:
    await seed_builtin_roles(db)
    await seed_admin_if_empty(db)
