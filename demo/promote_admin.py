#!/usr/bin/env python3
"""
One-time script to grant a role (ADMIN by default) to an existing user.
Run on the server.

Usage:
    python demo/promote_admin.py someone@example.com
    python demo/promote_admin.py someone@example.com --role SUPER_ADMIN
"""
import argparse
import asyncio

from sqlalchemy import select

from ums.clock import utc_now
from ums.database import AsyncSessionLocal, engine
from ums.models.role import RoleName, UserRole
from ums.models.user import User
from ums.security import normalize_email


async def promote(email: str, role: RoleName) -> None:
    async with AsyncSessionLocal() as s:
        user = (await s.execute(
            select(User).where(User.email_norm == normalize_email(email))
        )).scalar_one_or_none()
        if user is None:
            print(f"No user with email {email}")
        elif await s.get(UserRole, (user.id, role.value)) is not None:
            print(f"{user.email} already has {role.value}")
        else:
            s.add(UserRole(user_id=user.id, role_name=role.value, assigned_at=utc_now()))
            await s.commit()
            print(f"Granted {role.value} to {user.email}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("email")
    parser.add_argument("--role", choices=[r.value for r in RoleName], default=RoleName.ADMIN.value)
    args = parser.parse_args()
    asyncio.run(promote(args.email, RoleName(args.role)))
