"""
Audit service — append-only log of security-relevant actions.

record() adds one AuditLog row to the caller's session, so the entry lands
in the same transaction as the change it describes: if the change rolls
back, so does its audit entry.

Actions written by the application:
  LOGIN_SUCCESS, LOGIN_SUCCESS_GOOGLE, SIGNUP, SIGNUP_GOOGLE, LOGOUT,
  LOGOUT_ALL, EMAIL_VERIFICATION_SENT, EMAIL_VERIFIED,
  PASSWORD_RESET_REQUESTED, PASSWORD_RESET, USER_INVITED, INVITE_RESENT,
  USER_UPDATED, USER_DELETED, SESSION_REVOKED, ROLE_CREATED, ROLE_UPDATED,
  ROLE_DELETED, ROLE_ASSIGNED, ROLE_REMOVED, GROUP_CREATED, GROUP_UPDATED,
  GROUP_DELETED, GROUP_MEMBER_ADDED, GROUP_MEMBER_REMOVED, SETTINGS_UPDATED,
  ADMIN_SEEDED
"""

import csv
import io
import uuid
from typing import Any

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ums.clock import utc_now, as_utc
from ums.models.audit_log import AuditLog
from ums.models.user import User


async def record(
    db: AsyncSession,
    action: str,
    *,
    actor_user_id: uuid.UUID | None = None,
    target_user_id: uuid.UUID | None = None,
    ip: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one audit entry in the current transaction."""
    entry = AuditLog(
        action=action,
        actor_user_id=actor_user_id,
        target_user_id=target_user_id,
        ip=ip,
        created_at=utc_now(),
        metadata_json=metadata or {},
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_logs(
    db: AsyncSession,
    search: str | None = None,
    user_id: uuid.UUID | None = None,
    page: int = 1,
    limit: int = 50,
) -> list[dict]:
    """
    List audit entries, newest first, with actor/target emails resolved.

    Args:
        search: Case-insensitive substring matched against the action and
                the actor and target emails.
        user_id: Only entries where this user is the actor or the target.
        page / limit: 1-based pagination.
    """
    actor = aliased(User)
    target = aliased(User)

    query = (
        select(AuditLog, actor.email, target.email)
        .outerjoin(actor, actor.id == AuditLog.actor_user_id)
        .outerjoin(target, target.id == AuditLog.target_user_id)
    )

    if user_id is not None:
        query = query.where(
            or_(AuditLog.actor_user_id == user_id, AuditLog.target_user_id == user_id)
        )

    needle = (search or "").strip().lower()
    if needle:
        pattern = f"%{needle}%"
        query = query.where(
            or_(
                func.lower(AuditLog.action).like(pattern),
                func.lower(actor.email).like(pattern),
                func.lower(target.email).like(pattern),
            )
        )

    query = (
        query.order_by(AuditLog.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )

    result = await db.execute(query)
    return [
        {
            "id": entry.id,
            "action": entry.action,
            "actor_email": actor_email or "system",
            "target_email": target_email or "",
            "ip": entry.ip or "-",
            "created_at": as_utc(entry.created_at),
            "metadata": entry.metadata_json or {},
        }
        for entry, actor_email, target_email in result.all()
    ]


def to_csv(logs: list[dict]) -> str:
    """Render list_logs() output as CSV (timestamp, action, actor, target, ip)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["timestamp", "action", "actor", "target", "ip"])
    for log in logs:
        writer.writerow([
            log["created_at"].isoformat(),
            log["action"],
            log["actor_email"],
            log["target_email"],
            log["ip"],
        ])
    return buffer.getvalue()
