"""
Admin analytics — headline counts and 7-day activity for the admin dashboard.

Everything is computed on request from the users, sessions, user_roles and
audit_logs tables; nothing is cached or pre-aggregated. Daily series cover
the last seven UTC calendar days, oldest first, with today last.

  summary              non-deleted users, users seen in the last 24h,
                       signups in the last 30 days, PENDING users
  role_distribution    assignments per role name, most common first
  status_distribution  non-deleted users per status
  user_growth          per day: signups and distinct users seen
  login_activity       per day: successful password and Google logins
  recent_activity      the 10 newest audit entries
"""

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.models.audit_log import AuditLog
from ums.models.role import UserRole
from ums.models.session import UserSession
from ums.models.user import User, UserStatus
from ums.services import audit_service

DAY = timedelta(days=1)
SERIES_DAYS = 7
RECENT_ACTIVITY_LIMIT = 10
LOGIN_ACTIONS = ("LOGIN_SUCCESS", "LOGIN_SUCCESS_GOOGLE")


async def _count(db: AsyncSession, query) -> int:
    return int(await db.scalar(query) or 0)


def _day_windows(now: datetime) -> list[tuple[datetime, datetime]]:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    starts = [today - DAY * i for i in range(SERIES_DAYS - 1, -1, -1)]
    return [(start, start + DAY) for start in starts]


async def get_analytics(db: AsyncSession) -> dict:
    """Build the admin dashboard payload."""
    now = utc_now()

    total_users = await _count(
        db, select(func.count()).select_from(User).where(User.status != UserStatus.DELETED),
    )
    active_now = await _count(
        db,
        select(func.count(func.distinct(UserSession.user_id)))
        .where(UserSession.revoked_at.is_(None), UserSession.last_seen_at > now - DAY),
    )
    new_this_month = await _count(
        db, select(func.count()).select_from(User).where(User.created_at > now - DAY * 30),
    )
    pending = await _count(
        db, select(func.count()).select_from(User).where(User.status == UserStatus.PENDING),
    )

    role_rows = await db.execute(
        select(UserRole.role_name, func.count().label("n"))
        .group_by(UserRole.role_name)
        .order_by(func.count().desc(), UserRole.role_name)
    )
    status_rows = await db.execute(
        select(User.status, func.count())
        .where(User.status != UserStatus.DELETED)
        .group_by(User.status)
        .order_by(User.status)
    )

    user_growth = []
    login_activity = []
    for start, end in _day_windows(now):
        day = {"date": start.date().isoformat(), "day": start.strftime("%a")}
        signups = await _count(
            db,
            select(func.count()).select_from(User)
            .where(User.created_at >= start, User.created_at < end),
        )
        active = await _count(
            db,
            select(func.count(func.distinct(UserSession.user_id)))
            .where(UserSession.last_seen_at >= start, UserSession.last_seen_at < end),
        )
        logins = await _count(
            db,
            select(func.count()).select_from(AuditLog)
            .where(
                AuditLog.action.in_(LOGIN_ACTIONS),
                AuditLog.created_at >= start,
                AuditLog.created_at < end,
            ),
        )
        user_growth.append({**day, "signups": signups, "active": active})
        login_activity.append({**day, "success": logins})

    return {
        "summary": {
            "total_users": total_users,
            "active_now": active_now,
            "new_this_month": new_this_month,
            "pending_invites": pending,
        },
        "role_distribution": [
            {"label": name, "value": count} for name, count in role_rows.all()
        ],
        "status_distribution": [
            {"label": status.value, "value": count} for status, count in status_rows.all()
        ],
        "user_growth": user_growth,
        "login_activity": login_activity,
        "recent_activity": await audit_service.list_logs(db, limit=RECENT_ACTIVITY_LIMIT),
    }
