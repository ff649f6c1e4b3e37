"""
AuditLog model — append-only record of security-relevant actions.

Rows are written once (ums.services.audit_service.record) and never updated
or deleted by the application. actor_user_id / target_user_id are plain
columns, not foreign keys: deleting a user leaves the history of what was
done to or by that account untouched.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from ums.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # e.g. "LOGIN_SUCCESS", "USER_UPDATED", "ROLE_DELETED"
    action: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # NULL actor = the system itself (e.g. email verification)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    target_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)

    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    # "metadata" is reserved on declarative classes, hence the attribute name
    metadata_json: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )
