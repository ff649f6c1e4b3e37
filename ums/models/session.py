"""
UserSession model — one authenticated browser session.

The raw session token only ever exists in the client's HttpOnly cookie; the
table stores its SHA-256 hex digest. A leaked database dump therefore
cannot be replayed as a cookie.

Validity rule:
    a session is valid  <=>  revoked_at IS NULL  AND  expires_at > now

Expired and revoked sessions are both terminal and look identical to
validation. Nothing sweeps old rows; expiry is checked lazily on every read.

The class is named UserSession to keep it apart from SQLAlchemy's Session.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from ums.database import Base


class UserSession(Base):
    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # sha256(raw token); the raw value is never persisted
    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Compared against both the csrf cookie and the x-csrf-token header
    csrf_token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    # Freshness hint only; written best-effort on each authenticated request
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Client details for the admin "active sessions" view and the audit trail
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
