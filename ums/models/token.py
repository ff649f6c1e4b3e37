"""
One-time token models — email verification and password reset.

Both tables share the same shape (OneTimeTokenMixin):

  - token_hash: SHA-256 of the raw token that was mailed out
  - expires_at: hard deadline
  - used_at:    set exactly once, when the token is consumed

Usable rule:
    used_at IS NULL  AND  expires_at > now

Consumption is terminal. Rows are never deleted by consumption, which keeps
a record of when each token was used.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, declared_attr

from ums.database import Base


class OneTimeTokenMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    @declared_attr
    def user_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class EmailVerificationToken(OneTimeTokenMixin, Base):
    """Issued on signup (24h) and on invite / invite resend (7 days)."""
    __tablename__ = "email_verification_tokens"


class PasswordResetToken(OneTimeTokenMixin, Base):
    """Issued by the forgot-password flow; valid for one hour."""
    __tablename__ = "password_reset_tokens"

    requested_from_ip: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
