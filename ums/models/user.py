"""
User model — the authentication identity.

Each User is a login identity: an email (kept both as entered and in a
normalized form used for lookups), an optional Argon2id password hash and a
lifecycle status.

Why is password_hash nullable?
  Accounts created through Google sign-in never get a password. Such users
  can still set one later through the password reset flow.

Status lifecycle:
  - PENDING:  created by signup or invite, waiting for email verification
  - ACTIVE:   verified (or created through a trusted path like Google sign-in)
  - DISABLED: switched off by an admin; all sessions are revoked on the switch
  - DELETED:  tombstone; a new signup at the same email purges the row and
              starts over with a fresh id

Status changes are the only way a user's lifecycle moves; an admin delete
removes the row, and the database cascades to sessions, one-time tokens,
role assignments and group memberships.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ums.database import Base


class UserStatus(str, enum.Enum):
    """
    Lifecycle status of an account.

    Inherits from str so the value serializes naturally to JSON and is
    stored as a plain string.
    """
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    DISABLED = "DISABLED"
    DELETED = "DELETED"

    @property
    def is_blocked(self) -> bool:
        """DISABLED and DELETED accounts may not hold sessions or reset passwords."""
        return self in (UserStatus.DISABLED, UserStatus.DELETED)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Email as the user typed it (used for display and outgoing mail)
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Trimmed + lower-cased email; the unique lookup key
    email_norm: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Argon2id hash (never plaintext); NULL for OAuth-only accounts
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, native_enum=False, length=16),
        default=UserStatus.PENDING,
        nullable=False,
    )

    display_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="User",
    )

    locale: Mapped[str | None] = mapped_column(String(32), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Audit timestamps
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
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
