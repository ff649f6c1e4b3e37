"""
OutboxMessage model — local copy of every outbound email.

Every notification (verification, invite, password reset, seeded admin
credentials) is recorded here whether or not SMTP is configured or
succeeds. The outbox is what tests and local development read; SMTP is a
best-effort extra.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ums.database import Base


class OutboxMessage(Base):
    __tablename__ = "dev_outbox"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    to_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
