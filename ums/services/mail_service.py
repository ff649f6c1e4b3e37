"""
Mail service — outbox first, SMTP best-effort after commit.

Every outbound notification is written to the dev outbox table in the
caller's transaction. When SMTP is configured the message is also queued on
the database session and only handed to aiosmtplib once that transaction
commits, as a background task. A rolled-back request therefore never mails
out a token that does not exist, and a slow relay never holds the write
transaction open or delays the response.

An SMTP failure is logged and swallowed: the outbox row is the source of
truth, and a broken mail relay must not fail a signup or a password reset.
"""

import asyncio
from email.message import EmailMessage

import aiosmtplib
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from ums.clock import utc_now
from ums.config import settings
from ums.logging import get_logger
from ums.models.outbox import OutboxMessage

logger = get_logger(__name__)

# Session.info key holding (to, subject, body) tuples awaiting commit
PENDING_MAIL_KEY = "pending_mail"

# Strong references to running deliveries until they finish
_deliveries: set[asyncio.Task] = set()


async def send_email(
    db: AsyncSession,
    to_email: str,
    subject: str,
    body: str,
) -> OutboxMessage:
    """
    Record a message in the outbox and, if configured, queue it for SMTP.

    Returns:
        The OutboxMessage row.
    """
    message = OutboxMessage(
        to_email=to_email,
        subject=subject,
        body=body,
        created_at=utc_now(),
    )
    db.add(message)
    await db.flush()

    if settings.smtp_configured:
        db.info.setdefault(PENDING_MAIL_KEY, []).append((to_email, subject, body))

    return message


@event.listens_for(Session, "after_commit")
def _deliver_after_commit(session: Session) -> None:
    pending = session.info.pop(PENDING_MAIL_KEY, None)
    if not pending:
        return
    loop = asyncio.get_running_loop()
    for to_email, subject, body in pending:
        task = loop.create_task(_send_smtp(to_email, subject, body))
        _deliveries.add(task)
        task.add_done_callback(_deliveries.discard)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    dropped = session.info.pop(PENDING_MAIL_KEY, None)
    if dropped:
        logger.info("smtp_discarded", count=len(dropped))


async def drain() -> None:
    """Wait for every SMTP delivery scheduled so far to finish."""
    while _deliveries:
        await asyncio.gather(*list(_deliveries))


async def _send_smtp(to_email: str, subject: str, body: str) -> bool:
    mail = EmailMessage()
    mail["From"] = settings.SMTP_FROM
    mail["To"] = to_email
    mail["Subject"] = subject
    mail.set_content(body)

    try:
        await aiosmtplib.send(
            mail,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_SECURE,
            start_tls=not settings.SMTP_SECURE,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.warning(
            "smtp_send_failed",
            host=settings.SMTP_HOST,
            subject=subject,
            error=str(exc),
        )
        return False

    logger.info("smtp_sent", subject=subject)
    return True


async def list_outbox(db: AsyncSession, limit: int = 50) -> list[OutboxMessage]:
    """Most recent outbox messages, newest first."""
    result = await db.execute(
        select(OutboxMessage)
        .order_by(OutboxMessage.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
