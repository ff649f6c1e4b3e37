"""
Development-only router.

Endpoints:
  GET /dev/outbox — The 50 most recent outgoing messages

Mounted by main.py only outside production. The outbox holds live
verification and reset tokens, so it must never be reachable in production.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ums.database import get_db
from ums.schemas.admin import OutboxMessageResponse
from ums.services import mail_service

router = APIRouter()


@router.get(
    "/outbox",
    response_model=list[OutboxMessageResponse],
    summary="[Dev] List outbox messages",
)
async def list_outbox(db: AsyncSession = Depends(get_db)):
    return await mail_service.list_outbox(db, limit=50)
