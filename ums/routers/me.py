"""
Current-user router.

Endpoints:
  GET /me — The caller's identity, live role set and CSRF token
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ums.context import ActiveSession
from ums.database import get_db
from ums.dependencies import get_current_session
from ums.exceptions import UnauthenticatedError
from ums.schemas.auth import MeResponse
from ums.services import auth_service

router = APIRouter()


@router.get("/me", response_model=MeResponse, summary="Get the current user")
async def get_me(
    session: ActiveSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """
    Return the authenticated user.

    The CSRF token is included so a client that lost the readable cookie
    can still send the x-csrf-token header.
    """
    user = await auth_service.get_profile(db, session.user_id)
    if user is None:
        raise UnauthenticatedError()
    return MeResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        status=user.status.value,
        roles=session.roles,
        csrf_token=session.csrf_token,
        email_verified_at=user.email_verified_at,
        created_at=user.created_at,
        session_expires_at=session.expires_at,
    )
