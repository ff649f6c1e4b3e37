"""
FastAPI dependencies for authentication, CSRF and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a chain that every protected endpoint goes through:

  get_request_context (Request -> RequestContext)
      └── get_current_session (RequestContext -> ActiveSession)     [401]
              ├── require_csrf        (double-submit check)         [403]
              └── require_admin       (ADMIN / SUPER_ADMIN)         [403]
                      └── require_admin_csrf (admin + CSRF)         [403]

Nothing is cached between requests. The session is re-validated and the
role set re-read from the store on every call, so a revoked session or a
removed ADMIN role takes effect on the very next request.

If the chain fails, the request is rejected before the route handler runs.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ums.context import ActiveSession, RequestContext, build_request_context
from ums.database import get_db
from ums.exceptions import ForbiddenError
from ums.models.role import ADMIN_ROLES
from ums.services import session_service


def get_request_context(request: Request) -> RequestContext:
    """Capture the caller's ip, user agent, cookies and CSRF header once."""
    return build_request_context(request)


async def get_current_session(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ActiveSession:
    """
    Resolve the session cookie to a live session.

    Raises:
        UnauthenticatedError: No cookie, or the session is unknown, revoked
            or expired.
    """
    return await session_service.assert_authenticated(db, ctx)


async def require_csrf(
    session: ActiveSession = Depends(get_current_session),
    ctx: RequestContext = Depends(get_request_context),
) -> ActiveSession:
    """Authenticated session whose CSRF cookie, header and stored value agree."""
    session_service.assert_csrf(ctx, session)
    return session


def has_admin_role(roles: list[str]) -> bool:
    return any(role in ADMIN_ROLES for role in roles)


async def require_admin(
    session: ActiveSession = Depends(get_current_session),
) -> ActiveSession:
    """
    Require the caller to hold ADMIN or SUPER_ADMIN.

    Raises:
        ForbiddenError: Authenticated, but neither admin role is held.
    """
    if not has_admin_role(session.roles):
        raise ForbiddenError()
    return session


async def require_admin_csrf(
    session: ActiveSession = Depends(require_admin),
    ctx: RequestContext = Depends(get_request_context),
) -> ActiveSession:
    """Admin check plus the CSRF check, for state-changing admin endpoints."""
    session_service.assert_csrf(ctx, session)
    return session
