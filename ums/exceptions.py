"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The service layer raises domain-specific errors (like InvalidTokenError)
  without importing HTTP concepts. The handler layer then translates them
  into HTTP responses with a consistent body:

      {"detail": "human readable message", "error_type": "MACHINE_CODE"}

  Every error kind carries its HTTP status and machine-readable code as
  class attributes, so a single handler covers the whole hierarchy.

Exception hierarchy:
    UMSError (base)
    ├── UnauthenticatedError     — 401 no session, or session invalid/expired/revoked
    ├── InvalidCredentialsError  — 401 wrong email/password
    ├── ForbiddenError           — 403 authenticated but lacking a role
    ├── CsrfInvalidError         — 403 double-submit CSRF check failed
    ├── AccountDisabledError     — 403 account is DISABLED/DELETED
    ├── EmailNotVerifiedError    — 403 login before verification
    ├── InvalidTokenError        — 400 one-time token unknown, used or expired
    ├── InvalidRequestError      — 400 request is missing something required
    ├── InviteRevokedError       — 400 resending an invite for a deleted account
    ├── ValidationFailedError    — 422 malformed input
    ├── ConflictError            — 409 duplicate resource
    ├── NotFoundError            — 404 missing resource
    └── DatabaseDisabledError    — 503 the store is switched off

Auth and token failures are terminal for the request: nothing is retried.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ums.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class UMSError(Exception):
    """Base exception for all UMS domain errors."""

    status_code: int = 400
    code: str = "ERROR"
    default_detail: str = "An error occurred"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class UnauthenticatedError(UMSError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_detail = "Not authenticated"


class InvalidCredentialsError(UMSError):
    """Raised when login credentials are incorrect or the account is unknown."""
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_detail = "Invalid credentials"


class ForbiddenError(UMSError):
    status_code = 403
    code = "FORBIDDEN"
    default_detail = "Admin role required"


class CsrfInvalidError(UMSError):
    status_code = 403
    code = "CSRF_INVALID"
    default_detail = "CSRF token invalid"


class AccountDisabledError(UMSError):
    status_code = 403
    code = "ACCOUNT_DISABLED"
    default_detail = "Account disabled"


class EmailNotVerifiedError(UMSError):
    status_code = 403
    code = "EMAIL_NOT_VERIFIED"
    default_detail = "Email not verified. Check your inbox."


class InvalidTokenError(UMSError):
    """
    Raised for any unusable one-time token.

    Unknown, already-used and expired tokens all produce this same error so
    the caller cannot tell which case occurred.
    """
    status_code = 400
    code = "INVALID_TOKEN"
    default_detail = "Invalid or expired token"


class InvalidRequestError(UMSError):
    status_code = 400
    code = "INVALID_REQUEST"
    default_detail = "Invalid request"


class InviteRevokedError(UMSError):
    status_code = 400
    code = "INVITE_REVOKED"
    default_detail = "Invite already revoked"


class ValidationFailedError(UMSError):
    status_code = 422
    code = "VALIDATION_FAILED"
    default_detail = "Validation failed"


class ConflictError(UMSError):
    status_code = 409
    code = "CONFLICT"
    default_detail = "Resource already exists"


class NotFoundError(UMSError):
    status_code = 404
    code = "NOT_FOUND"
    default_detail = "Not found"


class DatabaseDisabledError(UMSError):
    """Raised before any handler logic when the store is switched off."""
    status_code = 503
    code = "DB_DISABLED"
    default_detail = "Database disabled"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def error_body(code: str, detail: str) -> dict:
    return {"detail": detail, "error_type": code}


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Domain errors map to their own status/code; request validation errors
    map to VALIDATION_FAILED; anything else is logged and answered with a
    generic INTERNAL_ERROR so internals never leak to the caller.

    This is called once during app creation in main.py.
    """

    @app.exception_handler(UMSError)
    async def ums_error_handler(request: Request, exc: UMSError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        content = error_body("VALIDATION_FAILED", "Validation failed")
        content["errors"] = jsonable_encoder(exc.errors())
        return JSONResponse(status_code=422, content=content)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_api_error",
            method=request.method,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "Internal server error"),
        )
