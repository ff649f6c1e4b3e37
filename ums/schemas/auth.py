"""
Pydantic schemas for authentication endpoints.

These schemas define the request/response contracts for the auth API.
Pydantic validates incoming data automatically: if a required field is
missing or the wrong type, FastAPI answers 422 VALIDATION_FAILED before our
code even runs. Raw session tokens never appear in any response body; they
travel only as cookies.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    display_name: str | None = Field(default=None, max_length=200)


class SignupResponse(BaseModel):
    """Signup is accepted, not completed: the email must be verified first."""
    status: str
    user_id: uuid.UUID


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=128)
    remember: bool = False


class LoginResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    roles: list[str]
    csrf_token: str
    expires_at: datetime


class LogoutAllResponse(BaseModel):
    revoked: int


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=1, max_length=320)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=8, max_length=128)


class StatusResponse(BaseModel):
    status: str


class MeResponse(BaseModel):
    """The caller's own identity, roles and CSRF token."""
    id: uuid.UUID
    email: str
    display_name: str
    status: str
    roles: list[str]
    csrf_token: str
    email_verified_at: datetime | None
    created_at: datetime
    session_expires_at: datetime
