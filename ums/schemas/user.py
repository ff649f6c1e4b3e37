"""
Pydantic schemas for User-related admin responses and requests.

These schemas control what user data is exposed through the API.
password_hash is NEVER included in any response schema, and neither are
session token hashes or CSRF values of other users.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ums.models.user import UserStatus


class UserResponse(BaseModel):
    """Public representation of a User (never includes the password hash)."""
    id: uuid.UUID
    email: str
    display_name: str
    status: UserStatus
    email_verified_at: datetime | None
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None

    model_config = {"from_attributes": True}


class UserListItem(UserResponse):
    roles: list[str] = []


class UserListResponse(BaseModel):
    users: list[UserListItem]
    page: int
    limit: int


class SessionResponse(BaseModel):
    """An active session as shown to admins."""
    id: uuid.UUID
    ip: str | None
    user_agent: str | None
    created_at: datetime
    last_seen_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class GroupRef(BaseModel):
    id: uuid.UUID
    name: str


class UserDetailResponse(BaseModel):
    user: UserResponse
    roles: list[str]
    groups: list[GroupRef]
    sessions: list[SessionResponse]


class UserUpdateRequest(BaseModel):
    """Request body for PATCH /admin/users/{id}. At least one field is required."""
    status: str | None = Field(default=None, max_length=16)
    display_name: str | None = Field(default=None, max_length=200)


class RoleAssignRequest(BaseModel):
    role: str = Field(min_length=1, max_length=64)
