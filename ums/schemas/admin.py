"""
Pydantic schemas for the admin surface: invites, roles, groups, settings,
audit logs and the dev outbox.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field


class OkResponse(BaseModel):
    ok: bool = True


# ---- Invites ----

class InviteCreateRequest(BaseModel):
    email: EmailStr
    role: str = Field(default="USER", max_length=64)
    display_name: str | None = Field(default=None, max_length=200)


class InviteCreatedResponse(BaseModel):
    id: uuid.UUID
    status: str


class InviteResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    role: str
    sent_at: datetime
    expires_at: datetime | None
    status: str


# ---- Roles ----

class RoleCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=500)
    # A list, or a comma-separated string
    permissions: list[str] | str


class RoleUpdateRequest(BaseModel):
    description: str | None = Field(default=None, max_length=500)
    permissions: list[str] | str


class RoleResponse(BaseModel):
    name: str
    description: str
    permissions: list[str]
    users: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ---- Groups ----

class GroupCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class GroupUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class GroupMemberRequest(BaseModel):
    user_id: uuid.UUID


class GroupResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MemberSample(BaseModel):
    user_id: uuid.UUID
    display_name: str
    email: str


class GroupListItem(GroupResponse):
    members: int
    member_sample: list[MemberSample]


class GroupMemberResponse(BaseModel):
    id: uuid.UUID
    display_name: str
    email: str
    status: str
    added_at: datetime


class GroupDetailResponse(GroupResponse):
    members: list[GroupMemberResponse]


# ---- Audit logs / outbox ----

class AuditLogResponse(BaseModel):
    id: uuid.UUID
    action: str
    actor_email: str
    target_email: str
    ip: str
    created_at: datetime
    metadata: dict[str, Any]


class OutboxMessageResponse(BaseModel):
    id: uuid.UUID
    to_email: str
    subject: str
    body: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ---- Analytics ----

class AnalyticsSummary(BaseModel):
    total_users: int
    active_now: int
    new_this_month: int
    pending_invites: int


class LabelValue(BaseModel):
    label: str
    value: int


class UserGrowthPoint(BaseModel):
    date: str
    day: str
    signups: int
    active: int


class LoginActivityPoint(BaseModel):
    date: str
    day: str
    success: int


class AnalyticsResponse(BaseModel):
    summary: AnalyticsSummary
    role_distribution: list[LabelValue]
    status_distribution: list[LabelValue]
    user_growth: list[UserGrowthPoint]
    login_activity: list[LoginActivityPoint]
    recent_activity: list[AuditLogResponse]
