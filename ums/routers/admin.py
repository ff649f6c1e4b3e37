"""
Admin router — user, invite, role, group, settings and audit log management.

Every endpoint requires ADMIN or SUPER_ADMIN. Read endpoints use
require_admin; every state-changing endpoint uses require_admin_csrf, so it
also needs the double-submit CSRF header.

Endpoints:
  GET    /admin/users                               — List users with roles
  POST   /admin/users                               — Invite a user
  GET    /admin/users/{user_id}                     — User detail
  PATCH  /admin/users/{user_id}                     — Change status / name
  DELETE /admin/users/{user_id}                     — Hard-delete a user
  DELETE /admin/users/{user_id}/sessions/{sid}      — Revoke one session
  POST   /admin/users/{user_id}/roles               — Assign a role
  DELETE /admin/users/{user_id}/roles/{role_name}   — Remove a role
  GET    /admin/invites                             — List invites
  POST   /admin/invites                             — Invite a user
  POST   /admin/invites/{user_id}/resend            — Resend an invite
  GET    /admin/roles                               — List roles
  POST   /admin/roles                               — Create a role
  PATCH  /admin/roles/{name}                        — Update a role
  DELETE /admin/roles/{name}                        — Delete a custom role
  GET    /admin/groups                              — List groups
  POST   /admin/groups                              — Create a group
  GET    /admin/groups/{group_id}                   — Group detail
  PATCH  /admin/groups/{group_id}                   — Update a group
  DELETE /admin/groups/{group_id}                   — Delete a group
  POST   /admin/groups/{group_id}/members           — Add a member
  DELETE /admin/groups/{group_id}/members/{user_id} — Remove a member
  GET    /admin/settings                            — Organization settings
  PATCH  /admin/settings                            — Deep-merge settings
  GET    /admin/audit-logs                          — Search audit logs (JSON/CSV)
  GET    /admin/analytics                           — Dashboard counts and 7-day activity

By consolidating all admin routes in one router, we avoid route-ordering
conflicts that arise when multiple routers share a prefix and have
overlapping parameterized paths.
"""

import uuid
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ums.context import ActiveSession, RequestContext
from ums.database import get_db
from ums.dependencies import get_request_context, require_admin, require_admin_csrf
from ums.schemas.admin import (
    AnalyticsResponse,
    AuditLogResponse,
    GroupCreateRequest,
    GroupDetailResponse,
    GroupListItem,
    GroupMemberRequest,
    GroupMemberResponse,
    GroupResponse,
    GroupUpdateRequest,
    InviteCreatedResponse,
    InviteCreateRequest,
    InviteResponse,
    OkResponse,
    RoleCreateRequest,
    RoleResponse,
    RoleUpdateRequest,
)
from ums.schemas.user import (
    RoleAssignRequest,
    SessionResponse,
    UserDetailResponse,
    UserListItem,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from ums.services import (
    analytics_service,
    audit_service,
    group_service,
    invite_service,
    role_service,
    settings_service,
    user_service,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.get("/users", response_model=UserListResponse, summary="[Admin] List users")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Users newest first, each with its role names (one batched role query)."""
    rows = await user_service.list_users(db, page=page, limit=limit)
    users = [
        UserListItem.model_validate(user).model_copy(update={"roles": roles})
        for user, roles in rows
    ]
    return UserListResponse(users=users, page=page, limit=limit)


@router.post(
    "/users",
    response_model=InviteCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Invite a user",
)
async def create_user(
    body: InviteCreateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    user = await invite_service.create_invite(
        db, str(body.email), admin.user_id, admin.roles, ctx,
        role=body.role, display_name=body.display_name,
    )
    return InviteCreatedResponse(id=user.id, status=user.status.value)


@router.get(
    "/users/{user_id}",
    response_model=UserDetailResponse,
    summary="[Admin] Get a user with roles, groups and sessions",
)
async def get_user(
    user_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    detail = await user_service.get_user_detail(db, user_id)
    return UserDetailResponse(
        user=UserResponse.model_validate(detail["user"]),
        roles=detail["roles"],
        groups=detail["groups"],
        sessions=[SessionResponse.model_validate(s) for s in detail["sessions"]],
    )


@router.patch("/users/{user_id}", response_model=UserResponse, summary="[Admin] Update a user")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Change a user's status and/or display name.

    Setting **status** to DISABLED revokes all of the user's sessions in the
    same transaction.
    """
    return await user_service.update_user(
        db, user_id, admin.user_id, admin.roles, ctx.ip,
        status=body.status, display_name=body.display_name,
    )


@router.delete("/users/{user_id}", response_model=OkResponse, summary="[Admin] Delete a user")
async def delete_user(
    user_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_user(db, user_id, admin.user_id, admin.roles, ctx.ip)
    return OkResponse()


@router.delete(
    "/users/{user_id}/sessions/{session_id}",
    response_model=OkResponse,
    summary="[Admin] Revoke one of a user's sessions",
)
async def revoke_user_session(
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await user_service.revoke_user_session(db, user_id, session_id, admin.user_id, ctx.ip)
    return OkResponse()


@router.post(
    "/users/{user_id}/roles",
    response_model=OkResponse,
    summary="[Admin] Assign a role to a user",
)
async def assign_role(
    user_id: uuid.UUID,
    body: RoleAssignRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await role_service.assign_role(
        db, user_id, body.role, admin.user_id, admin.roles, ctx.ip,
    )
    return OkResponse()


@router.delete(
    "/users/{user_id}/roles/{role_name}",
    response_model=OkResponse,
    summary="[Admin] Remove a role from a user",
)
async def remove_role(
    user_id: uuid.UUID,
    role_name: str,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await role_service.remove_role(
        db, user_id, role_name, admin.user_id, admin.roles, ctx.ip,
    )
    return OkResponse()


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------

@router.get("/invites", response_model=list[InviteResponse], summary="[Admin] List invites")
async def list_invites(
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await invite_service.list_invites(db)


@router.post(
    "/invites",
    response_model=InviteCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Invite a user",
)
async def create_invite(
    body: InviteCreateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a PENDING user with the given role and mail them a 7-day link.

    An email that only belongs to a DELETED account is reused.
    """
    user = await invite_service.create_invite(
        db, str(body.email), admin.user_id, admin.roles, ctx,
        role=body.role, display_name=body.display_name,
    )
    return InviteCreatedResponse(id=user.id, status=user.status.value)


@router.post(
    "/invites/{user_id}/resend",
    response_model=OkResponse,
    summary="[Admin] Resend an invite",
)
async def resend_invite(
    user_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await invite_service.resend_invite(db, user_id, admin.user_id, admin.roles, ctx)
    return OkResponse()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

@router.get("/roles", response_model=list[RoleResponse], summary="[Admin] List roles")
async def list_roles(
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await role_service.list_roles(db)


@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a role",
)
async def create_role(
    body: RoleCreateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await role_service.create_role(
        db, body.name, body.permissions, admin.user_id, ctx.ip,
        description=body.description,
    )


@router.patch("/roles/{name}", response_model=RoleResponse, summary="[Admin] Update a role")
async def update_role(
    name: str,
    body: RoleUpdateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await role_service.update_role(
        db, name, body.permissions, admin.user_id, ctx.ip,
        description=body.description,
    )


@router.delete("/roles/{name}", response_model=OkResponse, summary="[Admin] Delete a role")
async def delete_role(
    name: str,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await role_service.delete_role(db, name, admin.user_id, ctx.ip)
    return OkResponse()


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

@router.get("/groups", response_model=list[GroupListItem], summary="[Admin] List groups")
async def list_groups(
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await group_service.list_groups(db)
    return [
        GroupListItem(
            **GroupResponse.model_validate(row["group"]).model_dump(),
            members=row["members"],
            member_sample=row["member_sample"],
        )
        for row in rows
    ]


@router.post(
    "/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a group",
)
async def create_group(
    body: GroupCreateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.create_group(
        db, body.name, admin.user_id, ctx.ip, description=body.description,
    )


@router.get("/groups/{group_id}", response_model=GroupDetailResponse, summary="[Admin] Get a group")
async def get_group(
    group_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    detail = await group_service.get_group_detail(db, group_id)
    return GroupDetailResponse(
        **GroupResponse.model_validate(detail["group"]).model_dump(),
        members=[
            GroupMemberResponse(
                id=m["user"].id,
                display_name=m["user"].display_name,
                email=m["user"].email,
                status=m["user"].status.value,
                added_at=m["added_at"],
            )
            for m in detail["members"]
        ],
    )


@router.patch("/groups/{group_id}", response_model=GroupResponse, summary="[Admin] Update a group")
async def update_group(
    group_id: uuid.UUID,
    body: GroupUpdateRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.update_group(
        db, group_id, admin.user_id, ctx.ip,
        name=body.name, description=body.description,
    )


@router.delete("/groups/{group_id}", response_model=OkResponse, summary="[Admin] Delete a group")
async def delete_group(
    group_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await group_service.delete_group(db, group_id, admin.user_id, ctx.ip)
    return OkResponse()


@router.post(
    "/groups/{group_id}/members",
    response_model=OkResponse,
    summary="[Admin] Add a member to a group",
)
async def add_group_member(
    group_id: uuid.UUID,
    body: GroupMemberRequest,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await group_service.add_member(db, group_id, body.user_id, admin.user_id, ctx.ip)
    return OkResponse()


@router.delete(
    "/groups/{group_id}/members/{user_id}",
    response_model=OkResponse,
    summary="[Admin] Remove a member from a group",
)
async def remove_group_member(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    await group_service.remove_member(db, group_id, user_id, admin.user_id, ctx.ip)
    return OkResponse()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get("/settings", response_model=dict[str, Any], summary="[Admin] Get settings")
async def get_settings(
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await settings_service.get_settings(db)


@router.patch("/settings", response_model=dict[str, Any], summary="[Admin] Update settings")
async def update_settings(
    changes: dict[str, Any] = Body(...),
    admin: ActiveSession = Depends(require_admin_csrf),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Deep-merge the given keys into the stored settings and return the result."""
    return await settings_service.update_settings(db, changes, admin.user_id, ctx.ip)


# ---------------------------------------------------------------------------
# Audit logs
# ---------------------------------------------------------------------------

@router.get(
    "/audit-logs",
    response_model=list[AuditLogResponse],
    summary="[Admin] Search audit logs",
)
async def list_audit_logs(
    search: str | None = Query(default=None, max_length=200),
    user_id: uuid.UUID | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    output_format: Literal["json", "csv"] = Query(default="json", alias="format"),
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Audit entries newest first.

    **search** matches the action and the actor and target emails,
    case-insensitively. With **format=csv** the result is returned as a
    CSV attachment instead of JSON.
    """
    logs = await audit_service.list_logs(db, search=search, user_id=user_id, page=page, limit=limit)
    if output_format == "csv":
        return PlainTextResponse(
            audit_service.to_csv(logs),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="audit-logs.csv"'},
        )
    return logs


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

@router.get("/analytics", response_model=AnalyticsResponse, summary="[Admin] Dashboard analytics")
async def get_analytics(
    admin: ActiveSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Headline user counts, role and status distributions, 7-day signup,
    activity and login series, and the 10 newest audit entries.
    """
    return await analytics_service.get_analytics(db)
