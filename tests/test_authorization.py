"""
Tests for authorization boundaries — authentication, admin role enforcement
and CSRF on admin mutations.

These tests verify three security properties:

1. **Authentication first**: every /admin/* endpoint answers 401 to an
   anonymous caller before anything else happens.

2. **Role enforcement**: a logged-in USER gets 403 on every /admin/*
   endpoint. Roles are re-read on each request, so granting or removing
   ADMIN takes effect on the caller's very next request, without a new login.

3. **Lockout**: an admin disabling a user revokes that user's sessions
   immediately, and only a SUPER_ADMIN can grant or remove SUPER_ADMIN.
"""

import uuid

import pytest
from sqlalchemy import delete, select

from ums.config import settings
from ums.models.role import RoleName, UserRole
from ums.models.session import UserSession
from ums.models.user import User, UserStatus

ADMIN_READS = [
    "/admin/users",
    "/admin/invites",
    "/admin/roles",
    "/admin/groups",
    "/admin/settings",
    "/admin/audit-logs",
    "/admin/analytics",
]


class TestAnonymousAccess:
    """No session: 401 everywhere behind authentication."""

    @pytest.mark.parametrize("path", ADMIN_READS)
    async def test_admin_reads_need_session(self, client, path):
        response = await client.get(path)
        assert response.status_code == 401
        assert response.json()["error_type"] == "UNAUTHENTICATED"

    async def test_admin_mutation_needs_session(self, client):
        response = await client.post("/admin/groups", json={"name": "Ops"})
        assert response.status_code == 401

    async def test_logout_all_needs_session(self, client):
        assert (await client.post("/auth/logout-all")).status_code == 401


class TestNonAdminAccess:
    """A plain USER cannot reach any admin endpoint."""

    @pytest.mark.parametrize("path", ADMIN_READS)
    async def test_user_forbidden_on_reads(self, user_client, path):
        response = await user_client.get(path)
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

    async def test_user_forbidden_on_mutation(self, user_client):
        response = await user_client.post("/admin/groups", json={"name": "Ops"})
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

    async def test_user_cannot_promote_self(self, user_client):
        me = (await user_client.get("/me")).json()
        response = await user_client.post(
            f"/admin/users/{me['id']}/roles", json={"role": "ADMIN"},
        )
        assert response.status_code == 403

    async def test_custom_role_does_not_grant_admin(
        self, admin_client, make_client, create_user, login_as
    ):
        """Custom role permissions are informational; only ADMIN / SUPER_ADMIN pass."""
        created = await admin_client.post(
            "/admin/roles",
            json={"name": "AUDITOR", "permissions": ["view_audit_logs", "manage_users"]},
        )
        assert created.status_code == 201

        user_id = await create_user("aud@example.com", "AuditPass1!")
        assigned = await admin_client.post(
            f"/admin/users/{user_id}/roles", json={"role": "AUDITOR"},
        )
        assert assigned.status_code == 200

        auditor = await make_client()
        await login_as(auditor, "aud@example.com", "AuditPass1!")
        assert (await auditor.get("/admin/audit-logs")).status_code == 403


class TestRoleChangesApplyImmediately:

    async def test_removed_admin_role_is_enforced_on_next_request(
        self, admin_client, session_factory
    ):
        assert (await admin_client.get("/admin/users")).status_code == 200

        async with session_factory() as session:
            await session.execute(
                delete(UserRole).where(UserRole.role_name == RoleName.ADMIN.value)
            )
            await session.commit()

        response = await admin_client.get("/admin/users")
        assert response.status_code == 403

    async def test_granted_admin_role_is_enforced_on_next_request(
        self, admin_client, make_client, create_user, login_as
    ):
        user_id = await create_user("later@example.com", "LaterPass1!")
        later = await make_client()
        await login_as(later, "later@example.com", "LaterPass1!")
        assert (await later.get("/admin/users")).status_code == 403

        response = await admin_client.post(
            f"/admin/users/{user_id}/roles", json={"role": "ADMIN"},
        )
        assert response.status_code == 200

        assert (await later.get("/admin/users")).status_code == 200
        assert "ADMIN" in (await later.get("/me")).json()["roles"]


class TestAdminCsrf:
    """Admin mutations require the CSRF header; admin reads do not."""

    async def test_admin_mutation_without_header(self, admin_client):
        del admin_client.headers[settings.CSRF_HEADER]
        response = await admin_client.post("/admin/groups", json={"name": "Ops"})
        assert response.status_code == 403
        assert response.json()["error_type"] == "CSRF_INVALID"

    async def test_admin_mutation_with_wrong_header(self, admin_client):
        admin_client.headers[settings.CSRF_HEADER] = "forged"
        response = await admin_client.patch("/admin/settings", json={"branding": {}})
        assert response.status_code == 403

    async def test_admin_read_without_header(self, admin_client):
        del admin_client.headers[settings.CSRF_HEADER]
        assert (await admin_client.get("/admin/groups")).status_code == 200


class TestDisableRevokesSessions:

    async def test_disable_locks_user_out(self, admin_client, make_client, create_user, login_as):
        user_id = await create_user("victim@example.com", "VictimPass1!")
        browser_1 = await make_client()
        browser_2 = await make_client()
        await login_as(browser_1, "victim@example.com", "VictimPass1!")
        await login_as(browser_2, "victim@example.com", "VictimPass1!", remember=True)

        response = await admin_client.patch(
            f"/admin/users/{user_id}", json={"status": "DISABLED"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "DISABLED"

        assert (await browser_1.get("/me")).status_code == 401
        assert (await browser_2.get("/me")).status_code == 401

        relogin = await browser_1.post(
            "/auth/login", json={"email": "victim@example.com", "password": "VictimPass1!"},
        )
        assert relogin.status_code == 403
        assert relogin.json()["error_type"] == "ACCOUNT_DISABLED"

    async def test_rename_does_not_revoke(self, admin_client, user_client):
        me = (await user_client.get("/me")).json()
        response = await admin_client.patch(
            f"/admin/users/{me['id']}", json={"display_name": "Renamed"},
        )
        assert response.status_code == 200
        assert (await user_client.get("/me")).status_code == 200

    async def test_admin_revokes_single_session(
        self, admin_client, make_client, create_user, login_as, session_factory
    ):
        user_id = await create_user("two@example.com", "TwoPass123!")
        first = await make_client()
        second = await make_client()
        await login_as(first, "two@example.com", "TwoPass123!")
        await login_as(second, "two@example.com", "TwoPass123!")

        async with session_factory() as session:
            result = await session.execute(
                select(UserSession.id)
                .where(UserSession.user_id == user_id)
                .order_by(UserSession.created_at)
            )
            first_id = result.scalars().first()

        response = await admin_client.delete(f"/admin/users/{user_id}/sessions/{first_id}")
        assert response.status_code == 200

        statuses = {(await first.get("/me")).status_code, (await second.get("/me")).status_code}
        assert statuses == {200, 401}

    async def test_revoke_session_of_other_user(self, admin_client, create_user, session_factory):
        user_id = await create_user("someone@example.com")
        response = await admin_client.delete(f"/admin/users/{user_id}/sessions/{uuid.uuid4()}")
        assert response.status_code == 404


class TestSuperAdminGuard:
    """Only SUPER_ADMIN can grant, remove or invite as SUPER_ADMIN, or touch a SUPER_ADMIN account."""

    async def test_admin_cannot_grant_super_admin(self, admin_client, create_user):
        user_id = await create_user("target@example.com")
        response = await admin_client.post(
            f"/admin/users/{user_id}/roles", json={"role": "SUPER_ADMIN"},
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

    async def test_admin_cannot_remove_super_admin(self, admin_client, create_user):
        user_id = await create_user(
            "root@example.com", roles=(RoleName.SUPER_ADMIN, RoleName.USER),
        )
        response = await admin_client.delete(f"/admin/users/{user_id}/roles/SUPER_ADMIN")
        assert response.status_code == 403

    async def test_super_admin_can_grant_super_admin(
        self, make_client, create_user, login_as
    ):
        await create_user(
            "root@example.com", "RootPass123!", roles=(RoleName.SUPER_ADMIN,),
        )
        target_id = await create_user("target@example.com")
        root = await make_client()
        await login_as(root, "root@example.com", "RootPass123!")

        response = await root.post(
            f"/admin/users/{target_id}/roles", json={"role": "SUPER_ADMIN"},
        )
        assert response.status_code == 200

        detail = await root.get(f"/admin/users/{target_id}")
        assert "SUPER_ADMIN" in detail.json()["roles"]

    @pytest.mark.parametrize("path", ["/admin/users", "/admin/invites"])
    async def test_admin_cannot_invite_as_super_admin(self, admin_client, session_factory, path):
        response = await admin_client.post(
            path, json={"email": "evil@example.com", "role": "SUPER_ADMIN"},
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

        async with session_factory() as session:
            user = (await session.execute(
                select(User).where(User.email_norm == "evil@example.com")
            )).scalar_one_or_none()
            assert user is None
            granted = await session.execute(
                select(UserRole).where(UserRole.role_name == RoleName.SUPER_ADMIN.value)
            )
            assert granted.scalars().all() == []

    async def test_super_admin_can_invite_as_super_admin(
        self, make_client, create_user, login_as
    ):
        await create_user("root@example.com", "RootPass123!", roles=(RoleName.SUPER_ADMIN,))
        root = await make_client()
        await login_as(root, "root@example.com", "RootPass123!")

        response = await root.post(
            "/admin/invites", json={"email": "second@example.com", "role": "SUPER_ADMIN"},
        )
        assert response.status_code == 201

    @pytest.mark.parametrize(
        "method,suffix,payload",
        [
            ("patch", "", {"status": "DISABLED"}),
            ("patch", "", {"display_name": "Renamed"}),
            ("delete", "", None),
            ("post", "/resend", None),
        ],
    )
    async def test_admin_cannot_modify_super_admin_account(
        self, admin_client, create_user, session_factory, method, suffix, payload
    ):
        root_id = await create_user(
            "root@example.com", roles=(RoleName.SUPER_ADMIN, RoleName.USER),
        )
        if suffix == "/resend":
            url = f"/admin/invites/{root_id}/resend"
        else:
            url = f"/admin/users/{root_id}"
        kwargs = {"json": payload} if payload is not None else {}

        response = await getattr(admin_client, method)(url, **kwargs)
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

        async with session_factory() as session:
            root = await session.get(User, root_id)
            assert root is not None
            assert root.status == UserStatus.ACTIVE
            assert root.display_name == "root"

    async def test_super_admin_can_disable_super_admin(
        self, make_client, create_user, login_as
    ):
        await create_user("root@example.com", "RootPass123!", roles=(RoleName.SUPER_ADMIN,))
        other_id = await create_user("other@example.com", roles=(RoleName.SUPER_ADMIN,))
        root = await make_client()
        await login_as(root, "root@example.com", "RootPass123!")

        response = await root.patch(f"/admin/users/{other_id}", json={"status": "DISABLED"})
        assert response.status_code == 200
        assert response.json()["status"] == "DISABLED"
