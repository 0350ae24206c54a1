"""Integration tests for the HTTP routes and route guards."""

import asyncio

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from role_permission_manager.core import config
from role_permission_manager.features.permissions.dependencies import (
    get_current_user_id,
    get_permission_manager,
    require_permission,
    require_role,
)
from role_permission_manager.features.permissions.manager import RolePermissionManager
from role_permission_manager.features.permissions.store import InMemoryRbacStore
from role_permission_manager.main import app


ADMIN_ID = "admin-user"
PREFIX = config.ROUTE_PREFIX


@pytest.fixture
def admin_manager():
    manager = RolePermissionManager(InMemoryRbacStore())

    async def setup():
        await manager.create_role("Super Admin", "super-admin")
        await manager.assign_role(ADMIN_ID, "super-admin")

    asyncio.run(setup())
    return manager


@pytest.fixture
def current_user():
    return {"id": ADMIN_ID}


@pytest.fixture
def client(admin_manager, current_user):
    app.dependency_overrides[get_permission_manager] = lambda: admin_manager
    app.dependency_overrides[get_current_user_id] = lambda: current_user["id"]
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.integration
class TestAppRoutes:
    """Root and health endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["status"] == "online"


@pytest.mark.integration
class TestRoleRoutes:
    """Role management endpoints."""

    def test_create_and_list_roles(self, client):
        response = client.post(f"{PREFIX}/roles", json={"name": "Blog Editor", "description": "Edits"})

        assert response.status_code == 201
        assert response.json()["slug"] == "blog-editor"

        listed = client.get(f"{PREFIX}/roles").json()
        assert {r["slug"] for r in listed} == {"super-admin", "blog-editor"}

    def test_duplicate_role_conflict(self, client):
        client.post(f"{PREFIX}/roles", json={"name": "Editor"})

        response = client.post(f"{PREFIX}/roles", json={"name": "Editor"})

        assert response.status_code == 409
        assert "already exists" in response.json()["detail"]

    def test_missing_name_is_bad_request(self, client):
        response = client.post(f"{PREFIX}/roles", json={"description": "no name"})

        assert response.status_code == 400
        assert "name" in response.json()

    def test_unknown_parent_not_acceptable(self, client):
        response = client.post(f"{PREFIX}/roles", json={"name": "Editor", "parent": "missing"})

        assert response.status_code == 406

    def test_parent_cycle_rejected(self, client):
        client.post(f"{PREFIX}/roles", json={"name": "Admin"})
        client.post(f"{PREFIX}/roles", json={"name": "Editor", "parent": "admin"})

        response = client.put(f"{PREFIX}/roles/admin/parent", json={"parent": "editor"})

        assert response.status_code == 406
        assert "cycle" in response.json()["detail"]

    def test_role_permissions_include_inherited(self, client):
        client.post(f"{PREFIX}/permissions", json={"name": "edit-posts"})
        client.post(f"{PREFIX}/roles", json={"name": "Admin"})
        client.post(f"{PREFIX}/roles", json={"name": "Editor", "parent": "admin"})

        granted = client.post(f"{PREFIX}/roles/admin/permissions", json={"permission": "edit-posts"})
        assert granted.status_code == 200

        response = client.get(f"{PREFIX}/roles/editor/permissions")
        assert [p["slug"] for p in response.json()] == ["edit-posts"]

    def test_unknown_role_permissions_not_found(self, client):
        assert client.get(f"{PREFIX}/roles/missing/permissions").status_code == 404

    def test_grant_unknown_permission_not_found(self, client):
        client.post(f"{PREFIX}/roles", json={"name": "Admin"})

        response = client.post(f"{PREFIX}/roles/admin/permissions", json={"permission": "missing"})

        assert response.status_code == 404

    def test_grant_to_sub_roles_and_revoke(self, client):
        client.post(f"{PREFIX}/permissions", json={"name": "posts.delete"})
        client.post(f"{PREFIX}/roles", json={"name": "Admin"})
        client.post(f"{PREFIX}/roles", json={"name": "Editor", "parent": "admin"})

        client.post(
            f"{PREFIX}/roles/admin/permissions",
            json={"permission": "posts.delete", "include_sub_roles": True},
        )
        response = client.delete(
            f"{PREFIX}/roles/admin/permissions/posts.delete",
            params={"include_sub_roles": True},
        )

        assert response.status_code == 204
        assert client.get(f"{PREFIX}/roles/editor/permissions").json() == []

    def test_sync(self, client):
        for name in ("a", "b", "c"):
            client.post(f"{PREFIX}/permissions", json={"name": name})
        client.post(f"{PREFIX}/roles", json={"name": "Admin"})
        client.put(f"{PREFIX}/roles/admin/permissions", json={"permissions": ["b", "c"]})

        response = client.put(f"{PREFIX}/roles/admin/permissions", json={"permissions": ["a", "b", "zzz"]})

        assert response.status_code == 200
        assert response.json() == {"attached": ["a"], "detached": ["c"]}


@pytest.mark.integration
class TestPermissionRoutes:
    """Permission endpoints."""

    def test_create_and_list_by_scope(self, client):
        created = client.post(f"{PREFIX}/permissions", json={"name": "Billing.Read", "scope": "team-1"})
        client.post(f"{PREFIX}/permissions", json={"name": "posts.read"})

        assert created.status_code == 201
        assert created.json()["slug"] == "billing.read"
        assert [p["slug"] for p in client.get(f"{PREFIX}/permissions", params={"scope": "team-1"}).json()] == ["billing.read"]
        assert len(client.get(f"{PREFIX}/permissions").json()) == 2

    def test_duplicate_permission_conflict(self, client):
        client.post(f"{PREFIX}/permissions", json={"name": "posts.read"})

        response = client.post(f"{PREFIX}/permissions", json={"name": "posts.read"})

        assert response.status_code == 409

    def test_invalid_name_is_bad_request(self, client):
        response = client.post(f"{PREFIX}/permissions", json={"name": "posts/read"})

        assert response.status_code == 400


@pytest.mark.integration
class TestUserRoutes:
    """Role assignment and user permission endpoints."""

    def test_assign_list_and_remove(self, client):
        client.post(f"{PREFIX}/permissions", json={"name": "edit-posts"})
        client.post(f"{PREFIX}/roles", json={"name": "Editor"})
        client.post(f"{PREFIX}/roles/editor/permissions", json={"permission": "edit-posts"})

        assigned = client.post(f"{PREFIX}/users/u2/roles", json={"role": "editor"})
        assert [r["slug"] for r in assigned.json()] == ["editor"]

        permissions = client.get(f"{PREFIX}/users/u2/permissions").json()
        assert permissions["user_id"] == "u2"
        assert [p["slug"] for p in permissions["permissions"]] == ["edit-posts"]

        removed = client.delete(f"{PREFIX}/users/u2/roles/editor")
        assert removed.status_code == 204
        assert client.get(f"{PREFIX}/users/u2/roles").json() == []

    def test_assign_unknown_role_not_found(self, client):
        assert client.post(f"{PREFIX}/users/u2/roles", json={"role": "missing"}).status_code == 404

    def test_permissions_in_scope(self, client, admin_manager):
        client.post(f"{PREFIX}/permissions", json={"name": "billing.read", "scope": "team-1"})
        client.post(f"{PREFIX}/permissions", json={"name": "posts.read"})
        asyncio.run(admin_manager.give_permission_to_user("u2", "billing.read", "team-1"))
        asyncio.run(admin_manager.give_permission_to_user("u2", "posts.read"))

        response = client.get(f"{PREFIX}/users/u2/permissions/team-1").json()

        assert response["scope"] == "team-1"
        assert [p["slug"] for p in response["permissions"]] == ["billing.read"]


@pytest.mark.integration
class TestCheckAndGuards:
    """Permission check endpoint, guards and authentication."""

    def test_super_admin_check(self, client):
        response = client.post(f"{PREFIX}/check", json={"permission": "anything"})

        assert response.status_code == 200
        assert response.json() == {"has_permission": True, "reason": "super admin"}

    def test_check_for_regular_user(self, client, current_user):
        client.post(f"{PREFIX}/permissions", json={"name": "posts.*"})
        client.post(f"{PREFIX}/roles", json={"name": "Editor"})
        client.post(f"{PREFIX}/roles/editor/permissions", json={"permission": "posts.*"})
        client.post(f"{PREFIX}/users/u2/roles", json={"role": "editor"})

        current_user["id"] = "u2"

        allowed = client.post(f"{PREFIX}/check", json={"permission": "posts.publish"}).json()
        denied = client.post(f"{PREFIX}/check", json={"permission": "users.delete"}).json()

        assert allowed == {"has_permission": True, "reason": None}
        assert denied["has_permission"] is False

    def test_guard_forbids_without_permission(self, client, current_user):
        current_user["id"] = "nobody"

        response = client.post(f"{PREFIX}/roles", json={"name": "Editor"})

        assert response.status_code == 403
        assert response.json()["detail"] == "Unauthorized action."

    def test_unauthenticated(self, client):
        del app.dependency_overrides[get_current_user_id]

        response = client.get(f"{PREFIX}/roles")

        assert response.status_code == 401


@pytest.fixture
def guarded_client(admin_manager, current_user):
    guarded = FastAPI()

    @guarded.get("/reports")
    async def reports(user_id: str = Depends(require_permission("reports.view", "reports.*"))):
        return {"user_id": user_id}

    @guarded.get("/moderation")
    async def moderation(user_id: str = Depends(require_role("moderator", "editor"))):
        return {"user_id": user_id}

    guarded.dependency_overrides[get_permission_manager] = lambda: admin_manager
    guarded.dependency_overrides[get_current_user_id] = lambda: current_user["id"]
    return TestClient(guarded)


@pytest.mark.integration
class TestRouteGuards:
    """require_permission / require_role pass on ANY listed item."""

    def test_permission_guard(self, guarded_client, admin_manager, current_user):
        async def setup():
            await admin_manager.create_permission("reports.*")
            await admin_manager.give_permission_to_user("u2", "reports.*")

        asyncio.run(setup())

        current_user["id"] = "u2"
        assert guarded_client.get("/reports").json() == {"user_id": "u2"}

        current_user["id"] = "u3"
        assert guarded_client.get("/reports").status_code == 403

    def test_role_guard(self, guarded_client, admin_manager, current_user):
        async def setup():
            await admin_manager.create_role("Editor", "editor")
            await admin_manager.assign_role("u2", "editor")

        asyncio.run(setup())

        current_user["id"] = "u2"
        assert guarded_client.get("/moderation").status_code == 200

        current_user["id"] = "u3"
        response = guarded_client.get("/moderation")
        assert response.status_code == 403
        assert response.json()["detail"] == "Unauthorized action."
