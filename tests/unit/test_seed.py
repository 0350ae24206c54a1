"""Unit tests for the default role and permission seed."""

import pytest

from scripts.seed_permissions import DEFAULT_PERMISSIONS, DEFAULT_ROLES, seed
from tests.helpers import slugs


@pytest.mark.unit
class TestSeed:
    """Seeding through the manager."""

    @pytest.mark.asyncio
    async def test_creates_roles_and_permissions(self, manager):
        roles = await seed(manager)

        assert set(roles) == set(DEFAULT_ROLES)
        assert len(await manager.get_all_permissions()) == len(DEFAULT_PERMISSIONS)
        assert roles["author"].parent_id == roles["viewer"].id

    @pytest.mark.asyncio
    async def test_roles_inherit_down_the_chain(self, manager):
        await seed(manager)

        editor = slugs(await manager.get_all_permissions_for_role("editor"))
        assert {"posts.read", "posts.create", "posts.publish", "comments.*"} <= editor
        assert "rbac.manage" not in editor

        admin = slugs(await manager.get_all_permissions_for_role("admin"))
        assert admin >= editor
        assert "rbac.manage" in admin

    @pytest.mark.asyncio
    async def test_is_idempotent(self, manager, store):
        first = await seed(manager)
        second = await seed(manager)

        assert first == second
        assert len(store.roles) == len(DEFAULT_ROLES)
        assert len(store.permissions) == len(DEFAULT_PERMISSIONS)
        editor_id = first["editor"].id
        assert len(store.role_permission_links[editor_id]) == len(DEFAULT_ROLES["editor"]["permissions"])

    @pytest.mark.asyncio
    async def test_seeded_super_admin_passes_checks(self, manager):
        await seed(manager)
        await manager.assign_role("root", "super-admin")

        assert await manager.has_permission_to("root", "rbac.manage")
