"""Unit tests for principal permission resolution."""

import pytest

from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.hierarchy import RoleHierarchy
from role_permission_manager.features.permissions.matcher import PermissionMatcher
from role_permission_manager.features.permissions.resolver import PermissionResolver
from tests.helpers import slugs


def make_resolver(store, **overrides):
    config = PermissionConfig(**overrides)
    created = []
    resolver = PermissionResolver(
        store,
        RoleHierarchy(store),
        PermissionMatcher(config),
        config,
        on_permission_created=created.append,
    )
    return resolver, created


@pytest.mark.unit
class TestAllPermissionsFor:
    """Direct grants plus role-inherited permissions."""

    @pytest.mark.asyncio
    async def test_merges_direct_and_inherited(self, store):
        base = await store.create_role("Base", "base")
        child = await store.create_role("Child", "child", parent_id=base.id)
        read = await store.create_permission("posts.read", "posts.read")
        export = await store.create_permission("reports.export", "reports.export")
        await store.attach_role_permissions(base.id, [read.id])
        await store.attach_principal_roles("u1", [child.id])
        await store.attach_principal_permissions("u1", [export.id])

        resolver, _ = make_resolver(store)

        assert slugs(await resolver.all_permissions_for("u1")) == {"posts.read", "reports.export"}

    @pytest.mark.asyncio
    async def test_same_permission_from_two_sources_counted_once(self, store):
        role = await store.create_role("Editor", "editor")
        read = await store.create_permission("posts.read", "posts.read")
        await store.attach_role_permissions(role.id, [read.id])
        await store.attach_principal_roles("u1", [role.id])
        await store.attach_principal_permissions("u1", [read.id])

        resolver, _ = make_resolver(store)

        assert len(await resolver.all_permissions_for("u1")) == 1

    @pytest.mark.asyncio
    async def test_unknown_principal_has_nothing(self, store):
        resolver, _ = make_resolver(store)

        assert await resolver.all_permissions_for("nobody") == []


@pytest.mark.unit
class TestHasPermission:
    """Super admin bypass, auto-creation and matching."""

    @pytest.mark.asyncio
    async def test_super_admin_passes_everything(self, store):
        role = await store.create_role("Super Admin", "super-admin")
        await store.attach_principal_roles("root", [role.id])
        resolver, _ = make_resolver(store)

        assert await resolver.has_permission("root", "anything.at.all")
        assert await resolver.is_super_admin("root")

    @pytest.mark.asyncio
    async def test_super_admin_name_is_exact(self, store):
        role = await store.create_role("super admin", "super-admin")
        await store.attach_principal_roles("u1", [role.id])
        resolver, _ = make_resolver(store)

        assert not await resolver.is_super_admin("u1")

    @pytest.mark.asyncio
    async def test_super_admin_check_skips_auto_creation(self, store):
        role = await store.create_role("Super Admin", "super-admin")
        await store.attach_principal_roles("root", [role.id])
        resolver, created = make_resolver(store, auto_create_permissions=True)

        assert await resolver.has_permission("root", "reports.view")
        assert created == []
        assert await store.find_permission("reports.view") is None

    @pytest.mark.asyncio
    async def test_auto_creates_missing_permission_and_denies(self, store):
        resolver, created = make_resolver(store, auto_create_permissions=True)

        assert not await resolver.has_permission("u1", "Reports.View", "team-1")

        stored = await store.find_permission("reports.view", "team-1")
        assert stored is not None
        assert created == [stored]

    @pytest.mark.asyncio
    async def test_existing_permission_not_created_again(self, store):
        await store.create_permission("reports.view", "reports.view")
        resolver, created = make_resolver(store, auto_create_permissions=True)

        assert await resolver.ensure_permission("reports.view") is None
        assert created == []

    @pytest.mark.asyncio
    async def test_wildcard_through_role(self, store):
        role = await store.create_role("Editor", "editor")
        posts = await store.create_permission("posts.*", "posts.*")
        await store.attach_role_permissions(role.id, [posts.id])
        await store.attach_principal_roles("u1", [role.id])
        resolver, _ = make_resolver(store)

        assert await resolver.has_permission("u1", "posts.publish")
        assert not await resolver.has_permission("u1", "users.delete")

    @pytest.mark.asyncio
    async def test_custom_loaders_are_used(self, store):
        resolver, _ = make_resolver(store)
        read = await store.create_permission("posts.read", "posts.read")

        async def role_names(_principal_id):
            return []

        async def permissions(_principal_id):
            return [read]

        assert await resolver.has_permission("u1", "posts.read", role_names=role_names, permissions=permissions)
