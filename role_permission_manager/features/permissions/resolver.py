"""
Permission resolution for principals.

A principal's permissions are its direct grants plus the effective
permissions of every role it holds (parents included). Two rows sharing a
(slug, scope) pair count as one permission here.
"""
from typing import Awaitable, Callable, Iterable, Optional

from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.entities import PermissionRecord
from role_permission_manager.features.permissions.exceptions import DuplicateSlugInScopeError
from role_permission_manager.features.permissions.hierarchy import RoleHierarchy
from role_permission_manager.features.permissions.matcher import PermissionMatcher
from role_permission_manager.features.permissions.store import RbacStore
from role_permission_manager.utils import get_logger


log = get_logger(__name__)

RoleNamesLoader = Callable[[str], Awaitable[list[str]]]
PermissionsLoader = Callable[[str], Awaitable[list[PermissionRecord]]]
PermissionCreatedHook = Callable[[PermissionRecord], None]


class PermissionResolver:
    def __init__(
        self,
        store: RbacStore,
        hierarchy: RoleHierarchy,
        matcher: PermissionMatcher,
        config: PermissionConfig,
        on_permission_created: Optional[PermissionCreatedHook] = None,
    ):
        self.store = store
        self.hierarchy = hierarchy
        self.matcher = matcher
        self.config = config
        self.on_permission_created = on_permission_created

    async def role_names_for(self, principal_id: str) -> list[str]:
        return [role.name for role in await self.store.principal_roles(principal_id)]

    async def all_permissions_for(self, principal_id: str) -> list[PermissionRecord]:
        """
        Direct permissions plus role-inherited permissions, deduplicated by (slug, scope).

        Direct grants win when a role grants the same (slug, scope) pair.
        """
        merged: dict[tuple[str, Optional[str]], PermissionRecord] = {}

        direct = await self.store.principal_permissions(principal_id)
        for permission in direct:
            merged.setdefault(permission.identity, permission)

        roles = await self.store.principal_roles(principal_id)
        for role in roles:
            for permission in await self.hierarchy.effective_permissions(role):
                merged.setdefault(permission.identity, permission)

        log.debug(
            f"Principal {principal_id}: {len(direct)} direct permission(s), "
            f"{len(roles)} role(s), {len(merged)} effective permission(s)"
        )
        return list(merged.values())

    async def is_super_admin(
        self, principal_id: str, role_names: Optional[RoleNamesLoader] = None
    ) -> bool:
        """Exact name comparison against the configured super admin role."""
        names = await (role_names or self.role_names_for)(principal_id)
        return self.config.super_admin_role in names

    async def ensure_permission(self, name: str, scope: Optional[str] = None) -> Optional[PermissionRecord]:
        """Create `name` in `scope` if it is missing. Returns the new permission, or None."""
        if not self.config.case_sensitive_permissions:
            name = name.lower()
        if await self.store.find_permission(name, scope) is not None:
            return None
        try:
            permission = await self.store.create_permission(name, name, scope)
        except DuplicateSlugInScopeError:
            # Same name stored under another slug
            return None
        log.info(f"Auto-created permission {permission.slug} (scope={scope})")
        if self.on_permission_created is not None:
            self.on_permission_created(permission)
        return permission

    def grants(
        self,
        permissions: Iterable[PermissionRecord],
        requested_name: str,
        requested_scope: Optional[str] = None,
    ) -> bool:
        return self.matcher.any_match(permissions, requested_name, requested_scope) is not None

    async def has_permission(
        self,
        principal_id: str,
        requested_name: str,
        requested_scope: Optional[str] = None,
        *,
        role_names: Optional[RoleNamesLoader] = None,
        permissions: Optional[PermissionsLoader] = None,
    ) -> bool:
        """
        Check a principal against a permission string.

        Order matters: super admins pass before anything else (no
        auto-creation for them), then a missing permission may be created,
        then the principal's permissions are matched.
        """
        if await self.is_super_admin(principal_id, role_names):
            log.debug(f"Principal {principal_id} is super admin - granted {requested_name}")
            return True

        if self.config.auto_create_permissions:
            await self.ensure_permission(requested_name, requested_scope)

        held = await (permissions or self.all_permissions_for)(principal_id)
        match = self.matcher.any_match(held, requested_name, requested_scope)
        if match is None:
            log.debug(f"Principal {principal_id} denied {requested_name} (scope={requested_scope})")
            return False

        log.debug(f"Principal {principal_id} granted {requested_name} via {match.slug} (scope={match.scope})")
        return True
