"""
Role and permission management operations.

RolePermissionManager is the single entry point used by routes, route
guards, the principal helper and scripts. Every mutation calls the store
first and invalidates cache entries only once the store call succeeded.
"""
from typing import Any, Iterable, Optional, Union

from role_permission_manager.features.permissions.cache import CacheKey, CacheKeyKind, PermissionCache
from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord, SyncResult
from role_permission_manager.features.permissions.exceptions import (
    CycleDetectedError,
    InvalidParentError,
    NotFoundError,
)
from role_permission_manager.features.permissions.hierarchy import RoleHierarchy
from role_permission_manager.features.permissions.matcher import PermissionMatcher
from role_permission_manager.features.permissions.resolver import PermissionResolver
from role_permission_manager.features.permissions.store import RbacStore
from role_permission_manager.utils import get_logger, slugify


log = get_logger(__name__)

RoleRef = Union[RoleRecord, str]
PermissionRef = Union[PermissionRecord, str]


def principal_key(principal: Any) -> str:
    """Principals are objects exposing `id` or raw ids."""
    return str(getattr(principal, "id", principal))


class RolePermissionManager:
    def __init__(
        self,
        store: RbacStore,
        config: Optional[PermissionConfig] = None,
        cache: Optional[PermissionCache] = None,
        defer_invalidation: bool = False,
    ):
        self.store = store
        self.config = config or PermissionConfig()
        if cache is None:
            cache = PermissionCache(
                ttl_seconds=self.config.cache_ttl_seconds,
                enabled=self.config.use_cache,
            )
        self.cache = cache
        # Replayed by flush_invalidations() once the store transaction ends
        self.defer_invalidation = defer_invalidation
        self._pending_keys: set[CacheKey] = set()
        self._pending_kinds: set[CacheKeyKind] = set()
        self.matcher = PermissionMatcher(self.config)
        self.hierarchy = RoleHierarchy(store)
        self.resolver = PermissionResolver(
            store,
            self.hierarchy,
            self.matcher,
            self.config,
            on_permission_created=self._forget_permission_lists,
        )

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _normalize(self, value: str) -> str:
        return value if self.config.case_sensitive_permissions else value.lower()

    async def _find_role(self, role: RoleRef) -> Optional[RoleRecord]:
        if isinstance(role, str):
            return await self.store.find_role_by_slug(role)
        if not role.is_persisted:
            return None
        return await self.store.get_role(role.id)

    async def _resolve_role(self, role: RoleRef) -> RoleRecord:
        found = await self._find_role(role)
        if found is None:
            label = role if isinstance(role, str) else role.slug
            raise NotFoundError(f"Role '{label}' does not exist.")
        return found

    async def _resolve_parent(self, parent: RoleRef) -> RoleRecord:
        if not isinstance(parent, str) and not parent.is_persisted:
            raise InvalidParentError("Parent role must be a persisted role.")
        found = await self._find_role(parent)
        if found is None:
            label = parent if isinstance(parent, str) else parent.slug
            raise InvalidParentError(f"Parent role '{label}' does not exist.")
        return found

    async def _resolve_permission(
        self,
        permission: PermissionRef,
        scope: Optional[str] = None,
        *,
        any_scope: bool = False,
        auto_create: bool = False,
    ) -> PermissionRecord:
        if not isinstance(permission, str):
            return permission

        slug = self._normalize(permission)
        # Exact scope first so a revoke finds the record a grant attached
        found = await self.store.find_permission(slug, scope)
        if found is None and any_scope:
            found = await self.store.find_permission(slug, scope, any_scope=True)
        if found is not None:
            return found
        if auto_create:
            return await self.create_permission(permission, permission, scope)
        raise NotFoundError(f"Permission '{permission}' does not exist (scope={scope}).")

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------

    def _invalidate(self, *keys: CacheKey, kind: Optional[CacheKeyKind] = None) -> None:
        self.cache.invalidate_all(keys)
        if kind is not None:
            self.cache.invalidate_kind(kind)
        if self.defer_invalidation:
            self._pending_keys.update(keys)
            if kind is not None:
                self._pending_kinds.add(kind)

    def flush_invalidations(self) -> None:
        """
        Invalidate again every key touched since the last flush.

        With defer_invalidation, call this after the store's transaction
        commits or rolls back: a concurrent reader may have cached the
        previous committed state between the write and the commit.
        """
        keys, kinds = self._pending_keys, self._pending_kinds
        self._pending_keys, self._pending_kinds = set(), set()
        self.cache.invalidate_all(keys)
        for kind in kinds:
            self.cache.invalidate_kind(kind)

    def _forget_roles(self) -> None:
        self._invalidate(CacheKey.all_roles())

    def _forget_permission_lists(self, permission: PermissionRecord) -> None:
        self._invalidate(CacheKey.all_permissions(), CacheKey.scoped_permissions(permission.scope))

    def _forget_inherited_permissions(self) -> None:
        # Any principal may hold the role or one of its sub-roles
        self._invalidate(kind=CacheKeyKind.USER_PERMISSIONS)

    def clear_user_role_cache(self, principal: Any) -> None:
        self._invalidate(*CacheKey.user_role_keys(principal_key(principal)))

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def create_role(
        self,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        parent: Optional[RoleRef] = None,
    ) -> RoleRecord:
        parent_record = await self._resolve_parent(parent) if parent is not None else None
        role = await self.store.create_role(
            name,
            slug or slugify(name),
            description,
            parent_record.id if parent_record else None,
        )
        self._forget_roles()
        log.info(f"Created role {role.slug} (parent={parent_record.slug if parent_record else None})")
        return role

    async def set_role_parent(self, role: RoleRef, parent: Optional[RoleRef]) -> RoleRecord:
        """
        Attach `role` under `parent`, or detach it with parent=None.

        Raises InvalidParentError for transient or unknown parents and
        CycleDetectedError when `parent` is `role` or one of its sub-roles.
        """
        role_record = await self._resolve_role(role)
        parent_record = await self._resolve_parent(parent) if parent is not None else None

        if await self.hierarchy.would_create_cycle(role_record, parent_record):
            raise CycleDetectedError(
                f"Making '{parent_record.slug}' the parent of '{role_record.slug}' creates a cycle."
            )

        updated = await self.store.set_role_parent(
            role_record.id, parent_record.id if parent_record else None
        )
        self._forget_roles()
        self._forget_inherited_permissions()
        log.info(f"Role {updated.slug} parent set to {parent_record.slug if parent_record else None}")
        return updated

    async def get_all_roles(self) -> list[RoleRecord]:
        roles = await self.cache.get_or_compute(CacheKey.all_roles(), self.store.list_roles)
        return list(roles)

    async def get_role_by_slug(self, slug: str) -> Optional[RoleRecord]:
        return await self.store.find_role_by_slug(slug)

    async def get_sub_roles(self, role: RoleRef) -> list[RoleRecord]:
        found = await self._find_role(role)
        if found is None:
            return []
        return await self.hierarchy.descendants(found)

    async def get_all_permissions_for_role(self, role: RoleRef) -> list[PermissionRecord]:
        """Own and inherited permissions. Unknown or transient roles have none."""
        found = await self._find_role(role)
        if found is None:
            return []
        return await self.hierarchy.effective_permissions(found)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def create_permission(
        self,
        name: str,
        slug: Optional[str] = None,
        scope: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PermissionRecord:
        slug = slug or slugify(name)
        permission = await self.store.create_permission(
            self._normalize(name), self._normalize(slug), scope, description
        )
        self._forget_permission_lists(permission)
        log.info(f"Created permission {permission.slug} (scope={scope})")
        return permission

    async def get_all_permissions(self) -> list[PermissionRecord]:
        permissions = await self.cache.get_or_compute(
            CacheKey.all_permissions(), self.store.list_permissions
        )
        return list(permissions)

    async def get_all_permissions_for_scope(self, scope: Optional[str] = None) -> list[PermissionRecord]:
        """Permissions in `scope`; every permission when no scope is given."""
        key = CacheKey.scoped_permissions(scope)
        if key.kind is not CacheKeyKind.SCOPED_PERMISSIONS:
            return await self.get_all_permissions()

        async def compute():
            return await self.store.list_permissions(scope)

        return list(await self.cache.get_or_compute(key, compute))

    async def give_permission_to_role(
        self, role: RoleRef, permission: PermissionRef, scope: Optional[str] = None
    ) -> None:
        role_record = await self._resolve_role(role)
        permission_record = await self._resolve_permission(
            permission, scope, auto_create=self.config.auto_create_permissions
        )
        await self.store.attach_role_permissions(role_record.id, [permission_record.id])
        self._forget_inherited_permissions()
        log.info(f"Gave permission {permission_record.slug} to role {role_record.slug}")

    async def revoke_permission_from_role(
        self, role: RoleRef, permission: PermissionRef, scope: Optional[str] = None
    ) -> None:
        """Detach a permission from a role. Unknown roles or permissions are a no-op."""
        try:
            role_record = await self._resolve_role(role)
            permission_record = await self._resolve_permission(permission, scope, any_scope=scope is None)
        except NotFoundError as exc:
            log.debug(f"Nothing to revoke: {exc.message}")
            return
        await self.store.detach_role_permissions(role_record.id, [permission_record.id])
        self._forget_inherited_permissions()
        log.info(f"Revoked permission {permission_record.slug} from role {role_record.slug}")

    async def sync_permissions(self, role: RoleRef, permissions: Iterable[str]) -> SyncResult:
        """
        Make the role hold exactly the permissions with the given slugs.

        Slugs with no stored permission are ignored.
        """
        role_record = await self._resolve_role(role)
        wanted = await self.store.find_permissions_by_slugs(self._normalize(slug) for slug in permissions)
        before = {p.id: p for p in await self.store.role_permissions(role_record.id)}
        known = {**before, **{p.id: p for p in wanted}}

        attached_ids, detached_ids = await self.store.sync_role_permissions(
            role_record.id, [p.id for p in wanted]
        )
        self._forget_inherited_permissions()

        result = SyncResult(
            attached=[known[i].name for i in attached_ids if i in known],
            detached=[known[i].name for i in detached_ids if i in known],
        )
        log.info(f"Synced role {role_record.slug}: +{result.attached} -{result.detached}")
        return result

    async def grant_permission_to_role_and_sub_roles(self, role: RoleRef, permission: PermissionRef) -> None:
        role_record = await self._resolve_role(role)
        permission_record = await self._resolve_permission(
            permission, auto_create=self.config.auto_create_permissions
        )
        await self.hierarchy.grant_to_subtree(role_record, permission_record)
        self._forget_inherited_permissions()

    async def revoke_permission_from_role_and_sub_roles(self, role: RoleRef, permission: PermissionRef) -> None:
        try:
            role_record = await self._resolve_role(role)
            permission_record = await self._resolve_permission(permission, any_scope=True)
        except NotFoundError as exc:
            log.debug(f"Nothing to revoke: {exc.message}")
            return
        await self.hierarchy.revoke_from_subtree(role_record, permission_record)
        self._forget_inherited_permissions()

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------

    async def get_user_roles(self, principal: Any) -> list[RoleRecord]:
        pid = principal_key(principal)

        async def compute():
            return await self.store.principal_roles(pid)

        return list(await self.cache.get_or_compute(CacheKey.user_roles(pid), compute))

    async def get_role_names(self, principal: Any) -> list[str]:
        pid = principal_key(principal)

        async def compute():
            return [role.name for role in await self.store.principal_roles(pid)]

        return list(await self.cache.get_or_compute(CacheKey.user_role_names(pid), compute))

    async def get_role_slugs(self, principal: Any) -> list[str]:
        pid = principal_key(principal)

        async def compute():
            return [role.slug for role in await self.store.principal_roles(pid)]

        return list(await self.cache.get_or_compute(CacheKey.user_role_slugs(pid), compute))

    async def get_all_permissions_for_user(
        self, principal: Any, scope: Optional[str] = None
    ) -> list[PermissionRecord]:
        pid = principal_key(principal)

        async def compute():
            return await self.resolver.all_permissions_for(pid)

        permissions = await self.cache.get_or_compute(CacheKey.user_permissions(pid), compute)
        if scope is not None:
            return [p for p in permissions if p.scope == scope]
        return list(permissions)

    async def is_super_admin(self, principal: Any) -> bool:
        return await self.resolver.is_super_admin(principal_key(principal), self.get_role_names)

    async def has_permission_to(self, principal: Any, permission: str, scope: Optional[str] = None) -> bool:
        return await self.resolver.has_permission(
            principal_key(principal),
            permission,
            scope,
            role_names=self.get_role_names,
            permissions=self.get_all_permissions_for_user,
        )

    async def has_any_permission(
        self, principal: Any, permissions: Iterable[str], scope: Optional[str] = None
    ) -> bool:
        for permission in permissions:
            if await self.has_permission_to(principal, permission, scope):
                return True
        return False

    async def has_all_permissions(
        self, principal: Any, permissions: Iterable[str], scope: Optional[str] = None
    ) -> bool:
        for permission in permissions:
            if not await self.has_permission_to(principal, permission, scope):
                return False
        return True

    async def assign_role(self, principal: Any, role: RoleRef) -> None:
        pid = principal_key(principal)
        role_record = await self._resolve_role(role)
        await self.store.attach_principal_roles(pid, [role_record.id])
        self._invalidate(*CacheKey.user_role_keys(pid), CacheKey.user_permissions(pid))
        log.info(f"Assigned role {role_record.slug} to principal {pid}")

    async def remove_role(self, principal: Any, role: RoleRef) -> None:
        pid = principal_key(principal)
        role_record = await self._find_role(role)
        if role_record is None:
            log.debug(f"Nothing to remove: role {role} does not exist")
            return
        await self.store.detach_principal_roles(pid, [role_record.id])
        self._invalidate(*CacheKey.user_role_keys(pid), CacheKey.user_permissions(pid))
        log.info(f"Removed role {role_record.slug} from principal {pid}")

    async def give_permission_to_user(
        self, principal: Any, permission: PermissionRef, scope: Optional[str] = None
    ) -> None:
        pid = principal_key(principal)
        permission_record = await self._resolve_permission(
            permission, scope, auto_create=self.config.auto_create_permissions
        )
        await self.store.attach_principal_permissions(pid, [permission_record.id])
        self._invalidate(CacheKey.user_permissions(pid))
        log.info(f"Gave permission {permission_record.slug} directly to principal {pid}")

    async def revoke_permission_from_user(
        self, principal: Any, permission: PermissionRef, scope: Optional[str] = None
    ) -> None:
        pid = principal_key(principal)
        try:
            permission_record = await self._resolve_permission(permission, scope, any_scope=scope is None)
        except NotFoundError as exc:
            log.debug(f"Nothing to revoke: {exc.message}")
            return
        await self.store.detach_principal_permissions(pid, [permission_record.id])
        self._invalidate(CacheKey.user_permissions(pid))
        log.info(f"Revoked permission {permission_record.slug} from principal {pid}")

    async def has_role(self, principal: Any, role: RoleRef) -> bool:
        """Match a role record by id, or a string against slug or name."""
        held = await self.get_user_roles(principal)
        if not isinstance(role, str):
            return any(r.id == role.id for r in held)
        wanted = self._normalize(role)
        return any(wanted in (self._normalize(r.slug), self._normalize(r.name)) for r in held)

    async def has_any_role(self, principal: Any, roles: Iterable[str]) -> bool:
        held = {self._normalize(slug) for slug in await self.get_role_slugs(principal)}
        return any(self._normalize(slug) in held for slug in roles)

    async def has_all_roles(self, principal: Any, roles: Iterable[str]) -> bool:
        """Exact slug comparison: every listed slug must be held."""
        held = set(await self.get_role_slugs(principal))
        return set(roles) <= held
