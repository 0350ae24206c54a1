"""
Storage interface for roles, permissions and their assignments.

The engine only talks to an RbacStore. `repository.SqlAlchemyRbacStore` is
the database implementation; `InMemoryRbacStore` backs tests and tooling.
"""
from dataclasses import replace
from typing import Iterable, Optional, Protocol

from role_permission_manager.core.database.base import generate_id
from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord
from role_permission_manager.features.permissions.exceptions import (
    DuplicateSlugError,
    DuplicateSlugInScopeError,
    NotFoundError,
)


class RbacStore(Protocol):
    # Roles
    async def get_role(self, role_id: str) -> Optional[RoleRecord]: ...

    async def find_role_by_slug(self, slug: str) -> Optional[RoleRecord]: ...

    async def list_roles(self) -> list[RoleRecord]: ...

    async def list_children(self, role_id: str) -> list[RoleRecord]: ...

    async def create_role(
        self,
        name: str,
        slug: str,
        description: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> RoleRecord: ...

    async def set_role_parent(self, role_id: str, parent_id: Optional[str]) -> RoleRecord: ...

    # Permissions
    async def get_permission(self, permission_id: str) -> Optional[PermissionRecord]: ...

    async def find_permission(
        self, slug: str, scope: Optional[str] = None, *, any_scope: bool = False
    ) -> Optional[PermissionRecord]: ...

    async def find_permissions_by_slugs(self, slugs: Iterable[str]) -> list[PermissionRecord]: ...

    async def list_permissions(self, scope: Optional[str] = None) -> list[PermissionRecord]: ...

    async def create_permission(
        self,
        name: str,
        slug: str,
        scope: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PermissionRecord: ...

    # Role <-> Permission
    async def role_permissions(self, role_id: str) -> list[PermissionRecord]: ...

    async def attach_role_permissions(self, role_id: str, permission_ids: Iterable[str]) -> list[str]: ...

    async def detach_role_permissions(self, role_id: str, permission_ids: Iterable[str]) -> list[str]: ...

    async def sync_role_permissions(
        self, role_id: str, permission_ids: Iterable[str]
    ) -> tuple[list[str], list[str]]: ...

    # Principal <-> Role / Permission
    async def principal_roles(self, principal_id: str) -> list[RoleRecord]: ...

    async def attach_principal_roles(self, principal_id: str, role_ids: Iterable[str]) -> list[str]: ...

    async def detach_principal_roles(self, principal_id: str, role_ids: Iterable[str]) -> list[str]: ...

    async def principal_permissions(self, principal_id: str) -> list[PermissionRecord]: ...

    async def attach_principal_permissions(self, principal_id: str, permission_ids: Iterable[str]) -> list[str]: ...

    async def detach_principal_permissions(self, principal_id: str, permission_ids: Iterable[str]) -> list[str]: ...


def _attach(links: dict[str, list[str]], owner: str, ids: Iterable[str]) -> list[str]:
    current = links.setdefault(owner, [])
    added = []
    for item in ids:
        if item not in current:
            current.append(item)
            added.append(item)
    return added


def _detach(links: dict[str, list[str]], owner: str, ids: Iterable[str]) -> list[str]:
    current = links.get(owner, [])
    removed = []
    for item in ids:
        if item in current:
            current.remove(item)
            removed.append(item)
    return removed


class InMemoryRbacStore:
    """Dictionary backed RbacStore. Not shared between processes."""

    def __init__(self):
        self.roles: dict[str, RoleRecord] = {}
        self.permissions: dict[str, PermissionRecord] = {}
        self.role_permission_links: dict[str, list[str]] = {}
        self.principal_role_links: dict[str, list[str]] = {}
        self.principal_permission_links: dict[str, list[str]] = {}

    # Roles

    async def get_role(self, role_id: str) -> Optional[RoleRecord]:
        return self.roles.get(role_id)

    async def find_role_by_slug(self, slug: str) -> Optional[RoleRecord]:
        for role in self.roles.values():
            if role.slug == slug:
                return role
        return None

    async def list_roles(self) -> list[RoleRecord]:
        return list(self.roles.values())

    async def list_children(self, role_id: str) -> list[RoleRecord]:
        return [role for role in self.roles.values() if role.parent_id == role_id]

    async def create_role(self, name, slug, description=None, parent_id=None) -> RoleRecord:
        for role in self.roles.values():
            if role.slug == slug or role.name == name:
                raise DuplicateSlugError(f"Role '{slug}' already exists.")
        role = RoleRecord(
            id=generate_id(), name=name, slug=slug, description=description, parent_id=parent_id
        )
        self.roles[role.id] = role
        return role

    async def set_role_parent(self, role_id, parent_id) -> RoleRecord:
        role = self.roles.get(role_id)
        if role is None:
            raise NotFoundError(f"Role '{role_id}' does not exist.")
        role = replace(role, parent_id=parent_id)
        self.roles[role_id] = role
        return role

    # Permissions

    async def get_permission(self, permission_id: str) -> Optional[PermissionRecord]:
        return self.permissions.get(permission_id)

    async def find_permission(self, slug, scope=None, *, any_scope=False) -> Optional[PermissionRecord]:
        for permission in self.permissions.values():
            if permission.slug == slug and (any_scope or permission.scope == scope):
                return permission
        return None

    async def find_permissions_by_slugs(self, slugs) -> list[PermissionRecord]:
        wanted = set(slugs)
        return [p for p in self.permissions.values() if p.slug in wanted]

    async def list_permissions(self, scope=None) -> list[PermissionRecord]:
        if scope is None:
            return list(self.permissions.values())
        return [p for p in self.permissions.values() if p.scope == scope]

    async def create_permission(self, name, slug, scope=None, description=None) -> PermissionRecord:
        for permission in self.permissions.values():
            if permission.scope == scope and (permission.slug == slug or permission.name == name):
                raise DuplicateSlugInScopeError(
                    f"Permission '{slug}' already exists in scope '{scope}'."
                )
        permission = PermissionRecord(
            id=generate_id(), name=name, slug=slug, scope=scope, description=description
        )
        self.permissions[permission.id] = permission
        return permission

    # Role <-> Permission

    async def role_permissions(self, role_id) -> list[PermissionRecord]:
        ids = self.role_permission_links.get(role_id, [])
        return [self.permissions[i] for i in ids if i in self.permissions]

    async def attach_role_permissions(self, role_id, permission_ids) -> list[str]:
        return _attach(self.role_permission_links, role_id, permission_ids)

    async def detach_role_permissions(self, role_id, permission_ids) -> list[str]:
        return _detach(self.role_permission_links, role_id, permission_ids)

    async def sync_role_permissions(self, role_id, permission_ids) -> tuple[list[str], list[str]]:
        wanted = list(dict.fromkeys(permission_ids))
        current = list(self.role_permission_links.get(role_id, []))
        detached = _detach(self.role_permission_links, role_id, [i for i in current if i not in wanted])
        attached = _attach(self.role_permission_links, role_id, wanted)
        return attached, detached

    # Principal <-> Role / Permission

    async def principal_roles(self, principal_id) -> list[RoleRecord]:
        ids = self.principal_role_links.get(principal_id, [])
        return [self.roles[i] for i in ids if i in self.roles]

    async def attach_principal_roles(self, principal_id, role_ids) -> list[str]:
        return _attach(self.principal_role_links, principal_id, role_ids)

    async def detach_principal_roles(self, principal_id, role_ids) -> list[str]:
        return _detach(self.principal_role_links, principal_id, role_ids)

    async def principal_permissions(self, principal_id) -> list[PermissionRecord]:
        ids = self.principal_permission_links.get(principal_id, [])
        return [self.permissions[i] for i in ids if i in self.permissions]

    async def attach_principal_permissions(self, principal_id, permission_ids) -> list[str]:
        return _attach(self.principal_permission_links, principal_id, permission_ids)

    async def detach_principal_permissions(self, principal_id, permission_ids) -> list[str]:
        return _detach(self.principal_permission_links, principal_id, permission_ids)
