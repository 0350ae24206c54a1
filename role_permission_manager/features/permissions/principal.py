"""
Roles-and-permissions capability for principals.

Usage:
    helper = RolesAndPermissions(user.id, manager)
    await helper.assign_role("editor")
    if await helper.has_permission_to("posts.publish"):
        ...
"""
from typing import Any, Iterable, Optional, Protocol

from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord
from role_permission_manager.features.permissions.manager import (
    PermissionRef,
    RolePermissionManager,
    RoleRef,
    principal_key,
)


class HasRolesAndPermissions(Protocol):
    async def roles(self) -> list[RoleRecord]: ...

    async def permissions(self) -> list[PermissionRecord]: ...

    async def has_permission_to(self, permission: str, scope: Optional[str] = None) -> bool: ...

    async def has_role(self, role: RoleRef) -> bool: ...


class RolesAndPermissions:
    """Binds a principal id to a manager and forwards every call."""

    def __init__(self, principal: Any, manager: RolePermissionManager):
        self.principal_id = principal_key(principal)
        self.manager = manager

    def __repr__(self) -> str:
        return f"<RolesAndPermissions(principal_id={self.principal_id})>"

    async def roles(self) -> list[RoleRecord]:
        return await self.manager.get_user_roles(self.principal_id)

    async def permissions(self) -> list[PermissionRecord]:
        """Direct grants only."""
        return await self.manager.store.principal_permissions(self.principal_id)

    async def role_names(self) -> list[str]:
        return await self.manager.get_role_names(self.principal_id)

    async def role_slugs(self) -> list[str]:
        return await self.manager.get_role_slugs(self.principal_id)

    async def get_all_permissions(self, scope: Optional[str] = None) -> list[PermissionRecord]:
        return await self.manager.get_all_permissions_for_user(self.principal_id, scope)

    async def assign_role(self, role: RoleRef) -> None:
        await self.manager.assign_role(self.principal_id, role)

    async def remove_role(self, role: RoleRef) -> None:
        await self.manager.remove_role(self.principal_id, role)

    async def give_permission_to(self, permission: PermissionRef, scope: Optional[str] = None) -> None:
        await self.manager.give_permission_to_user(self.principal_id, permission, scope)

    async def revoke_permission_to(self, permission: PermissionRef, scope: Optional[str] = None) -> None:
        await self.manager.revoke_permission_from_user(self.principal_id, permission, scope)

    async def has_permission_to(self, permission: str, scope: Optional[str] = None) -> bool:
        return await self.manager.has_permission_to(self.principal_id, permission, scope)

    async def has_any_permission(self, permissions: Iterable[str], scope: Optional[str] = None) -> bool:
        return await self.manager.has_any_permission(self.principal_id, permissions, scope)

    async def has_all_permissions(self, permissions: Iterable[str], scope: Optional[str] = None) -> bool:
        return await self.manager.has_all_permissions(self.principal_id, permissions, scope)

    async def has_role(self, role: RoleRef) -> bool:
        return await self.manager.has_role(self.principal_id, role)

    async def has_any_role(self, roles: Iterable[str]) -> bool:
        return await self.manager.has_any_role(self.principal_id, roles)

    async def has_all_roles(self, roles: Iterable[str]) -> bool:
        return await self.manager.has_all_roles(self.principal_id, roles)

    async def has_super_admin_role(self) -> bool:
        return await self.manager.is_super_admin(self.principal_id)
