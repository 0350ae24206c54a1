"""
Role hierarchy walks.

Roles inherit every permission of their parent chain. Walks upward follow
parent_id; walks downward collect children breadth first. Both keep a
visited set and raise CycleDetectedError instead of looping when the stored
graph is not a forest.
"""
from typing import Optional

from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord
from role_permission_manager.features.permissions.exceptions import CycleDetectedError
from role_permission_manager.features.permissions.store import RbacStore
from role_permission_manager.utils import get_logger


log = get_logger(__name__)


class RoleHierarchy:
    def __init__(self, store: RbacStore):
        self.store = store

    async def _current(self, role: RoleRecord) -> Optional[RoleRecord]:
        if not role.is_persisted:
            return None
        return await self.store.get_role(role.id)

    async def ancestors(self, role: RoleRecord) -> list[RoleRecord]:
        """
        Parent chain of a role, nearest first.

        A parent_id pointing at a deleted role ends the chain.
        """
        current = await self._current(role)
        if current is None:
            return []

        chain: list[RoleRecord] = []
        visited = {current.id}
        parent_id = current.parent_id
        while parent_id is not None:
            if parent_id in visited:
                log.warning(f"Circular role inheritance detected at role {parent_id} (from {current.slug})")
                raise CycleDetectedError(f"Role '{current.slug}' has a cyclic parent chain.")
            visited.add(parent_id)
            parent = await self.store.get_role(parent_id)
            if parent is None:
                break
            chain.append(parent)
            parent_id = parent.parent_id
        return chain

    async def effective_permissions(self, role: RoleRecord) -> list[PermissionRecord]:
        """
        Own permissions merged with every ancestor's, deduplicated by id.

        Returns an empty list for roles that are not persisted.
        """
        current = await self._current(role)
        if current is None:
            return []

        permissions: dict[str, PermissionRecord] = {}
        for member in [current, *await self.ancestors(current)]:
            for permission in await self.store.role_permissions(member.id):
                permissions.setdefault(permission.id, permission)
        return list(permissions.values())

    async def descendants(self, role: RoleRecord) -> list[RoleRecord]:
        """Every role whose parent chain includes `role`."""
        if not role.is_persisted:
            return []

        found: list[RoleRecord] = []
        visited = {role.id}
        frontier = [role.id]
        while frontier:
            next_frontier = []
            for role_id in frontier:
                for child in await self.store.list_children(role_id):
                    if child.id in visited:
                        log.warning(f"Circular role inheritance detected below role {role.slug}")
                        raise CycleDetectedError(f"Role '{role.slug}' has a cyclic set of sub-roles.")
                    visited.add(child.id)
                    found.append(child)
                    next_frontier.append(child.id)
            frontier = next_frontier
        return found

    async def would_create_cycle(self, role: RoleRecord, parent: Optional[RoleRecord]) -> bool:
        """True if making `parent` the parent of `role` closes a loop."""
        if parent is None:
            return False
        if parent.id == role.id:
            return True
        try:
            chain = await self.ancestors(parent)
        except CycleDetectedError:
            return True
        return any(ancestor.id == role.id for ancestor in chain)

    async def grant_to_subtree(self, role: RoleRecord, permission: PermissionRecord) -> list[RoleRecord]:
        """Attach `permission` to `role` and all its descendants. Returns the roles touched."""
        targets = [role, *await self.descendants(role)]
        for target in targets:
            await self.store.attach_role_permissions(target.id, [permission.id])
        log.info(f"Granted {permission.slug} to {len(targets)} role(s) under {role.slug}")
        return targets

    async def revoke_from_subtree(self, role: RoleRecord, permission: PermissionRecord) -> list[RoleRecord]:
        """Detach `permission` from `role` and all its descendants; missing links are ignored."""
        targets = [role, *await self.descendants(role)]
        for target in targets:
            await self.store.detach_role_permissions(target.id, [permission.id])
        log.info(f"Revoked {permission.slug} from {len(targets)} role(s) under {role.slug}")
        return targets
