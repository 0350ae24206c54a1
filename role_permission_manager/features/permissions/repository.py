"""
SQLAlchemy implementation of RbacStore.

Writes are flushed, never committed: the caller owns the transaction
(`get_db` commits once the request handler returns). Rows are mapped to
records before they leave this module.
"""
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import select, insert, delete, and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord
from role_permission_manager.features.permissions.exceptions import (
    DuplicateSlugError,
    DuplicateSlugInScopeError,
    NotFoundError,
    StoreFailureError,
)
from role_permission_manager.features.permissions.models import (
    Permission,
    Role,
    role_has_permissions,
    model_has_roles,
    model_has_permissions,
)
from role_permission_manager.utils import get_logger


log = get_logger(__name__)


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except SQLAlchemyError as e:
        log.error(f"Store failure while trying to {action}: {e}")
        raise StoreFailureError(f"Could not {action}.") from e


def _scope_clause(scope: Optional[str]):
    if scope is None:
        return Permission.scope.is_(None)
    return Permission.scope == scope


class SqlAlchemyRbacStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Roles
    # ========================================================================

    async def get_role(self, role_id: str) -> Optional[RoleRecord]:
        with _translate_errors("load role"):
            role = await self.db.get(Role, role_id)
        return role.to_record() if role else None

    async def find_role_by_slug(self, slug: str) -> Optional[RoleRecord]:
        with _translate_errors("load role"):
            result = await self.db.execute(select(Role).where(Role.slug == slug))
            role = result.scalar_one_or_none()
        return role.to_record() if role else None

    async def list_roles(self) -> list[RoleRecord]:
        with _translate_errors("list roles"):
            result = await self.db.execute(select(Role).order_by(Role.name))
            return [role.to_record() for role in result.scalars().all()]

    async def list_children(self, role_id: str) -> list[RoleRecord]:
        with _translate_errors("list sub-roles"):
            result = await self.db.execute(
                select(Role).where(Role.parent_id == role_id).order_by(Role.name)
            )
            return [role.to_record() for role in result.scalars().all()]

    async def create_role(
        self,
        name: str,
        slug: str,
        description: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> RoleRecord:
        with _translate_errors("create role"):
            existing = await self.db.execute(
                select(Role.id).where(or_(Role.slug == slug, Role.name == name))
            )
            if existing.first() is not None:
                raise DuplicateSlugError(f"Role '{slug}' already exists.")

            role = Role(name=name, slug=slug, description=description, parent_id=parent_id)
            self.db.add(role)
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise DuplicateSlugError(f"Role '{slug}' already exists.") from e
            return role.to_record()

    async def set_role_parent(self, role_id: str, parent_id: Optional[str]) -> RoleRecord:
        with _translate_errors("update role parent"):
            role = await self.db.get(Role, role_id)
            if role is None:
                raise NotFoundError(f"Role '{role_id}' does not exist.")
            role.parent_id = parent_id
            await self.db.flush()
            return role.to_record()

    # ========================================================================
    # Permissions
    # ========================================================================

    async def get_permission(self, permission_id: str) -> Optional[PermissionRecord]:
        with _translate_errors("load permission"):
            permission = await self.db.get(Permission, permission_id)
        return permission.to_record() if permission else None

    async def find_permission(
        self, slug: str, scope: Optional[str] = None, *, any_scope: bool = False
    ) -> Optional[PermissionRecord]:
        stmt = select(Permission).where(Permission.slug == slug)
        if not any_scope:
            stmt = stmt.where(_scope_clause(scope))
        with _translate_errors("load permission"):
            result = await self.db.execute(stmt.order_by(Permission.created_at).limit(1))
            permission = result.scalar_one_or_none()
        return permission.to_record() if permission else None

    async def find_permissions_by_slugs(self, slugs: Iterable[str]) -> list[PermissionRecord]:
        slugs = list(slugs)
        if not slugs:
            return []
        with _translate_errors("load permissions"):
            result = await self.db.execute(select(Permission).where(Permission.slug.in_(slugs)))
            return [permission.to_record() for permission in result.scalars().all()]

    async def list_permissions(self, scope: Optional[str] = None) -> list[PermissionRecord]:
        stmt = select(Permission)
        if scope is not None:
            stmt = stmt.where(Permission.scope == scope)
        with _translate_errors("list permissions"):
            result = await self.db.execute(stmt.order_by(Permission.slug))
            return [permission.to_record() for permission in result.scalars().all()]

    async def create_permission(
        self,
        name: str,
        slug: str,
        scope: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PermissionRecord:
        with _translate_errors("create permission"):
            # NULL scopes never collide in a unique index, so check first
            existing = await self.db.execute(
                select(Permission.id).where(
                    and_(
                        _scope_clause(scope),
                        or_(Permission.slug == slug, Permission.name == name),
                    )
                )
            )
            if existing.first() is not None:
                raise DuplicateSlugInScopeError(
                    f"Permission '{slug}' already exists in scope '{scope}'."
                )

            permission = Permission(name=name, slug=slug, scope=scope, description=description)
            self.db.add(permission)
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise DuplicateSlugInScopeError(
                    f"Permission '{slug}' already exists in scope '{scope}'."
                ) from e
            return permission.to_record()

    # ========================================================================
    # Link tables
    # ========================================================================

    async def _linked_ids(self, table, owner_column: str, owner_id: str, item_column: str) -> list[str]:
        result = await self.db.execute(
            select(table.c[item_column]).where(table.c[owner_column] == owner_id)
        )
        return list(result.scalars().all())

    async def _attach(self, table, owner_column: str, owner_id: str, item_column: str, ids) -> list[str]:
        current = set(await self._linked_ids(table, owner_column, owner_id, item_column))
        added = [item for item in dict.fromkeys(ids) if item not in current]
        if added:
            await self.db.execute(
                insert(table),
                [{owner_column: owner_id, item_column: item} for item in added],
            )
        return added

    async def _detach(self, table, owner_column: str, owner_id: str, item_column: str, ids) -> list[str]:
        current = set(await self._linked_ids(table, owner_column, owner_id, item_column))
        removed = [item for item in dict.fromkeys(ids) if item in current]
        if removed:
            await self.db.execute(
                delete(table).where(
                    and_(
                        table.c[owner_column] == owner_id,
                        table.c[item_column].in_(removed),
                    )
                )
            )
        return removed

    # ========================================================================
    # Role <-> Permission
    # ========================================================================

    async def role_permissions(self, role_id: str) -> list[PermissionRecord]:
        with _translate_errors("load role permissions"):
            result = await self.db.execute(
                select(Permission)
                .join(role_has_permissions, role_has_permissions.c.permission_id == Permission.id)
                .where(role_has_permissions.c.role_id == role_id)
                .order_by(role_has_permissions.c.created_at)
            )
            return [permission.to_record() for permission in result.scalars().all()]

    async def attach_role_permissions(self, role_id: str, permission_ids: Iterable[str]) -> list[str]:
        with _translate_errors("attach role permissions"):
            return await self._attach(role_has_permissions, "role_id", role_id, "permission_id", permission_ids)

    async def detach_role_permissions(self, role_id: str, permission_ids: Iterable[str]) -> list[str]:
        with _translate_errors("detach role permissions"):
            return await self._detach(role_has_permissions, "role_id", role_id, "permission_id", permission_ids)

    async def sync_role_permissions(
        self, role_id: str, permission_ids: Iterable[str]
    ) -> tuple[list[str], list[str]]:
        wanted = list(dict.fromkeys(permission_ids))
        with _translate_errors("sync role permissions"):
            current = await self._linked_ids(role_has_permissions, "role_id", role_id, "permission_id")
            detached = await self._detach(
                role_has_permissions, "role_id", role_id, "permission_id",
                [item for item in current if item not in wanted],
            )
            attached = await self._attach(role_has_permissions, "role_id", role_id, "permission_id", wanted)
        return attached, detached

    # ========================================================================
    # Principal <-> Role / Permission
    # ========================================================================

    async def principal_roles(self, principal_id: str) -> list[RoleRecord]:
        with _translate_errors("load principal roles"):
            result = await self.db.execute(
                select(Role)
                .join(model_has_roles, model_has_roles.c.role_id == Role.id)
                .where(model_has_roles.c.user_id == principal_id)
                .order_by(model_has_roles.c.assigned_at)
            )
            return [role.to_record() for role in result.scalars().all()]

    async def attach_principal_roles(self, principal_id: str, role_ids: Iterable[str]) -> list[str]:
        with _translate_errors("assign roles"):
            return await self._attach(model_has_roles, "user_id", principal_id, "role_id", role_ids)

    async def detach_principal_roles(self, principal_id: str, role_ids: Iterable[str]) -> list[str]:
        with _translate_errors("remove roles"):
            return await self._detach(model_has_roles, "user_id", principal_id, "role_id", role_ids)

    async def principal_permissions(self, principal_id: str) -> list[PermissionRecord]:
        with _translate_errors("load principal permissions"):
            result = await self.db.execute(
                select(Permission)
                .join(model_has_permissions, model_has_permissions.c.permission_id == Permission.id)
                .where(model_has_permissions.c.user_id == principal_id)
                .order_by(model_has_permissions.c.assigned_at)
            )
            return [permission.to_record() for permission in result.scalars().all()]

    async def attach_principal_permissions(self, principal_id: str, permission_ids: Iterable[str]) -> list[str]:
        with _translate_errors("grant permissions"):
            return await self._attach(
                model_has_permissions, "user_id", principal_id, "permission_id", permission_ids
            )

    async def detach_principal_permissions(self, principal_id: str, permission_ids: Iterable[str]) -> list[str]:
        with _translate_errors("revoke permissions"):
            return await self._detach(
                model_has_permissions, "user_id", principal_id, "permission_id", permission_ids
            )
