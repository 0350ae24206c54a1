"""
Role and Permission models for hierarchical, scoped RBAC.

This module defines:
- Roles with an optional parent role (permissions are inherited upward)
- Permissions partitioned by an optional scope
- Role permissions, user roles and direct user permissions
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Text, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from role_permission_manager.core.database.base import Base, TimestampMixin, generate_id
from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

role_has_permissions = Table(
    "role_has_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)

model_has_roles = Table(
    "model_has_roles",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)

# Direct user permissions (supplement role permissions)
model_has_permissions = Table(
    "model_has_permissions",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    Permission model naming an ability, optionally inside a scope.

    Examples:
    - name="posts.create"
    - name="posts.*" (wildcard, grants every posts permission)
    - name="billing.read", scope="team-42"
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("name", "scope", name="uq_permissions_name_scope"),
        UniqueConstraint("slug", "scope", name="uq_permissions_slug_scope"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    scope: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_record(self) -> PermissionRecord:
        return PermissionRecord(
            id=self.id,
            name=self.name,
            slug=self.slug,
            scope=self.scope,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, slug={self.slug!r}, scope={self.scope})>"


class Role(Base, TimestampMixin):
    """
    Role model grouping permissions.

    A role inherits every permission of its parent chain.
    Examples: super-admin, admin, editor (parent: admin)
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    def to_record(self) -> RoleRecord:
        return RoleRecord(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            parent_id=self.parent_id,
        )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, slug={self.slug!r}, parent_id={self.parent_id})>"
