"""
User model: the principal that holds roles and permissions.
"""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from role_permission_manager.core.database.base import Base, TimestampMixin, generate_id

if TYPE_CHECKING:
    from role_permission_manager.features.permissions.manager import RolePermissionManager
    from role_permission_manager.features.permissions.principal import RolesAndPermissions


class User(Base, TimestampMixin):
    """
    User model representing principals.

    Identity is verified by the host application; this table only anchors
    role and permission assignments.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def permissions_helper(self, manager: "RolePermissionManager") -> "RolesAndPermissions":
        """Role and permission checks bound to this user."""
        from role_permission_manager.features.permissions.principal import RolesAndPermissions
        return RolesAndPermissions(self, manager)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
