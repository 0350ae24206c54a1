"""
Seed script to populate default permissions and roles.

Run this script after database initialization to create:
- Default permissions
- Default roles, each inheriting from the role below it
- Initial role-permission assignments

Running it again only adds what is missing.

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio

from role_permission_manager.core.database.engine import get_db, init_db
from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.entities import PermissionRecord, RoleRecord
from role_permission_manager.features.permissions.manager import RolePermissionManager
from role_permission_manager.features.permissions.repository import SqlAlchemyRbacStore
from role_permission_manager.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Posts permissions
    ("posts.read", "View posts"),
    ("posts.create", "Create new posts"),
    ("posts.update", "Update existing posts"),
    ("posts.publish", "Publish posts"),
    ("posts.delete", "Delete posts"),

    # Comments permissions
    ("comments.read", "View comments"),
    ("comments.create", "Write comments"),
    ("comments.*", "Every comment action"),

    # User management permissions
    ("users.read", "View user information"),
    ("users.*", "Every user management action"),

    # Role and permission management
    ("rbac.manage", "Manage roles, permissions and assignments"),
]


# Ordered so that each parent is created before its children.
# A role inherits every permission of its parent chain.
DEFAULT_ROLES = {
    "viewer": {
        "name": "Viewer",
        "description": "Read-only access",
        "parent": None,
        "permissions": ["posts.read", "comments.read"],
    },
    "author": {
        "name": "Author",
        "description": "Writes posts and comments",
        "parent": "viewer",
        "permissions": ["posts.create", "posts.update", "comments.create"],
    },
    "editor": {
        "name": "Editor",
        "description": "Publishes and moderates content",
        "parent": "author",
        "permissions": ["posts.publish", "posts.delete", "comments.*"],
    },
    "admin": {
        "name": "Admin",
        "description": "Manages users, roles and permissions",
        "parent": "editor",
        "permissions": ["users.*", "rbac.manage"],
    },
    "super-admin": {
        "name": PermissionConfig.from_env().super_admin_role,
        "description": "Passes every permission check",
        "parent": None,
        "permissions": [],
    },
}


async def seed_permissions(manager: RolePermissionManager) -> dict[str, PermissionRecord]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping permission slugs to permission records
    """
    log.info("Creating default permissions...")
    permissions_map = {}
    existing = {p.slug: p for p in await manager.get_all_permissions_for_scope(None) if p.scope is None}

    for name, description in DEFAULT_PERMISSIONS:
        if name in existing:
            log.debug(f"Permission '{name}' already exists, skipping")
            permissions_map[name] = existing[name]
            continue

        permissions_map[name] = await manager.create_permission(name, name, description=description)
        log.info(f"Created permission: {name}")

    log.info(f"Seeded {len(permissions_map)} permissions")
    return permissions_map


async def seed_roles(manager: RolePermissionManager, permissions_map: dict[str, PermissionRecord]) -> dict[str, RoleRecord]:
    """
    Create default roles and assign permissions.

    Args:
        manager: Role permission manager
        permissions_map: Dictionary of permission slug -> permission record
    """
    log.info("Creating default roles...")
    roles_map = {}

    for slug, role_config in DEFAULT_ROLES.items():
        role = await manager.get_role_by_slug(slug)
        if role is None:
            role = await manager.create_role(
                role_config["name"],
                slug,
                description=role_config["description"],
                parent=role_config["parent"],
            )
            log.info(f"Created role '{slug}' (parent={role_config['parent']})")
        else:
            log.debug(f"Role '{slug}' already exists, skipping")
        roles_map[slug] = role

        for perm_name in role_config["permissions"]:
            if perm_name not in permissions_map:
                log.warning(f"Permission '{perm_name}' not found for role '{slug}'")
                continue
            await manager.give_permission_to_role(role, permissions_map[perm_name])

    log.info("Default roles created successfully")
    return roles_map


async def seed(manager: RolePermissionManager) -> dict[str, RoleRecord]:
    permissions_map = await seed_permissions(manager)
    return await seed_roles(manager, permissions_map)


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # get_db commits when the generator is resumed
    async for db in get_db():
        manager = RolePermissionManager(SqlAlchemyRbacStore(db), config=PermissionConfig.from_env())
        roles_map = await seed(manager)

        log.info("Permission seeding completed successfully!")
        log.info("")
        log.info("Default roles created:")
        for slug, role_config in DEFAULT_ROLES.items():
            log.info(f"  - {roles_map[slug].name}: {role_config['description']}")


if __name__ == "__main__":
    asyncio.run(main())
