"""
FastAPI dependencies for role and permission checks.

Implements:
- A request scoped RolePermissionManager sharing one process-level cache
- The current principal, read from request.state
- Route guards requiring any of a set of permissions or roles
- The rate limiter key function
"""
from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Request, status
from slowapi import Limiter
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from role_permission_manager.core.database.engine import get_db
from role_permission_manager.features.permissions.cache import PermissionCache
from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.manager import RolePermissionManager
from role_permission_manager.features.permissions.repository import SqlAlchemyRbacStore
from role_permission_manager.utils import get_logger


log = get_logger(__name__)

permission_config = PermissionConfig.from_env()

# Shared by every request in this process
permission_cache = PermissionCache(
    ttl_seconds=permission_config.cache_ttl_seconds,
    enabled=permission_config.use_cache,
)


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"


limiter = Limiter(key_func=get_authorization_header)


# ============================================================================
# Manager and principal
# ============================================================================

def bind_permission_manager(
    db: AsyncSession, cache: PermissionCache = permission_cache
) -> RolePermissionManager:
    """
    Manager whose cache invalidations are replayed when `db` commits or rolls back.

    Other requests can cache the previous committed state between the
    manager's flush and get_db's commit.
    """
    manager = RolePermissionManager(
        SqlAlchemyRbacStore(db),
        config=permission_config,
        cache=cache,
        defer_invalidation=True,
    )

    def flush_invalidations(_session) -> None:
        manager.flush_invalidations()

    event.listen(db.sync_session, "after_commit", flush_invalidations)
    event.listen(db.sync_session, "after_rollback", flush_invalidations)
    return manager


async def get_permission_manager(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> RolePermissionManager:
    """Manager bound to the request's database session."""
    return bind_permission_manager(db)


async def get_current_user_id(request: Request) -> str:
    """
    Id of the authenticated principal.

    Authentication happens upstream: a middleware of the host application
    stores the verified id on request.state.user_id.
    """
    user_id: Optional[str] = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return str(user_id)


# ============================================================================
# Route guards
# ============================================================================

def require_permission(*permissions: str, scope: Optional[str] = None):
    """
    FastAPI dependency to require ANY of the given permissions.

    Usage:
        @router.post("/posts")
        async def create_post(
            user_id: str = Depends(require_permission("posts.create", "posts.*"))
        ):
            pass

    Returns:
        Dependency function that returns the current user id if allowed

    Raises:
        HTTPException: 403 if the user has none of the permissions
    """
    async def permission_dependency(
        user_id: Annotated[str, Depends(get_current_user_id)],
        manager: Annotated[RolePermissionManager, Depends(get_permission_manager)],
    ) -> str:
        if await manager.has_any_permission(user_id, permissions, scope):
            return user_id

        log.warning(f"User {user_id} denied: requires one of {list(permissions)} (scope={scope})")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized action.",
        )

    return permission_dependency


def require_role(*roles: str):
    """
    FastAPI dependency to require ANY of the given roles (slug or name).

    Usage:
        @router.delete("/posts/{post_id}")
        async def delete_post(
            post_id: str,
            user_id: str = Depends(require_role("admin", "moderator"))
        ):
            pass
    """
    async def role_dependency(
        user_id: Annotated[str, Depends(get_current_user_id)],
        manager: Annotated[RolePermissionManager, Depends(get_permission_manager)],
    ) -> str:
        for role in roles:
            if await manager.has_role(user_id, role):
                return user_id

        log.warning(f"User {user_id} denied: requires one of roles {list(roles)}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized action.",
        )

    return role_dependency
