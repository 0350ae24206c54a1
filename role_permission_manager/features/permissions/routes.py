"""
Role and permission management API routes.

Provides endpoints for managing roles, permissions, their assignments to
users, and checking the current user's permissions.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from role_permission_manager.core import config
from role_permission_manager.features.permissions.dependencies import (
    get_current_user_id,
    get_permission_manager,
    limiter,
    require_permission,
)
from role_permission_manager.features.permissions.manager import RolePermissionManager
from role_permission_manager.features.permissions.schemas import (
    AssignPermissionToRole,
    AssignRoleToUser,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleParentUpdate,
    RoleResponse,
    SyncPermissionsRequest,
    SyncPermissionsResponse,
    UserPermissionsResponse,
)
from role_permission_manager.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

# Super admins hold it implicitly
MANAGE_PERMISSION = "rbac.manage"


async def _role_or_404(manager: RolePermissionManager, slug: str):
    role = await manager.get_role_by_slug(slug)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Role '{slug}' not found"
        )
    return role


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """List all roles."""
    return await manager.get_all_roles()


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Create a new role, optionally under a parent role."""
    created = await manager.create_role(
        role.name,
        slug=role.slug,
        description=role.description,
        parent=role.parent,
    )
    log.info(f"User {current_user_id} created role {created.slug}")
    return created


@router.get("/roles/{slug}/permissions", response_model=List[PermissionResponse])
async def get_role_permissions(
    slug: str,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """Get every permission of a role, including those inherited from its parents."""
    role = await _role_or_404(manager, slug)
    return await manager.get_all_permissions_for_role(role)


@router.put("/roles/{slug}/parent", response_model=RoleResponse)
async def set_role_parent(
    slug: str,
    update: RoleParentUpdate,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Move a role under another role, or detach it (parent=null)."""
    return await manager.set_role_parent(slug, update.parent)


@router.post("/roles/{slug}/permissions", response_model=List[PermissionResponse])
async def give_permission_to_role(
    slug: str,
    assignment: AssignPermissionToRole,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Give a permission to a role (and optionally to all its sub-roles)."""
    role = await _role_or_404(manager, slug)
    if assignment.include_sub_roles:
        await manager.grant_permission_to_role_and_sub_roles(role, assignment.permission)
    else:
        await manager.give_permission_to_role(role, assignment.permission, assignment.scope)
    return await manager.get_all_permissions_for_role(role)


@router.delete("/roles/{slug}/permissions/{permission_slug}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_permission_from_role(
    slug: str,
    permission_slug: str,
    scope: Optional[str] = None,
    include_sub_roles: bool = False,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Revoke a permission from a role. Revoking a permission the role lacks is a no-op."""
    if include_sub_roles:
        await manager.revoke_permission_from_role_and_sub_roles(slug, permission_slug)
    else:
        await manager.revoke_permission_from_role(slug, permission_slug, scope)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/roles/{slug}/permissions", response_model=SyncPermissionsResponse)
async def sync_role_permissions(
    slug: str,
    sync: SyncPermissionsRequest,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Replace the permissions of a role. Unknown slugs are ignored."""
    result = await manager.sync_permissions(slug, sync.permissions)
    return SyncPermissionsResponse(attached=result.attached, detached=result.detached)


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    scope: Optional[str] = None,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """List permissions, optionally only those of one scope."""
    return await manager.get_all_permissions_for_scope(scope)


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Create a new permission."""
    created = await manager.create_permission(
        permission.name,
        slug=permission.slug,
        scope=permission.scope,
        description=permission.description,
    )
    log.info(f"User {current_user_id} created permission {created.slug} (scope={created.scope})")
    return created


# ============================================================================
# User Assignment Routes
# ============================================================================

@router.get("/users/{user_id}/roles", response_model=List[RoleResponse])
async def get_user_roles(
    user_id: str,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """Get the roles assigned to a user."""
    return await manager.get_user_roles(user_id)


@router.post("/users/{user_id}/roles", response_model=List[RoleResponse])
async def assign_role_to_user(
    user_id: str,
    assignment: AssignRoleToUser,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Assign a role to a user."""
    await manager.assign_role(user_id, assignment.role)
    log.info(f"User {current_user_id} assigned role {assignment.role} to user {user_id}")
    return await manager.get_user_roles(user_id)


@router.delete("/users/{user_id}/roles/{role_slug}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_from_user(
    user_id: str,
    role_slug: str,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(require_permission(MANAGE_PERMISSION))
):
    """Remove a role from a user."""
    await manager.remove_role(user_id, role_slug)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _user_permissions(
    manager: RolePermissionManager, user_id: str, scope: Optional[str]
) -> UserPermissionsResponse:
    return UserPermissionsResponse(
        user_id=user_id,
        scope=scope,
        roles=[RoleResponse.model_validate(r) for r in await manager.get_user_roles(user_id)],
        permissions=[
            PermissionResponse.model_validate(p)
            for p in await manager.get_all_permissions_for_user(user_id, scope)
        ],
    )


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: str,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """Get every permission a user holds, directly or through roles."""
    return await _user_permissions(manager, user_id, None)


@router.get("/users/{user_id}/permissions/{scope}", response_model=UserPermissionsResponse)
async def get_user_permissions_in_scope(
    user_id: str,
    scope: str,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """Get the permissions a user holds in one scope."""
    return await _user_permissions(manager, user_id, scope)


# ============================================================================
# Permission Check
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
@limiter.limit(config.CHECK_RATE_LIMIT)
async def check_permission(
    request: Request,
    check: PermissionCheckRequest,
    manager: RolePermissionManager = Depends(get_permission_manager),
    current_user_id: str = Depends(get_current_user_id)
):
    """Check if the current user has a permission."""
    if await manager.is_super_admin(current_user_id):
        return PermissionCheckResponse(has_permission=True, reason="super admin")

    allowed = await manager.has_permission_to(current_user_id, check.permission, check.scope)
    return PermissionCheckResponse(
        has_permission=allowed,
        reason=None if allowed else f"Missing permission {check.permission}"
    )
