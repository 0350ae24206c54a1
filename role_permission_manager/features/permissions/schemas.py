"""
Pydantic schemas for role and permission management.

Request and response models for roles, permissions, assignments and checks.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Permission name (e.g., 'posts.create', 'posts.*')")
    slug: Optional[str] = Field(None, max_length=255, description="Slug (derived from name when omitted)")
    scope: Optional[str] = Field(None, max_length=255, description="Scope the permission belongs to (null for unscoped)")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('name')
    @classmethod
    def name_allowed_characters(cls, v: str) -> str:
        """Validate permission name format."""
        if not v.replace('_', '').replace('.', '').replace(':', '').replace('-', '').replace('*', '').replace(' ', '').isalnum():
            raise ValueError('Permission name must contain only alphanumeric characters, spaces, underscores, hyphens, dots, colons and *')
        return v

    @field_validator('scope')
    @classmethod
    def empty_scope_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty scope as unscoped."""
        return v or None


class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    name: str
    slug: str
    scope: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(BaseModel):
    """Schema for creating a new role."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique role name")
    slug: Optional[str] = Field(None, max_length=255, description="Unique slug (derived from name when omitted)")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")
    parent: Optional[str] = Field(None, description="Slug of the parent role")


class RoleParentUpdate(BaseModel):
    """Schema for moving a role under another role."""
    parent: Optional[str] = Field(None, description="Slug of the new parent role (null detaches the role)")


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignPermissionToRole(BaseModel):
    """Schema for giving a permission to a role."""
    permission: str = Field(..., min_length=1, description="Permission slug")
    scope: Optional[str] = Field(None, description="Permission scope")
    include_sub_roles: bool = Field(False, description="Also give the permission to every sub-role")


class SyncPermissionsRequest(BaseModel):
    """Schema for replacing the permissions of a role."""
    permissions: List[str] = Field(default_factory=list, description="Permission slugs the role should hold")


class SyncPermissionsResponse(BaseModel):
    """Names of the permissions attached and detached by a sync."""
    attached: List[str] = []
    detached: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class AssignRoleToUser(BaseModel):
    """Schema for assigning a role to a user."""
    role: str = Field(..., min_length=1, description="Role slug")


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the current user has a permission."""
    permission: str = Field(..., min_length=1, description="Permission name (e.g., 'posts.create')")
    scope: Optional[str] = Field(None, description="Scope to check in (any scope when omitted)")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    reason: Optional[str] = None


# ============================================================================
# User Permissions Response
# ============================================================================

class UserPermissionsResponse(BaseModel):
    """Schema for every permission a user holds, directly or through roles."""
    user_id: str
    scope: Optional[str] = None
    roles: List[RoleResponse] = []
    permissions: List[PermissionResponse] = []
