"""Exceptions raised by the role/permission engine."""

from fastapi import status


class RolePermissionError(Exception):
    """Base exception for role and permission operations."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Role permission error"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(RolePermissionError):
    """Raised when a role or permission reference does not resolve to a stored record."""

    status_code = status.HTTP_404_NOT_FOUND


class DuplicateSlugError(RolePermissionError):
    """Raised when a role with the same slug or name already exists."""

    status_code = status.HTTP_409_CONFLICT


class DuplicateSlugInScopeError(DuplicateSlugError):
    """Raised when a permission with the same slug or name exists in the scope."""
    pass


class InvalidParentError(RolePermissionError):
    """Raised when a parent role is not persisted."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Parent role must be a persisted role."):
        super().__init__(message)


class CycleDetectedError(InvalidParentError):
    """Raised when the parent graph contains, or would contain, a cycle."""

    def __init__(self, message: str = "Role hierarchy contains a cycle."):
        super().__init__(message)


class StoreFailureError(RolePermissionError):
    """Raised when the underlying store fails."""
    pass
