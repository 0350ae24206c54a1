"""
Permission matching.

Decides whether a stored permission satisfies a requested permission string
and scope. Wildcards: a stored "posts.*" satisfies "posts.create" and
"posts.comments.delete". Every character other than '*' is literal.
"""
import re
from functools import lru_cache
from typing import Optional

from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.entities import PermissionRecord


@lru_cache(maxsize=1024)
def compile_pattern(value: str, case_sensitive: bool) -> re.Pattern:
    """Compile a stored name/slug into an anchored pattern where '*' matches anything."""
    pattern = re.escape(value).replace(r"\*", ".*")
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(pattern, flags | re.DOTALL)


def scope_matches(stored_scope: Optional[str], requested_scope: Optional[str]) -> bool:
    # No requested scope: any stored scope is acceptable
    if requested_scope is None:
        return True
    return stored_scope == requested_scope


def matches(
    permission: PermissionRecord,
    requested_name: str,
    requested_scope: Optional[str] = None,
    *,
    wildcard: bool = True,
    case_sensitive: bool = False,
) -> bool:
    if not scope_matches(permission.scope, requested_scope):
        return False

    if wildcard:
        return any(
            compile_pattern(candidate, case_sensitive).fullmatch(requested_name) is not None
            for candidate in (permission.name, permission.slug)
            if candidate
        )

    if case_sensitive:
        return requested_name in (permission.name, permission.slug)

    requested = requested_name.casefold()
    return requested in (permission.name.casefold(), permission.slug.casefold())


class PermissionMatcher:
    """Applies the configured wildcard and case rules. Stateless apart from config."""

    def __init__(self, config: PermissionConfig | None = None):
        self.config = config or PermissionConfig()

    def matches(
        self,
        permission: PermissionRecord,
        requested_name: str,
        requested_scope: Optional[str] = None,
    ) -> bool:
        return matches(
            permission,
            requested_name,
            requested_scope,
            wildcard=self.config.enable_wildcard_permission,
            case_sensitive=self.config.case_sensitive_permissions,
        )

    def any_match(
        self,
        permissions,
        requested_name: str,
        requested_scope: Optional[str] = None,
    ) -> Optional[PermissionRecord]:
        """Return the first permission that satisfies the request, if any."""
        for permission in permissions:
            if self.matches(permission, requested_name, requested_scope):
                return permission
        return None
