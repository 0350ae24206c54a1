"""Settings consumed by the permission engine."""
from dataclasses import dataclass

from role_permission_manager.core import config


@dataclass(frozen=True)
class PermissionConfig:
    super_admin_role: str = "Super Admin"
    enable_wildcard_permission: bool = True
    case_sensitive_permissions: bool = False
    auto_create_permissions: bool = False
    cache_expiration_time: int = 60  # minutes
    use_cache: bool = True

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_expiration_time * 60

    @classmethod
    def from_env(cls) -> "PermissionConfig":
        """Build from the values loaded in core.config."""
        return cls(
            super_admin_role=config.SUPER_ADMIN_ROLE,
            enable_wildcard_permission=config.ENABLE_WILDCARD_PERMISSION,
            case_sensitive_permissions=config.CASE_SENSITIVE_PERMISSIONS,
            auto_create_permissions=config.AUTO_CREATE_PERMISSIONS,
            cache_expiration_time=config.CACHE_EXPIRATION_TIME,
            use_cache=config.USE_CACHE,
        )
