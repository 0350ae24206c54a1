"""
Permission Cache - process-level memoization for resolution results.

Keys are built from CacheKey values, never concatenated by hand:
    all_roles, all_permissions, all_permissions_scope_<scope>,
    user_permissions_<id>, user_roles_<id>, user_role_names_<id>,
    user_role_slugs_<id>

Expiry is checked lazily on read. Invalidation is synchronous: once
invalidate() returns, no thread reads the old value.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from role_permission_manager.utils import get_logger

log = get_logger(__name__)


# =============================================================================
# CACHE KEYS
# =============================================================================

class CacheKeyKind(str, PyEnum):
    ALL_ROLES = "all_roles"
    ALL_PERMISSIONS = "all_permissions"
    SCOPED_PERMISSIONS = "all_permissions_scope"
    USER_PERMISSIONS = "user_permissions"
    USER_ROLES = "user_roles"
    USER_ROLE_NAMES = "user_role_names"
    USER_ROLE_SLUGS = "user_role_slugs"


@dataclass(frozen=True)
class CacheKey:
    kind: CacheKeyKind
    arg: Optional[str] = None

    def __str__(self) -> str:
        if self.arg is None:
            return self.kind.value
        return f"{self.kind.value}_{self.arg}"

    @classmethod
    def all_roles(cls) -> "CacheKey":
        return cls(CacheKeyKind.ALL_ROLES)

    @classmethod
    def all_permissions(cls) -> "CacheKey":
        return cls(CacheKeyKind.ALL_PERMISSIONS)

    @classmethod
    def scoped_permissions(cls, scope: Optional[str]) -> "CacheKey":
        # Empty and "0" scopes fall back to the unscoped list
        if scope is None or scope in ("", "0"):
            return cls.all_permissions()
        return cls(CacheKeyKind.SCOPED_PERMISSIONS, scope)

    @classmethod
    def user_permissions(cls, principal_id: str) -> "CacheKey":
        return cls(CacheKeyKind.USER_PERMISSIONS, str(principal_id))

    @classmethod
    def user_roles(cls, principal_id: str) -> "CacheKey":
        return cls(CacheKeyKind.USER_ROLES, str(principal_id))

    @classmethod
    def user_role_names(cls, principal_id: str) -> "CacheKey":
        return cls(CacheKeyKind.USER_ROLE_NAMES, str(principal_id))

    @classmethod
    def user_role_slugs(cls, principal_id: str) -> "CacheKey":
        return cls(CacheKeyKind.USER_ROLE_SLUGS, str(principal_id))

    @classmethod
    def user_role_keys(cls, principal_id: str) -> list["CacheKey"]:
        return [
            cls.user_roles(principal_id),
            cls.user_role_names(principal_id),
            cls.user_role_slugs(principal_id),
        ]


# =============================================================================
# CACHE ENTRY
# =============================================================================

@dataclass
class CacheEntry:
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# =============================================================================
# PROCESS-LEVEL CACHE
# =============================================================================

class PermissionCache:
    """
    Thread-safe key/value cache with per-entry TTL.

    Concurrent misses on the same key may both compute; the last write wins.
    The lock is never held while a compute coroutine runs.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: CacheKey) -> tuple[bool, Any]:
        """Return (found, value)."""
        if not self.enabled:
            return False, None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return False, None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return False, None
            self._hits += 1
            return True, entry.value

    def set(self, key: CacheKey, value: Any, ttl: Optional[int] = None) -> None:
        if not self.enabled:
            return
        ttl = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        found, value = self.get(key)
        if found:
            return value
        value = await compute()
        self.set(key, value, ttl)
        return value

    def invalidate(self, key: CacheKey) -> None:
        with self._lock:
            if self._entries.pop(key, None) is not None:
                log.debug(f"Cache invalidated: {key}")

    def invalidate_all(self, keys: Iterable[CacheKey]) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def invalidate_kind(self, kind: CacheKeyKind) -> int:
        """Drop every key of one kind, e.g. all user_permissions_* entries."""
        with self._lock:
            stale = [key for key in self._entries if key.kind is kind]
            for key in stale:
                del self._entries[key]
            if stale:
                log.debug(f"Cache invalidated {len(stale)} {kind.value} entries")
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
                "enabled": self.enabled,
            }
