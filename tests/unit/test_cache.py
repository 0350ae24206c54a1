"""Unit tests for the permission cache and its keys."""

import threading

import pytest

from role_permission_manager.features.permissions.cache import (
    CacheKey,
    CacheKeyKind,
    PermissionCache,
)
from tests.helpers import FakeClock


@pytest.mark.unit
class TestCacheKey:
    """Key strings and builders."""

    def test_unparameterised_keys(self):
        assert str(CacheKey.all_roles()) == "all_roles"
        assert str(CacheKey.all_permissions()) == "all_permissions"

    def test_principal_keys(self):
        assert str(CacheKey.user_permissions("42")) == "user_permissions_42"
        assert str(CacheKey.user_roles(42)) == "user_roles_42"
        assert [str(k) for k in CacheKey.user_role_keys("7")] == [
            "user_roles_7",
            "user_role_names_7",
            "user_role_slugs_7",
        ]

    def test_scoped_permissions_key(self):
        assert str(CacheKey.scoped_permissions("team-1")) == "all_permissions_scope_team-1"

    @pytest.mark.parametrize("scope", [None, "", "0"])
    def test_empty_scope_means_all_permissions(self, scope):
        assert CacheKey.scoped_permissions(scope) == CacheKey.all_permissions()

    def test_keys_are_value_objects(self):
        assert CacheKey.user_roles("1") == CacheKey(CacheKeyKind.USER_ROLES, "1")
        assert CacheKey.user_roles("1") != CacheKey.user_role_names("1")


@pytest.mark.unit
class TestPermissionCache:
    """TTL, invalidation and the disabled pass-through."""

    def test_get_miss(self):
        cache = PermissionCache()

        assert cache.get(CacheKey.all_roles()) == (False, None)

    def test_set_then_get(self):
        cache = PermissionCache()
        cache.set(CacheKey.all_roles(), ["admin"])

        assert cache.get(CacheKey.all_roles()) == (True, ["admin"])
        assert CacheKey.all_roles() in cache

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = PermissionCache(ttl_seconds=10, clock=clock)
        cache.set(CacheKey.all_roles(), ["admin"])

        clock.advance(9.9)
        assert cache.get(CacheKey.all_roles()) == (True, ["admin"])

        clock.advance(0.1)
        assert cache.get(CacheKey.all_roles()) == (False, None)
        assert CacheKey.all_roles() not in cache

    def test_per_entry_ttl_overrides_default(self):
        clock = FakeClock()
        cache = PermissionCache(ttl_seconds=10, clock=clock)
        cache.set(CacheKey.all_roles(), ["admin"], ttl=100)

        clock.advance(50)
        assert cache.get(CacheKey.all_roles())[0] is True

    def test_disabled_cache_stores_nothing(self):
        cache = PermissionCache(enabled=False)
        cache.set(CacheKey.all_roles(), ["admin"])

        assert cache.get(CacheKey.all_roles()) == (False, None)
        assert cache.stats()["size"] == 0

    def test_invalidate(self):
        cache = PermissionCache()
        cache.set(CacheKey.all_roles(), ["admin"])
        cache.invalidate(CacheKey.all_roles())
        cache.invalidate(CacheKey.all_permissions())

        assert CacheKey.all_roles() not in cache

    def test_invalidate_all(self):
        cache = PermissionCache()
        for key in CacheKey.user_role_keys("1"):
            cache.set(key, [])
        cache.set(CacheKey.user_permissions("1"), [])

        cache.invalidate_all(CacheKey.user_role_keys("1"))

        assert cache.stats()["size"] == 1
        assert CacheKey.user_permissions("1") in cache

    def test_invalidate_kind_only_touches_that_kind(self):
        cache = PermissionCache()
        cache.set(CacheKey.user_permissions("1"), [])
        cache.set(CacheKey.user_permissions("2"), [])
        cache.set(CacheKey.user_roles("1"), [])

        removed = cache.invalidate_kind(CacheKeyKind.USER_PERMISSIONS)

        assert removed == 2
        assert CacheKey.user_roles("1") in cache
        assert CacheKey.user_permissions("1") not in cache

    def test_clear(self):
        cache = PermissionCache()
        cache.set(CacheKey.all_roles(), [])
        cache.clear()

        assert cache.stats()["size"] == 0

    def test_stats_counts_hits_and_misses(self):
        cache = PermissionCache(ttl_seconds=30)
        cache.get(CacheKey.all_roles())
        cache.set(CacheKey.all_roles(), [])
        cache.get(CacheKey.all_roles())

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["ttl_seconds"] == 30
        assert stats["enabled"] is True

    @pytest.mark.asyncio
    async def test_get_or_compute_computes_once(self):
        cache = PermissionCache()
        calls = []

        async def compute():
            calls.append(1)
            return ["admin"]

        first = await cache.get_or_compute(CacheKey.all_roles(), compute)
        second = await cache.get_or_compute(CacheKey.all_roles(), compute)

        assert first == second == ["admin"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_get_or_compute_always_computes_when_disabled(self):
        cache = PermissionCache(enabled=False)
        calls = []

        async def compute():
            calls.append(1)
            return len(calls)

        assert await cache.get_or_compute(CacheKey.all_roles(), compute) == 1
        assert await cache.get_or_compute(CacheKey.all_roles(), compute) == 2


@pytest.mark.unit
class TestCacheThreads:
    """Invalidation is visible to every later read, whichever thread made it."""

    def test_invalidate_from_another_thread(self):
        cache = PermissionCache()
        key = CacheKey.user_permissions("u1")
        cache.set(key, ["edit-posts"])
        assert cache.get(key) == (True, ["edit-posts"])

        worker = threading.Thread(target=cache.invalidate, args=(key,))
        worker.start()
        worker.join()

        assert cache.get(key) == (False, None)
        assert key not in cache

    def test_concurrent_readers_and_invalidation(self):
        cache = PermissionCache()
        keys = [CacheKey.user_permissions(str(i)) for i in range(8)]
        start = threading.Barrier(len(keys))
        errors = []

        def churn(key):
            start.wait()
            for n in range(200):
                cache.set(key, n)
                found, value = cache.get(key)
                if not found or value != n:
                    errors.append((key, n, value))
                cache.invalidate(key)
                if cache.get(key) != (False, None):
                    errors.append((key, n, "stale"))

        workers = [threading.Thread(target=churn, args=(key,)) for key in keys]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert errors == []
        assert cache.stats()["size"] == 0
