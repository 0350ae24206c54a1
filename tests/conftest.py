"""Shared fixtures.

Engine tests run against InMemoryRbacStore; repository and HTTP tests
build their own stores in tests/integration.
"""

import pytest

from role_permission_manager.features.permissions.cache import PermissionCache
from role_permission_manager.features.permissions.config import PermissionConfig
from role_permission_manager.features.permissions.manager import RolePermissionManager
from role_permission_manager.features.permissions.store import InMemoryRbacStore
from tests.helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return PermissionConfig()


@pytest.fixture
def store():
    return InMemoryRbacStore()


@pytest.fixture
def cache(clock, config):
    return PermissionCache(ttl_seconds=config.cache_ttl_seconds, clock=clock)


@pytest.fixture
def manager(store, config, cache):
    return RolePermissionManager(store, config=config, cache=cache)