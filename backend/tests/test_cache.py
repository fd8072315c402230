"""Tests for the Redis-backed permission cache."""

import uuid
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from flowdesk.models.permission import ResourcePermission, ResourceType
from flowdesk.utils.cache import (
    CACHE_NAMESPACES,
    CacheLookup,
    PermissionCache,
    build_permission_caches,
)


@pytest.mark.cache
@pytest.mark.asyncio
class TestPermissionCache:

    async def test_key_shape(self, fake_redis):
        cache = PermissionCache(fake_redis, "kb:permission")
        assert cache.key("kb-1", "user-1") == "kb:permission:kb-1:user-1"
        assert cache.resource_pattern("kb-1") == "kb:permission:kb-1:*"

    async def test_pattern_escapes_glob_characters(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        assert cache.resource_pattern("a*b?") == r"workflow:permission:a\*b\?:*"

    async def test_miss_then_hit(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        assert await cache.get("wf", "u") is CacheLookup.MISS

        await cache.set("wf", "u", ResourcePermission.EDITOR)
        assert fake_redis.store["workflow:permission:wf:u"] == "EDITOR"
        assert await cache.get("wf", "u") == ResourcePermission.EDITOR

    async def test_no_permission_is_cached_as_null(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        await cache.set("wf", "u", None)

        assert fake_redis.store["workflow:permission:wf:u"] == "null"
        assert await cache.get("wf", "u") is CacheLookup.DENIED

    async def test_default_ttl_is_five_minutes(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        await cache.set("wf", "u", ResourcePermission.VIEWER)
        assert fake_redis.ttls["workflow:permission:wf:u"] == 300

    async def test_unrecognised_value_is_a_miss(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        fake_redis.store["workflow:permission:wf:u"] = "SUPERUSER"
        assert await cache.get("wf", "u") is CacheLookup.MISS

    async def test_bytes_values_decoded(self, fake_redis):
        cache = PermissionCache(fake_redis, "workflow:permission")
        fake_redis.store["workflow:permission:wf:u"] = b"MANAGER"
        assert await cache.get("wf", "u") == ResourcePermission.MANAGER


@pytest.mark.cache
@pytest.mark.asyncio
class TestInvalidation:

    async def test_every_user_entry_removed(self, fake_redis):
        cache = PermissionCache(fake_redis, "kb:permission", scan_count=3)
        resource_id = str(uuid.uuid4())
        users = [str(uuid.uuid4()) for _ in range(10)]
        for i, user_id in enumerate(users):
            await cache.set(resource_id, user_id, None if i % 2 else ResourcePermission.VIEWER)

        deleted = await cache.invalidate_resource(resource_id)

        assert deleted == len(users)
        for user_id in users:
            assert await cache.get(resource_id, user_id) is CacheLookup.MISS
        # Small page size forces several SCAN round trips
        assert fake_redis.scan_calls > 1

    async def test_other_resources_and_kinds_untouched(self, fake_redis):
        caches = build_permission_caches(fake_redis)
        kb_cache = caches[ResourceType.KNOWLEDGE_BASE]
        wf_cache = caches[ResourceType.WORKFLOW]

        await kb_cache.set("r1", "u1", ResourcePermission.VIEWER)
        await kb_cache.set("r2", "u1", ResourcePermission.VIEWER)
        await wf_cache.set("r1", "u1", ResourcePermission.EDITOR)

        assert await kb_cache.invalidate_resource("r1") == 1

        assert await kb_cache.get("r1", "u1") is CacheLookup.MISS
        assert await kb_cache.get("r2", "u1") == ResourcePermission.VIEWER
        assert await wf_cache.get("r1", "u1") == ResourcePermission.EDITOR

    async def test_nothing_cached(self, fake_redis):
        cache = PermissionCache(fake_redis, "template:permission")
        assert await cache.invalidate_resource("missing") == 0

    async def test_namespaces(self):
        assert CACHE_NAMESPACES == {
            ResourceType.WORKFLOW: "workflow:permission",
            ResourceType.KNOWLEDGE_BASE: "kb:permission",
            ResourceType.TEMPLATE: "template:permission",
        }


@pytest.mark.cache
@pytest.mark.asyncio
class TestRedisFailures:
    """Redis errors never reach the caller."""

    async def test_read_failure_is_a_miss(self, fake_redis):
        fake_redis.get = AsyncMock(side_effect=redis.ConnectionError("down"))
        cache = PermissionCache(fake_redis, "workflow:permission")
        assert await cache.get("wf", "u") is CacheLookup.MISS

    async def test_write_failure_is_ignored(self, fake_redis):
        fake_redis.setex = AsyncMock(side_effect=redis.TimeoutError("slow"))
        cache = PermissionCache(fake_redis, "workflow:permission")
        await cache.set("wf", "u", ResourcePermission.VIEWER)
        assert fake_redis.store == {}

    async def test_invalidation_failure_is_ignored(self, fake_redis):
        fake_redis.scan = AsyncMock(side_effect=redis.ConnectionError("down"))
        cache = PermissionCache(fake_redis, "workflow:permission")
        assert await cache.invalidate_resource("wf") == 0
