"""Redis-backed permission cache.

One entry per (resource, user) pair holding the resolved permission level:

    <namespace>:<resource_id>:<user_id>  ->  "VIEWER" | "EDITOR" | "MANAGER" | "null"

"null" records a confirmed "no permission" result so repeated denials do not
re-run full resolution. Entries expire after `settings.permission_cache_ttl`
seconds and are dropped in bulk per resource whenever its grants change.

The cache never blocks a decision: any Redis failure is logged and treated
as a miss (reads) or a no-op (writes and invalidation).
"""

import enum
import logging
import re
from typing import Optional

import redis.asyncio as redis
from flowdesk.config import settings
from flowdesk.models.permission import ResourcePermission, ResourceType

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


# ── Permission cache ────────────────────────────────────────

NULL_SENTINEL = "null"

CACHE_NAMESPACES: dict[ResourceType, str] = {
    ResourceType.WORKFLOW: "workflow:permission",
    ResourceType.KNOWLEDGE_BASE: "kb:permission",
    ResourceType.TEMPLATE: "template:permission",
}

_GLOB_SPECIAL_RE = re.compile(r"([*?\[\]\\])")


class CacheLookup(enum.Enum):
    """Non-level outcomes of a cache read."""

    MISS = "miss"
    DENIED = "denied"


def _escape_glob(value: str) -> str:
    return _GLOB_SPECIAL_RE.sub(r"\\\1", value)


class PermissionCache:
    """Read-through cache of resolved permission levels for one resource kind.

    `client` is anything exposing the redis.asyncio subset used here:
    get, setex, scan and delete.
    """

    def __init__(
        self,
        client,
        namespace: str,
        ttl: int | None = None,
        scan_count: int | None = None,
    ):
        self._client = client
        self.namespace = namespace
        self.ttl = ttl if ttl is not None else settings.permission_cache_ttl
        self.scan_count = scan_count or settings.permission_cache_scan_count

    def key(self, resource_id: str, user_id: str) -> str:
        return f"{self.namespace}:{resource_id}:{user_id}"

    def resource_pattern(self, resource_id: str) -> str:
        return f"{self.namespace}:{_escape_glob(resource_id)}:*"

    async def get(
        self, resource_id: str, user_id: str
    ) -> ResourcePermission | CacheLookup:
        """Return the cached level, CacheLookup.DENIED, or CacheLookup.MISS."""
        key = self.key(resource_id, user_id)
        try:
            value = await self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Permission cache read failed (treating as miss): {e}")
            return CacheLookup.MISS

        if value is None:
            logger.debug(f"Cache MISS: {key}")
            return CacheLookup.MISS
        if isinstance(value, bytes):
            value = value.decode()

        logger.debug(f"Cache HIT: {key}")
        if value == NULL_SENTINEL:
            return CacheLookup.DENIED
        try:
            return ResourcePermission(value)
        except ValueError:
            logger.warning(f"Ignoring unrecognised cached permission {value!r} at {key}")
            return CacheLookup.MISS

    async def set(
        self,
        resource_id: str,
        user_id: str,
        permission: ResourcePermission | None,
        ttl: int | None = None,
    ) -> None:
        """Store a resolved level; None is stored as the "null" sentinel."""
        value = NULL_SENTINEL if permission is None else permission.value
        try:
            await self._client.setex(
                self.key(resource_id, user_id),
                ttl if ttl is not None else self.ttl,
                value,
            )
        except redis.RedisError as e:
            logger.warning(f"Permission cache write failed: {e}")

    async def invalidate_resource(self, resource_id: str) -> int:
        """Delete every user's entry for a resource.

        Walks the keyspace with SCAN (never KEYS) and deletes each batch as it
        is returned, until the cursor comes back as 0. Returns the number of
        keys deleted.
        """
        pattern = self.resource_pattern(resource_id)
        deleted = 0
        try:
            cursor = 0
            while True:
                cursor, keys = await self._client.scan(
                    cursor=cursor, match=pattern, count=self.scan_count
                )
                if keys:
                    await self._client.delete(*keys)
                    deleted += len(keys)
                if int(cursor) == 0:
                    break
        except redis.RedisError as e:
            logger.warning(f"Failed to invalidate permission cache {pattern}: {e}")
            return deleted

        if deleted:
            logger.info(f"Invalidated {deleted} permission cache keys matching {pattern}")
        return deleted


def build_permission_caches(client) -> dict[ResourceType, PermissionCache]:
    """One PermissionCache per resource kind, all sharing `client`."""
    return {
        resource_type: PermissionCache(client, namespace)
        for resource_type, namespace in CACHE_NAMESPACES.items()
    }
