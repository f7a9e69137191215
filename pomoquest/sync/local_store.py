"""JSON key-value storage backed by aiocache."""

from typing import Any, Optional

from aiocache import Cache
from aiocache.serializers import JsonSerializer
import structlog

logger = structlog.get_logger()


class LocalStore:
    """Durable key-value storage used for state snapshots and the sync queue.

    Values go through JSON on every write so callers never share mutable
    objects with the cache.
    """

    def __init__(self, cache: Optional[Cache] = None, namespace: str = "pomoquest"):
        self.cache = cache or Cache(Cache.MEMORY, serializer=JsonSerializer(), namespace=namespace)

    @classmethod
    def from_url(cls, url: str, namespace: str = "pomoquest") -> "LocalStore":
        if url.startswith("memory"):
            return cls(namespace=namespace)
        cache = Cache.from_url(url)
        cache.serializer = JsonSerializer()
        cache.namespace = namespace
        return cls(cache)

    async def get(self, key: str, default: Any = None) -> Any:
        value = await self.cache.get(key)
        return default if value is None else value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        await self.cache.set(key, value, ttl=ttl)

    async def remove(self, key: str):
        await self.cache.delete(key)

    async def close(self):
        await self.cache.close()
