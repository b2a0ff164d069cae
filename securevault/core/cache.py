"""
Cache Manager
In-memory TTL cache for identity-provider metadata (discovery document, JWKS)
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from securevault.core.logging import get_logger

logger = get_logger(__name__)

# Cache keys
OIDC_DISCOVERY_KEY = "oidc:discovery"
OIDC_JWKS_KEY = "oidc:jwks"


class CacheManager:
    """
    Simple in-memory cache manager with TTL support

    Instances are injected where needed; nothing reads module state directly
    except through get_cache_manager().
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from the cache

        Returns:
            Cached value or None if not found/expired
        """
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            value, expiry = entry
            if datetime.now() > expiry:
                del self._cache[key]
                logger.debug(f"Cache expired: {key}")
                return None

            return value

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        """Store a value for ttl seconds"""
        async with self._lock:
            self._cache[key] = (value, datetime.now() + timedelta(seconds=ttl))
            logger.debug(f"Cache set: {key} (TTL: {ttl}s)")

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int = 3600,
    ) -> Any:
        """Return the cached value, calling loader to populate it on a miss"""
        value = await self.get(key)
        if value is not None:
            return value

        value = await loader()
        await self.set(key, value, ttl=ttl)
        return value

    async def delete(self, key: str) -> bool:
        """Delete a key, returning whether it was present"""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"Cache deleted: {key}")
                return True
            return False

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix"""
        async with self._lock:
            keys = [key for key in self._cache if key.startswith(prefix)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    async def clear(self) -> int:
        """Clear all cache entries"""
        async with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info(f"Cache cleared: {count} entries")
            return count


_cache_manager: Optional[CacheManager] = None


def get_cache_manager() -> CacheManager:
    """Get or create the process-wide cache manager"""
    global _cache_manager
    if _cache_manager is None:
        _cache_manager = CacheManager()
    return _cache_manager
