"""
Read-through TTL cache for reference data.

Owned by the FastAPI app (`app.state.reference_cache`) and used by read-only
endpoints such as commission preview. The commission engine itself never
caches anything.

Usage:
    cache = ReadThroughCache()
    user = await cache.get(f"user:{user_id}", lambda: load_user(db, user_id), ttl=120)
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ReadThroughCache:
    """In-process cache; entries expire after their TTL (seconds)."""

    def __init__(self, default_ttl: int = 120):
        self.default_ttl = default_ttl
        self._entries: Dict[str, Tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """Cached value for `key`, calling `loader` on a miss or expiry.

        None results are not cached. A failing loader propagates and leaves
        the cache untouched.
        """
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                value, expires_at = entry
                if expires_at > datetime.now(timezone.utc):
                    return value
                del self._entries[key]

        value = await loader()
        if value is None:
            return None

        ttl = self.default_ttl if ttl is None else ttl
        if ttl > 0:
            async with self._lock:
                self._entries[key] = (value, datetime.now(timezone.utc) + timedelta(seconds=ttl))
        return value

    async def invalidate(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def invalidate_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
