"""
Caching Service.

In-process TTL cache for report aggregates that are costly to recompute on
every dashboard refresh.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

_cache_store: Dict[str, dict] = {}


class CacheService:

    @staticmethod
    async def get(key: str) -> Optional[Any]:
        entry = _cache_store.get(key)
        if not entry:
            return None

        if datetime.now(timezone.utc) > entry["expires_at"]:
            del _cache_store[key]
            return None

        return entry["data"]

    @staticmethod
    async def set(key: str, data: Any, ttl_seconds: int = 300):
        _cache_store[key] = {
            "data": data,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        }

    @staticmethod
    async def delete(key: str):
        _cache_store.pop(key, None)

    @staticmethod
    async def clear():
        _cache_store.clear()
