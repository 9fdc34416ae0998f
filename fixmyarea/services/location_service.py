"""
FixMyArea - Location Lookups
State -> district -> village drop-downs over the location catalog,
cached in Redis (or process memory when Redis is unavailable).
"""
import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.exceptions import ValidationError
from fixmyarea.models.db_models import LocationCatalog
from fixmyarea.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "locations:"


class LocationCache:
    """TTL cache of catalog lookups, keyed by query"""

    def __init__(self, settings: Settings = None, clock: Clock = utcnow):
        self.settings = settings or default_settings
        self.clock = clock
        self.ttl = self.settings.LOCATION_CACHE_TTL_SECONDS
        self.redis_client: Optional[redis.Redis] = None
        self._memory_store: Dict[str, Dict[str, Any]] = {}
        if self.settings.REDIS_URL:
            self.redis_client = redis.from_url(self.settings.REDIS_URL, decode_responses=True)

    def _fallback(self, error: Exception) -> None:
        logger.warning("Redis unavailable, using in-memory location cache: %s", error)
        self.redis_client = None

    async def get(self, key: str) -> Optional[List[str]]:
        key = f"{KEY_PREFIX}{key}"
        if self.redis_client is not None:
            try:
                data = await self.redis_client.get(key)
                return json.loads(data) if data else None
            except RedisError as e:
                self._fallback(e)

        entry = self._memory_store.get(key)
        if entry is None:
            return None
        if self.clock() >= entry["expires"]:
            del self._memory_store[key]
            return None
        return entry["value"]

    async def set(self, key: str, value: List[str]) -> None:
        key = f"{KEY_PREFIX}{key}"
        if self.redis_client is not None:
            try:
                await self.redis_client.setex(key, self.ttl, json.dumps(value))
                return
            except RedisError as e:
                self._fallback(e)

        self._memory_store[key] = {
            "value": value,
            "expires": self.clock() + timedelta(seconds=self.ttl),
        }

    async def invalidate(self) -> None:
        """Drop every cached lookup, e.g. after the catalog is reloaded"""
        if self.redis_client is not None:
            try:
                keys = [k async for k in self.redis_client.scan_iter(match=f"{KEY_PREFIX}*")]
                if keys:
                    await self.redis_client.delete(*keys)
            except RedisError as e:
                self._fallback(e)
        self._memory_store.clear()

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None


_cache: Optional[LocationCache] = None


def get_location_cache() -> LocationCache:
    """FastAPI dependency; one cache per process"""
    global _cache
    if _cache is None:
        _cache = LocationCache()
    return _cache


class LocationService:
    def __init__(self, db: AsyncSession, cache: LocationCache):
        self.db = db
        self.cache = cache

    async def _distinct(self, key: str, column, *criteria) -> List[str]:
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        result = await self.db.execute(
            select(column).where(*criteria).distinct().order_by(column)
        )
        values = [row for row in result.scalars()]
        await self.cache.set(key, values)
        return values

    async def states(self) -> List[str]:
        return await self._distinct("states", LocationCatalog.state)

    async def districts(self, state: Optional[str]) -> List[str]:
        if not state:
            raise ValidationError("State parameter is required")
        return await self._distinct(
            f"districts:{state}", LocationCatalog.district, LocationCatalog.state == state
        )

    async def villages(self, state: Optional[str], district: Optional[str]) -> List[str]:
        if not state or not district:
            raise ValidationError("State and district parameters are required")
        return await self._distinct(
            f"villages:{state}:{district}",
            LocationCatalog.village,
            LocationCatalog.state == state,
            LocationCatalog.district == district,
        )
