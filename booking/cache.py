"""
Redis side cache for the admin dashboard

Mirrors capacity documents after each write and keeps coarse running totals.
Never the source of truth: every failure is logged and swallowed so the
payment path is never blocked by the cache.
"""
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import redis

from .config import CACHE_REGISTRATION_TTL, CACHE_STATS_TTL, REDIS_URL
from .domain.registrations.schemas import CapacityDocument, RegistrationRecord

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: Optional[str] = REDIS_URL) -> Optional[redis.Redis]:
    """
    Create a Redis client from REDIS_URL (standard Redis or Upstash).
    Returns None when no URL is configured.
    """
    if not redis_url:
        return None

    # Mask password in URL for logging
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        masked_url = f"{protocol}:****@{url_parts[1]}"
    else:
        masked_url = "****"
    logger.info(f"📡 Using Redis URL connection: {masked_url}")

    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self, client: Optional[redis.Redis] = None, redis_url: Optional[str] = REDIS_URL):
        self.redis_client = client
        self.redis_url = redis_url

    def _get_client(self) -> Optional[redis.Redis]:
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client(self.redis_url)
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    @property
    def enabled(self) -> bool:
        return self._get_client() is not None

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            serialized = json.dumps(value, default=str)
            client.setex(key, ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, *keys: str) -> bool:
        """Delete values from cache"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(*keys)
            logger.debug(f"✅ Cache DELETE: {', '.join(keys)}")
            return True
        except Exception as e:
            logger.error(f"❌ Cache delete error for {keys}: {e}")
            return False

    def ping(self) -> dict:
        """Round-trip check for the health endpoint"""
        client = self._get_client()
        if not client:
            return {"connected": False, "configured": False}

        started = time.perf_counter()
        try:
            client.ping()
        except Exception as e:
            logger.warning(f"⚠️ Redis ping failed: {e}")
            return {"connected": False, "configured": True, "error": str(e)}
        return {
            "connected": True,
            "configured": True,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    def increment_fields(
        self, key: str, int_fields: dict[str, int], float_fields: dict[str, float], ttl: Optional[int] = None
    ) -> bool:
        """Atomically add to hash counters; missing fields start at zero"""
        client = self._get_client()
        if not client:
            return False

        try:
            for field, amount in int_fields.items():
                client.hincrby(key, field, amount)
            for field, amount in float_fields.items():
                client.hincrbyfloat(key, field, amount)
            client.hset(key, "lastUpdated", datetime.now(timezone.utc).isoformat())
            if ttl:
                client.expire(key, ttl)
            return True
        except Exception as e:
            logger.error(f"❌ Cache increment error for {key}: {e}")
            return False


# Cache key builders (must match the admin dashboard)


def registration_key(event_id: str) -> str:
    return f"reg:{event_id}:data"


def registration_meta_key(event_id: str) -> str:
    return f"reg:{event_id}:meta"


GLOBAL_STATS_KEY = "stats:global"


def monthly_stats_key(year_month: str) -> str:
    return f"stats:monthly:{year_month}"


class RegistrationCache:
    """Write-through mirror of the capacity store"""

    def __init__(self, cache: Cache):
        self.cache = cache

    def mirror(self, event_id: str, document: CapacityDocument) -> None:
        if not self.cache.enabled:
            logger.debug("ℹ️ Cache not configured, skipping write-through")
            return
        try:
            self.cache.set(registration_key(event_id), document.to_storage(), ttl=CACHE_REGISTRATION_TTL)
            self.cache.set(
                registration_meta_key(event_id),
                {
                    "currentRegistrations": document.current_registrations,
                    "maxCapacity": document.max_capacity,
                    "eventType": document.event_type.value if document.event_type else None,
                },
                ttl=CACHE_REGISTRATION_TTL,
            )
            logger.info(f"✅ Cache write-through complete for event {event_id}")
        except Exception as e:
            logger.error(f"❌ Cache write-through error for {event_id}: {e}")

    def invalidate(self, event_id: str) -> None:
        if not self.cache.enabled:
            return
        try:
            self.cache.delete(registration_key(event_id), registration_meta_key(event_id))
            logger.info(f"✅ Invalidated cache for event {event_id}")
        except Exception as e:
            logger.error(f"❌ Cache invalidation error for {event_id}: {e}")

    def increment_stats(self, registration: RegistrationRecord) -> None:
        """
        Additive all-time and monthly totals. Not idempotent across replays;
        these are dashboard figures only.
        """
        if not self.cache.enabled:
            return
        try:
            count = registration.player_count or 1
            amount = float(registration.amount_paid or 0)
            self.cache.increment_fields(
                GLOBAL_STATS_KEY,
                int_fields={"totalRegistrations": count},
                float_fields={"totalRevenue": amount},
            )
            year_month = registration.timestamp.strftime("%Y-%m")
            self.cache.increment_fields(
                monthly_stats_key(year_month),
                int_fields={"registrations": count},
                float_fields={"revenue": amount},
                ttl=CACHE_STATS_TTL,
            )
            logger.info("✅ Stats incremented for new registration")
        except Exception as e:
            logger.error(f"❌ Stats increment error: {e}")
