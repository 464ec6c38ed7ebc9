"""
Redis cache for public tracking timelines.

Entries are invalidated after every committed event append, so a cached
timeline is never older than the last committed event. Cache outages degrade
to uncached reads and never fail a request or a transaction.
"""

import json
import logging
from typing import Any, Optional

from redis.exceptions import RedisError

from cargo_backend.app.core import redis_client as redis_client_module
from cargo_backend.app.core.config import settings

logger = logging.getLogger("cargo_backend.cache")


def public_timeline_key(tracking_code: str) -> str:
    return f"tracking:public:{tracking_code}"


class TrackingCache:

    @staticmethod
    def _client():
        return redis_client_module.redis_client

    @staticmethod
    async def get(tracking_code: str) -> Optional[Any]:
        try:
            raw = await TrackingCache._client().get(public_timeline_key(tracking_code))
        except RedisError as exc:
            logger.warning("Tracking cache read failed", extra={"tracking_code": tracking_code, "error": str(exc)})
            return None
        if raw is None:
            return None
        return json.loads(raw)

    @staticmethod
    async def set(tracking_code: str, timeline: Any, ttl_seconds: int = None) -> None:
        ttl_seconds = ttl_seconds or settings.tracking_cache_ttl_seconds
        try:
            await TrackingCache._client().set(
                public_timeline_key(tracking_code), json.dumps(timeline), ex=ttl_seconds
            )
        except RedisError as exc:
            logger.warning("Tracking cache write failed", extra={"tracking_code": tracking_code, "error": str(exc)})

    @staticmethod
    async def invalidate(tracking_code: str) -> None:
        try:
            await TrackingCache._client().delete(public_timeline_key(tracking_code))
        except RedisError as exc:
            logger.warning("Tracking cache invalidation failed", extra={"tracking_code": tracking_code, "error": str(exc)})
