import json
import logging
from typing import Any, Optional

import redis

from paperworth.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


def budget_key(user_id: str, month_year: str) -> str:
    return f"budgets:{user_id}:{month_year}"


def budgets_all_key(user_id: str) -> str:
    return f"budgets:{user_id}:all"


PROMOTIONS_ALL_KEY = "promotions:all"
PROMOTIONS_PATTERN = "promotions:*"


def promotions_category_key(category: str) -> str:
    return f"promotions:category:{category.lower()}"


def promotions_merchant_key(merchant: str) -> str:
    return f"promotions:merchant:{merchant.lower()}"


def promotion_id_key(promotion_id: str) -> str:
    return f"promotions:id:{promotion_id}"


class RedisCache:
    """
    Best-effort JSON cache over a redis client.

    A ``None`` client disables caching. Redis failures are logged and behave
    like a miss (reads) or a skipped write (writes).
    """

    def __init__(self, client: Optional[redis.Redis], ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", key)
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if self.client is None or value is None:
            return
        try:
            self.client.set(
                key, json.dumps(value, default=str), ex=ttl_seconds or self.ttl_seconds
            )
        except redis.RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    def delete(self, *keys: str) -> None:
        if self.client is None or not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Cache delete failed for %s: %s", ", ".join(keys), e)

    def delete_pattern(self, pattern: str) -> None:
        if self.client is None:
            return
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Cache invalidation failed for %s: %s", pattern, e)


def build_cache(settings: Settings) -> RedisCache:
    if not settings.redis_host:
        logger.info("REDIS_HOST not set, caching disabled")
        return RedisCache(None)

    kwargs = {
        "host": settings.redis_host,
        "port": settings.redis_port,
        "decode_responses": True,
        "socket_timeout": 2.0,
        "socket_connect_timeout": 2.0,
    }
    if settings.redis_password:
        kwargs["password"] = settings.redis_password
        if settings.redis_username:
            kwargs["username"] = settings.redis_username
    logger.info("Using redis cache at %s:%s", settings.redis_host, settings.redis_port)
    return RedisCache(redis.Redis(**kwargs), ttl_seconds=settings.cache_ttl_seconds)
