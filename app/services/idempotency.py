import logging

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)


class IdempotencyStore:
    def __init__(self) -> None:
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.default_ttl = settings.idempotency_ttl

    def check_and_set(self, key: str, ttl_seconds: int | None = None) -> bool:
        """Atomic operation: setnx + expire in one call. Redis недоступен -> True (fail-open)."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            created = self.client.set(f"idempotency:{key}", "1", nx=True, ex=ttl)
        except redis.RedisError as e:
            logger.warning("idempotency_store_unavailable", extra={"event_id": key, "error": str(e)})
            return True
        return created is not None

    def release(self, key: str) -> None:
        """Снять отметку, чтобы повторная доставка обработалась заново."""
        try:
            self.client.delete(f"idempotency:{key}")
        except redis.RedisError as e:
            logger.warning("idempotency_release_failed", extra={"event_id": key, "error": str(e)})
