"""Tests for RedisCircuitBreakerStorage: ошибки Redis не ломают вызовы (breaker считается закрытым)."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pybreaker
import redis

from app.services.circuit_breaker import RedisCircuitBreakerStorage


def _storage(client):
    with patch("app.services.circuit_breaker.redis.Redis.from_url", return_value=client):
        return RedisCircuitBreakerStorage("conversion_service")


class TestRedisStorage:
    def test_redis_down_reads_as_closed(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        client.incr.side_effect = redis.ConnectionError("down")
        storage = _storage(client)
        assert storage.state == pybreaker.STATE_CLOSED
        assert storage.counter == 0
        assert storage.opened_at is None
        storage.state = pybreaker.STATE_OPEN
        storage.increment_counter()

    def test_reads_stored_values(self):
        opened = datetime(2025, 1, 1, tzinfo=timezone.utc)
        values = {
            "cb:conversion_service:state": "open",
            "cb:conversion_service:counter": "3",
            "cb:conversion_service:opened_at": opened.isoformat(),
        }
        client = MagicMock()
        client.get.side_effect = values.get
        storage = _storage(client)
        assert storage.state == "open"
        assert storage.counter == 3
        assert storage.opened_at == opened

    def test_state_write_sets_ttl(self):
        client = MagicMock()
        storage = _storage(client)
        storage.state = pybreaker.STATE_OPEN
        key, value = client.set.call_args.args
        assert key == "cb:conversion_service:state"
        assert value == "open"
        assert client.set.call_args.kwargs["ex"] > 0
