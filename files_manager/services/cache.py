import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

from ..core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)


class RedisClient:
    """Session store adapter: opaque keys with a fixed time-to-live."""

    def __init__(self, url: str):
        self.url = url
        self.client: Optional[redis.Redis] = None

    def connect(self) -> None:
        if self.client is not None:
            return
        self.client = redis.Redis.from_url(self.url, decode_responses=True)
        logger.info("Redis client created for %s", self.url)

    def _ensure_connected(self) -> redis.Redis:
        if self.client is None:
            raise InfrastructureError("Redis not connected")
        return self.client

    def is_alive(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError as e:
            logger.warning("Redis client not connected to the server: %s", e)
            return False

    def get(self, key: str) -> Optional[str]:
        try:
            return self._ensure_connected().get(key)
        except RedisError as e:
            raise InfrastructureError(f"Session store unavailable: {e}") from e

    def set(self, key: str, value: str, duration: int) -> None:
        try:
            self._ensure_connected().setex(key, duration, value)
        except RedisError as e:
            raise InfrastructureError(f"Session store unavailable: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._ensure_connected().delete(key)
        except RedisError as e:
            raise InfrastructureError(f"Session store unavailable: {e}") from e

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("Redis client closed")
