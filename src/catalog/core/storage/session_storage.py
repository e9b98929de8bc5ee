"""Session storage interface and implementations.

Provides a unified interface for storing auth sessions and user sessions
with Redis-first approach and in-memory fallback.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.catalog.core.errors import StorageUnavailable
from src.catalog.runtime.config.config_data import RedisConfig

T = TypeVar("T", bound=BaseModel)


class SessionStorage(ABC):
    """Abstract interface for session storage backends."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store a session with TTL.

        Args:
            key: Session identifier
            value: Session data (Pydantic model)
            ttl_seconds: Time to live in seconds
        """

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """Retrieve a session.

        Args:
            key: Session identifier
            model_class: Pydantic model class to deserialize to

        Returns:
            Session data, or None if not found, expired, or not of the expected shape
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a session. Deleting a missing key is not an error."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Clean up expired sessions.

        Returns:
            Number of sessions cleaned up
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if storage backend is available."""


class InMemorySessionStorage(SessionStorage):
    """In-memory session storage with TTL support."""

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        expires_at = time.time() + ttl_seconds
        self._data[key] = {
            "data": json.loads(value.model_dump_json()),
            "expires_at": expires_at,
        }

    async def get(self, key: str, model_class: type[T]) -> T | None:
        if key not in self._data:
            return None

        entry = self._data[key]
        if time.time() > entry["expires_at"]:
            del self._data[key]
            return None

        try:
            return model_class.model_validate(entry["data"])
        except ValidationError:
            logger.warning("Discarding session record with unexpected shape")
            del self._data[key]
            return None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired_keys = [
            key for key, entry in self._data.items() if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self._data[key]

        return len(expired_keys)

    def is_available(self) -> bool:
        """In-memory storage is always available."""
        return True


class RedisSessionStorage(SessionStorage):
    """Redis-based session storage with serialization."""

    def __init__(self, redis_client):
        self._redis = redis_client
        self._available = True

    def _unavailable(self, operation: str, error: Exception) -> StorageUnavailable:
        self._available = False
        logger.bind(error_type=type(error).__name__).warning(
            "Redis {} failed: {}", operation, error
        )
        return StorageUnavailable("Session store unavailable")

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(key, ttl_seconds, value.model_dump_json())
            self._available = True
        except Exception as e:
            raise self._unavailable("set", e) from e

    async def get(self, key: str, model_class: type[T]) -> T | None:
        try:
            data = await self._redis.get(key)
            self._available = True
        except Exception as e:
            raise self._unavailable("get", e) from e

        if data is None:
            return None

        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            return model_class.model_validate_json(data)
        except ValidationError:
            logger.warning("Discarding session record with unexpected shape")
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
            self._available = True
        except Exception as e:
            raise self._unavailable("delete", e) from e

    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    def is_available(self) -> bool:
        return self._available

    async def ping(self) -> bool:
        """Test Redis connection health."""
        try:
            await self._redis.ping()
            self._available = True
            return True
        except Exception:
            self._available = False
            return False

    async def close(self) -> None:
        await self._redis.aclose()


async def create_session_storage(config: RedisConfig) -> SessionStorage:
    """Attempt to create Redis storage, fall back to in-memory."""
    if not config.enabled or not config.url:
        logger.info("Session storage: Redis not configured, using in-memory storage")
        return InMemorySessionStorage()

    import redis.asyncio as redis

    redis_client = redis.from_url(
        config.connection_string,
        encoding="utf-8",
        decode_responses=config.decode_responses,
        socket_connect_timeout=2,
        socket_timeout=2,
    )

    redis_storage = RedisSessionStorage(redis_client)
    if await redis_storage.ping():
        logger.info("Session storage: Redis connected")
        return redis_storage

    logger.warning("Redis unavailable, using in-memory session storage")
    await redis_storage.close()
    return InMemorySessionStorage()
