"""Session storage abstractions."""

from .session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    create_session_storage,
)

__all__ = [
    "InMemorySessionStorage",
    "RedisSessionStorage",
    "SessionStorage",
    "create_session_storage",
]
