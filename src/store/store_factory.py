# src/store/store_factory.py — v1
"""Factory for state store instantiation."""

from __future__ import annotations

from a11ybatch.config.settings import Settings
from a11ybatch.store.base_state_store import BaseStateStore


def create_state_store(settings: Settings | None = None) -> BaseStateStore:
    """Instantiate the configured state backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseStateStore implementation.
    """
    backend = "memory" if settings is None else settings.state_backend

    if backend == "memory":
        from a11ybatch.store.memory_store import InMemoryStateStore
        return InMemoryStateStore()

    if backend == "sqlite":
        from a11ybatch.store.sqlite_store import SqliteStateStore
        return SqliteStateStore(db_path=settings.state_sqlite_path)

    if backend == "redis":
        from a11ybatch.store.redis_store import RedisStateStore
        if not settings.state_redis_url:
            raise ValueError("STATE_REDIS_URL must be set when STATE_BACKEND=redis")
        return RedisStateStore(redis_url=settings.state_redis_url)

    raise ValueError(f"Unsupported state backend: {backend!r}")
