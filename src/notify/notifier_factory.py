# src/notify/notifier_factory.py — v1
"""Factory for progress notifier instantiation."""

from __future__ import annotations

from a11ybatch.config.settings import Settings
from a11ybatch.notify.base_notifier import BaseProgressNotifier


def create_notifier(settings: Settings | None = None) -> BaseProgressNotifier:
    """Instantiate the configured notifier. Defaults to logging events."""
    backend = "log" if settings is None else settings.notifier_backend

    if backend == "log":
        from a11ybatch.notify.log_notifier import LogNotifier
        return LogNotifier()

    if backend == "memory":
        from a11ybatch.notify.memory_notifier import InMemoryNotifier
        return InMemoryNotifier()

    if backend == "redis":
        from a11ybatch.notify.redis_notifier import RedisNotifier
        url = settings.notifier_redis_url_resolved
        if not url:
            raise ValueError("NOTIFIER_REDIS_URL must be set when NOTIFIER_BACKEND=redis")
        return RedisNotifier(redis_url=url, channel_prefix=settings.notifier_channel_prefix)

    raise ValueError(f"Unsupported notifier backend: {backend!r}")
