# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests against persistent backends.

SQLite tests run everywhere, on a fresh database file per test. Redis
tests need a reachable server: set TEST_REDIS_URL (for example
``redis://localhost:6379/15``) or they are skipped. Each Redis test uses
its own key prefix and removes its keys afterwards.
"""

from __future__ import annotations

import logging
import os
import uuid

import pytest

from a11ybatch.store.sqlite_store import SqliteStateStore

logger = logging.getLogger(__name__)


# ── Pytest markers ──────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "redis: marks tests requiring a Redis server")


# ── Backends ────────────────────────────────────────────────────

@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "state" / "a11ybatch.db"


@pytest.fixture
def sqlite_store(sqlite_path):
    store = SqliteStateStore(sqlite_path)
    yield store
    store.close()


@pytest.fixture
def redis_store():
    url = os.environ.get("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set")

    from a11ybatch.store.redis_store import RedisStateStore

    prefix = f"a11ybatch-test:{uuid.uuid4().hex[:8]}:"
    store = RedisStateStore(redis_url=url, key_prefix=prefix)
    yield store
    client = store._client
    keys = list(client.scan_iter(match=f"{prefix}*"))
    if keys:
        client.delete(*keys)
    logger.debug("Removed %d redis keys under %s", len(keys), prefix)
    store.close()
