# src/store/redis_store.py — v1
"""Redis-based state store (STATE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Entities are hashes whose values are JSON-encoded. Conditional status
transitions run as one Lua script so the status check and the write are a
single atomic step on the server; counters use HINCRBY.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from a11ybatch.core.models import (
    OPEN_PAGE_STATUSES,
    BatchPage,
    BatchSession,
    BatchStatus,
    PageStatus,
    Violation,
    ViolationRecord,
)
from a11ybatch.store.base_state_store import (
    BATCH_TRANSITION_FIELDS,
    PAGE_TRANSITION_FIELDS,
    SET_ONCE_FIELDS,
    BaseStateStore,
    StateStoreError,
    check_fields,
)

logger = logging.getLogger(__name__)

_DEFAULT_PREFIX = "a11ybatch:"

# KEYS[1] entity hash. ARGV: target status, n, n allowed statuses,
# then (field, value, set_once) triples. Values are JSON-encoded.
_TRANSITION_LUA = """
local current = redis.call('HGET', KEYS[1], 'status')
if not current then return 0 end
local n = tonumber(ARGV[2])
local allowed = false
for i = 3, 2 + n do
  if ARGV[i] == current then allowed = true break end
end
if not allowed then return 0 end
redis.call('HSET', KEYS[1], 'status', ARGV[1])
local i = 3 + n
while i <= #ARGV do
  local field, value, once = ARGV[i], ARGV[i + 1], ARGV[i + 2]
  local existing = redis.call('HGET', KEYS[1], field)
  if once ~= '1' or not existing or existing == 'null' then
    redis.call('HSET', KEYS[1], field, value)
  end
  i = i + 3
end
return 1
"""


def _encode(value: Any) -> str:
    if hasattr(value, "isoformat"):
        value = value.isoformat()
    return json.dumps(value)


def _encode_model(model: BatchSession | BatchPage) -> dict[str, str]:
    return {k: json.dumps(v) for k, v in model.model_dump(mode="json").items()}


def _decode(raw: dict[str, str]) -> dict[str, Any]:
    return {k: json.loads(v) for k, v in raw.items()}


class RedisStateStore(BaseStateStore):
    """Redis-backed state store for deployments sharing state across processes."""

    def __init__(self, redis_url: str, key_prefix: str = _DEFAULT_PREFIX) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError("redis package required: pip install redis") from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._redis_error = redis.RedisError
        self._prefix = key_prefix
        self._transition_script = self._client.register_script(_TRANSITION_LUA)

    # --- keys ---

    def _batch_key(self, batch_id: str) -> str:
        return f"{self._prefix}batch:{batch_id}"

    def _pages_key(self, batch_id: str) -> str:
        return f"{self._prefix}batch:{batch_id}:pages"

    def _violations_key(self, batch_id: str) -> str:
        return f"{self._prefix}batch:{batch_id}:violations"

    def _page_key(self, page_id: str) -> str:
        return f"{self._prefix}page:{page_id}"

    def _owner_key(self, owner_id: str) -> str:
        return f"{self._prefix}owner:{owner_id}:batches"

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except self._redis_error as e:
            raise StateStoreError(f"Redis {action} failed: {e}") from e

    # --- batches ---

    async def create_batch(self, batch: BatchSession, pages: list[BatchPage]) -> None:
        ordered = sorted(pages, key=lambda p: p.position)
        with self._guard("create_batch"):
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(self._batch_key(batch.id), mapping=_encode_model(batch))
            for page in ordered:
                pipe.hset(self._page_key(page.id), mapping=_encode_model(page))
            if ordered:
                pipe.rpush(self._pages_key(batch.id), *[p.id for p in ordered])
            pipe.zadd(
                self._owner_key(batch.owner_id),
                {batch.id: batch.created_at.timestamp()},
            )
            pipe.execute()

    async def get_batch(self, batch_id: str) -> BatchSession | None:
        with self._guard("get_batch"):
            raw = self._client.hgetall(self._batch_key(batch_id))
        return BatchSession(**_decode(raw)) if raw else None

    async def list_batches(
        self, owner_id: str, limit: int = 20, offset: int = 0,
    ) -> tuple[list[BatchSession], int]:
        key = self._owner_key(owner_id)
        with self._guard("list_batches"):
            total = int(self._client.zcard(key))
            ids = self._client.zrevrange(key, offset, offset + limit - 1) if limit > 0 else []
        batches: list[BatchSession] = []
        for batch_id in ids:
            batch = await self.get_batch(batch_id)
            if batch is not None:
                batches.append(batch)
        return batches, total

    # --- pages ---

    async def get_page(self, page_id: str) -> BatchPage | None:
        with self._guard("get_page"):
            raw = self._client.hgetall(self._page_key(page_id))
        return BatchPage(**_decode(raw)) if raw else None

    async def list_pages(
        self, batch_id: str, status: PageStatus | None = None,
    ) -> list[BatchPage]:
        with self._guard("list_pages"):
            page_ids = self._client.lrange(self._pages_key(batch_id), 0, -1)
            pipe = self._client.pipeline(transaction=False)
            for page_id in page_ids:
                pipe.hgetall(self._page_key(page_id))
            raws = pipe.execute() if page_ids else []
        pages = [BatchPage(**_decode(raw)) for raw in raws if raw]
        pages.sort(key=lambda p: p.position)
        if status is not None:
            pages = [p for p in pages if p.status == status]
        return pages

    # --- transitions ---

    def _transition(
        self,
        key: str,
        from_statuses: Iterable[str],
        to_status: str,
        fields: dict[str, Any],
    ) -> bool:
        allowed = [json.dumps(s) for s in from_statuses]
        args: list[str] = [json.dumps(to_status), str(len(allowed)), *allowed]
        for name, value in fields.items():
            args.extend([name, _encode(value), "1" if name in SET_ONCE_FIELDS else "0"])
        with self._guard("transition"):
            return bool(self._transition_script(keys=[key], args=args))

    async def transition_batch(
        self,
        batch_id: str,
        from_statuses: Iterable[BatchStatus],
        to_status: BatchStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, BATCH_TRANSITION_FIELDS)
        return self._transition(self._batch_key(batch_id), from_statuses, to_status, fields)

    async def transition_page(
        self,
        page_id: str,
        from_statuses: Iterable[PageStatus],
        to_status: PageStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, PAGE_TRANSITION_FIELDS)
        return self._transition(self._page_key(page_id), from_statuses, to_status, fields)

    async def skip_open_pages(self, batch_id: str, completed_at: Any) -> int:
        with self._guard("skip_open_pages"):
            page_ids = self._client.lrange(self._pages_key(batch_id), 0, -1)
        skipped = 0
        for page_id in page_ids:
            if self._transition(
                self._page_key(page_id),
                OPEN_PAGE_STATUSES,
                "skipped",
                {"completed_at": completed_at},
            ):
                skipped += 1
        return skipped

    async def increment_counters(
        self,
        batch_id: str,
        completed: int = 0,
        failed: int = 0,
        violations: int = 0,
    ) -> None:
        key = self._batch_key(batch_id)
        with self._guard("increment_counters"):
            pipe = self._client.pipeline(transaction=True)
            pipe.hincrby(key, "completed_pages", completed)
            pipe.hincrby(key, "failed_pages", failed)
            pipe.hincrby(key, "total_violations", violations)
            pipe.execute()

    # --- violations ---

    async def save_violations(
        self, batch_id: str, page_id: str, violations: list[Violation],
    ) -> None:
        if not violations:
            return
        payloads = [
            ViolationRecord(batch_id=batch_id, page_id=page_id, **v.model_dump())
            .model_dump_json()
            for v in violations
        ]
        with self._guard("save_violations"):
            self._client.rpush(self._violations_key(batch_id), *payloads)

    async def list_violations(self, batch_id: str) -> list[ViolationRecord]:
        with self._guard("list_violations"):
            raw = self._client.lrange(self._violations_key(batch_id), 0, -1)
        records: list[ViolationRecord] = []
        for item in raw:
            try:
                records.append(ViolationRecord(**json.loads(item)))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable violation record in %s: %s", batch_id, e)
        return records

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
