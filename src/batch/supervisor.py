# src/batch/supervisor.py — v1
"""Task supervisor: one asyncio task per batch run.

A batch has at most one processing loop at a time: starting a batch whose
previous run is still finishing chains the new run after it. A run that
dies with an exception marks its batch ``error`` instead of crashing the
host process.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from a11ybatch.core.models import TERMINAL_BATCH_STATUSES, utcnow
from a11ybatch.logging.context import set_batch_context

if TYPE_CHECKING:
    from a11ybatch.store.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

_NON_TERMINAL = ("pending", "running", "paused")


class BatchTaskSupervisor:
    """Spawn, track and guard per-batch processing tasks."""

    def __init__(self, store: BaseStateStore) -> None:
        self._store = store
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def start(
        self,
        batch_id: str,
        run: Callable[[str], Awaitable[object]],
        owner_id: str | None = None,
    ) -> asyncio.Task[None]:
        """Schedule ``run(batch_id)`` as the batch's next processing task."""
        previous = self._tasks.get(batch_id)
        task = asyncio.create_task(
            self._guarded(batch_id, run, previous, owner_id),
            name=f"batch-{batch_id}",
        )
        self._tasks[batch_id] = task
        task.add_done_callback(lambda t: self._forget(batch_id, t))
        return task

    def _forget(self, batch_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(batch_id) is task:
            del self._tasks[batch_id]

    def is_running(self, batch_id: str) -> bool:
        task = self._tasks.get(batch_id)
        return task is not None and not task.done()

    async def wait(self, batch_id: str) -> None:
        """Wait for the batch's current task, if any."""
        task = self._tasks.get(batch_id)
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Cancel every running task and wait for them to unwind."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _guarded(
        self,
        batch_id: str,
        run: Callable[[str], Awaitable[object]],
        previous: asyncio.Task[None] | None,
        owner_id: str | None,
    ) -> None:
        set_batch_context(batch_id, owner_id)
        if previous is not None and not previous.done():
            logger.debug("Waiting for previous run of batch %s to finish", batch_id)
            await asyncio.wait({previous})
        try:
            await run(batch_id)
        except asyncio.CancelledError:
            logger.info("Processing of batch %s was cancelled", batch_id)
            raise
        except Exception:
            logger.exception("Batch %s failed with a fatal error", batch_id)
            await self.mark_error(batch_id)

    async def mark_error(self, batch_id: str) -> bool:
        """Move a non-terminal batch to ``error``. Never raises."""
        try:
            marked = await self._store.transition_batch(
                batch_id, _NON_TERMINAL, "error", completed_at=utcnow(),
            )
        except Exception:
            logger.exception("Could not mark batch %s as error", batch_id)
            return False
        if marked:
            logger.error("Batch %s marked as error", batch_id)
        else:
            logger.warning(
                "Batch %s not marked as error: missing or already in %s",
                batch_id, "/".join(sorted(TERMINAL_BATCH_STATUSES)),
            )
        return marked
