# src/notify/memory_notifier.py — v2
"""In-process fan-out notifier (NOTIFIER_BACKEND=memory).

Subscribers receive events on their own asyncio.Queue, either for one
batch or for all batches. A full subscriber queue drops the event for
that subscriber only. The last ``history_size`` events of each batch are
kept for late joiners and tests, for at most ``max_batches`` batches;
the least recently published batch is evicted first.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, defaultdict, deque

from a11ybatch.notify.base_notifier import BaseProgressNotifier
from a11ybatch.notify.events import BatchEvent

logger = logging.getLogger(__name__)

_ALL = "*"


class InMemoryNotifier(BaseProgressNotifier):
    def __init__(
        self, max_queue_size: int = 1000, history_size: int = 500, max_batches: int = 100,
    ) -> None:
        self._max_queue_size = max_queue_size
        self._history_size = history_size
        self._max_batches = max_batches
        self._subscribers: dict[str, list[asyncio.Queue[BatchEvent]]] = defaultdict(list)
        self._history: OrderedDict[str, deque[BatchEvent]] = OrderedDict()

    def subscribe(self, batch_id: str | None = None) -> asyncio.Queue[BatchEvent]:
        """Register a subscriber for one batch (or every batch if None)."""
        queue: asyncio.Queue[BatchEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[batch_id or _ALL].append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[BatchEvent], batch_id: str | None = None) -> None:
        key = batch_id or _ALL
        queues = self._subscribers.get(key, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(key, None)

    def subscriber_count(self, batch_id: str | None = None) -> int:
        return len(self._subscribers.get(batch_id or _ALL, []))

    def history(self, batch_id: str) -> list[BatchEvent]:
        """Events published for a batch, oldest first."""
        return list(self._history.get(batch_id, ()))

    def forget(self, batch_id: str) -> None:
        """Drop a batch's event history."""
        self._history.pop(batch_id, None)

    async def publish(self, batch_id: str, event: BatchEvent) -> None:
        self._remember(batch_id, event)
        for queue in [*self._subscribers.get(batch_id, []), *self._subscribers.get(_ALL, [])]:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full, dropping %s for batch %s", event.type, batch_id,
                )

    def _remember(self, batch_id: str, event: BatchEvent) -> None:
        events = self._history.get(batch_id)
        if events is None:
            events = self._history[batch_id] = deque(maxlen=self._history_size)
        self._history.move_to_end(batch_id)
        events.append(event)
        while len(self._history) > self._max_batches:
            evicted, _ = self._history.popitem(last=False)
            logger.debug("Evicted event history of batch %s", evicted)
