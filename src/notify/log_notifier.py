# src/notify/log_notifier.py — v1
"""Notifier that writes every event to the log (NOTIFIER_BACKEND=log)."""

from __future__ import annotations

import logging

from a11ybatch.notify.base_notifier import BaseProgressNotifier
from a11ybatch.notify.events import BatchEvent, event_to_dict

logger = logging.getLogger(__name__)


class LogNotifier(BaseProgressNotifier):
    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def publish(self, batch_id: str, event: BatchEvent) -> None:
        logger.log(
            self._level, "Batch %s event %s", batch_id, event.type,
            extra={"data": event_to_dict(event)},
        )
