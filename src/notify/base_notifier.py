# src/notify/base_notifier.py — v1
"""Abstract progress notifier interface and the best-effort publish helper.

Delivery is at-most-once. The state store is the source of truth, so a
failed or slow publish must never stall or fail batch processing; callers
go through ``safe_publish``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from a11ybatch.notify.events import BatchEvent

logger = logging.getLogger(__name__)

DEFAULT_PUBLISH_TIMEOUT_S = 5.0


class BaseProgressNotifier(ABC):
    """Unified interface for progress event sinks."""

    @abstractmethod
    async def publish(self, batch_id: str, event: BatchEvent) -> None:
        """Push one event to the batch's subscribers."""

    async def aclose(self) -> None:  # noqa: B027
        """Release resources held by the notifier."""


async def safe_publish(
    notifier: BaseProgressNotifier | None,
    batch_id: str,
    event: BatchEvent,
    timeout_s: float = DEFAULT_PUBLISH_TIMEOUT_S,
) -> bool:
    """Publish an event, logging instead of raising on failure.

    Returns:
        True if the notifier accepted the event.
    """
    if notifier is None:
        return False
    try:
        await asyncio.wait_for(notifier.publish(batch_id, event), timeout=timeout_s)
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "Publishing %s for batch %s timed out after %.1fs",
            event.type, batch_id, timeout_s,
        )
    except Exception:
        logger.warning(
            "Publishing %s for batch %s failed", event.type, batch_id, exc_info=True,
        )
    return False
