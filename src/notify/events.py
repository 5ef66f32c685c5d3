# src/notify/events.py — v1
"""Progress events published while a batch is processed.

The eight event types below are the complete set. Events serialize with
camelCase keys, e.g. ``{"type": "batch:page_started", "batchId": ...,
"pageUrl": ..., "pageIndex": 0}``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from a11ybatch.core.models import BatchProgress, utcnow
from a11ybatch.report.models import BatchSummary


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_id: str
    timestamp: datetime = Field(default_factory=utcnow)


class BatchStarted(_Event):
    type: Literal["batch:started"] = "batch:started"
    total_pages: int


class PageStarted(_Event):
    type: Literal["batch:page_started"] = "batch:page_started"
    page_url: str
    page_index: int


class PageComplete(_Event):
    type: Literal["batch:page_complete"] = "batch:page_complete"
    page_url: str
    violations: int
    progress: BatchProgress


class PageFailed(_Event):
    type: Literal["batch:page_failed"] = "batch:page_failed"
    page_url: str
    error: str


class BatchPaused(_Event):
    type: Literal["batch:paused"] = "batch:paused"


class BatchResumed(_Event):
    type: Literal["batch:resumed"] = "batch:resumed"


class BatchCompleted(_Event):
    type: Literal["batch:completed"] = "batch:completed"
    summary: BatchSummary


class BatchCancelled(_Event):
    type: Literal["batch:cancelled"] = "batch:cancelled"


BatchEvent = Annotated[
    Union[
        BatchStarted,
        PageStarted,
        PageComplete,
        PageFailed,
        BatchPaused,
        BatchResumed,
        BatchCompleted,
        BatchCancelled,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES: tuple[str, ...] = (
    "batch:started",
    "batch:page_started",
    "batch:page_complete",
    "batch:page_failed",
    "batch:paused",
    "batch:resumed",
    "batch:completed",
    "batch:cancelled",
)

_event_adapter: TypeAdapter[Any] = TypeAdapter(BatchEvent)


def event_to_dict(event: BatchEvent) -> dict[str, Any]:
    """JSON-ready dict with camelCase keys."""
    return event.model_dump(mode="json", by_alias=True)


def parse_event(data: dict[str, Any]) -> BatchEvent:
    """Rebuild a typed event from its serialized form."""
    return _event_adapter.validate_python(data)
