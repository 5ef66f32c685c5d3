# src/api/models.py — v2
"""API-level models: BatchDetails, BatchListPage, CreateBatchRequest.

Returned by the BatchService facade; serialized with camelCase keys for
dashboards and CLI JSON output.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from a11ybatch.core.models import BatchPage, BatchProgress, BatchSession, Viewport

MAX_LIST_LIMIT = 100
DEFAULT_LIST_LIMIT = 20


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateBatchRequest(ApiModel):
    """Input of ``BatchService.create_batch`` once validated."""

    urls: list[str]
    viewport: Viewport = "desktop"
    name: str | None = None
    sitemap_url: str | None = None


class BatchDetails(ApiModel):
    """A batch together with its live progress."""

    batch: BatchSession
    progress: BatchProgress


class BatchListPage(ApiModel):
    """One page of an owner's batches, newest first."""

    items: list[BatchSession] = Field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0
    has_more: bool = False


class BatchPagesView(ApiModel):
    """A batch's pages in creation order."""

    batch_id: str
    pages: list[BatchPage] = Field(default_factory=list)
