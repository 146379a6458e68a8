"""Pydantic schemas for import run results, run history and feed previews."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from feed_importer.core.schemas.feeds import RunStatus


class RunResult(BaseModel):
    """Summary returned by every import run, including refused ones.

    Attributes:
        success: ``True`` when the run got past fetching and processed its
            items, whatever their individual outcomes.  ``False`` for
            refused runs and fetch failures.
        created: Records inserted.
        updated: Existing records updated.
        skipped: Items skipped.
        errors: Items that failed.
        message: One-line human-readable summary.
        status: Aggregate status; ``None`` when the run was refused before
            it started.
    """

    success: bool
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    message: str = ""
    status: Optional[RunStatus] = None


class ImportRunRecord(BaseModel):
    """One immutable run history entry, newest first in the log."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    feed_id: str
    feed_name: str
    timestamp: datetime
    status: RunStatus
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    error_messages: tuple[str, ...] = ()
    duration_seconds: float = 0.0


class PreviewItem(BaseModel):
    title: str = ""
    link: str = ""
    pub_date: str = ""
    description: str = ""
    has_content: bool = False
    categories: list[str] = Field(default_factory=list)


class FeedPreview(BaseModel):
    """Snapshot of a feed shown to an operator before the feed is saved."""

    feed_title: str = ""
    item_count: int = 0
    sample_items: list[PreviewItem] = Field(default_factory=list)


class PreviewRequest(BaseModel):
    url: str = Field(..., min_length=1)
