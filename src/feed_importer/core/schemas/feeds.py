"""Pydantic schemas for feed configurations and their mapping rules.

Every feed write goes through :class:`FeedInput` validation, which sanitizes
rather than rejects: an unknown visibility becomes ``draft``, an unknown
interval becomes ``daily``, an out-of-range item cap is clamped and a mapping
rule that does not validate is silently dropped.  The repository re-validates
on every save, so a stored feed is always in sanitized form.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

#: Default and bounds for ``max_items_per_run``.
DEFAULT_MAX_ITEMS = 20
MAX_ITEMS_CAP = 100

_COLLECTION_RE = re.compile(r"[^a-z0-9_-]")


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------


class SourceField(str, Enum):
    """Item attributes a mapping rule can read from a parsed feed item."""

    TITLE = "title"
    DESCRIPTION = "description"
    CONTENT = "content"
    LINK = "link"
    PUB_DATE = "pub_date"
    AUTHOR = "author"
    CATEGORIES = "categories"
    GUID = "guid"
    MEDIA_CONTENT_URL = "media_content_url"
    MEDIA_THUMBNAIL_URL = "media_thumbnail_url"
    ENCLOSURE_URL = "enclosure_url"
    ENCLOSURE_TYPE = "enclosure_type"


class TargetKind(str, Enum):
    """Where a mapped value lands on the target record.

    Attributes:
        NATIVE_FIELD: A built-in record field (title, content, excerpt,
            published_at) or the ``featured_image`` sentinel.
        CUSTOM_FIELD: A schema-declared custom field of the collection.
        TAXONOMY_TERM_SET: A taxonomy whose terms replace the record's terms.
        FREE_META: An arbitrary operator-named tag.
    """

    NATIVE_FIELD = "native_field"
    CUSTOM_FIELD = "custom_field"
    TAXONOMY_TERM_SET = "taxonomy_term_set"
    FREE_META = "free_meta"


class Visibility(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Interval(str, Enum):
    """Recurrence of a feed's scheduled import."""

    HOURLY = "hourly"
    TWICEDAILY = "twicedaily"
    DAILY = "daily"
    WEEKLY = "weekly"


class RunStatus(str, Enum):
    """Outcome of an import run.  ``NONE`` only appears on never-run feeds."""

    NONE = "none"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


_INTERVAL_ALIASES: dict[str, str] = {"twice-daily": "twicedaily", "twice_daily": "twicedaily"}


# ---------------------------------------------------------------------------
# Mapping rules
# ---------------------------------------------------------------------------


class MappingRule(BaseModel):
    """One source-field to target projection.

    Attributes:
        source_field: Item attribute to read.
        target_kind: Category of the destination.
        target_key: Destination key within that category.  Surrounding
            whitespace is stripped; an empty key is invalid.
    """

    source_field: SourceField
    target_kind: TargetKind
    target_key: str = Field(..., min_length=1)

    @field_validator("target_key", mode="before")
    @classmethod
    def _strip_target_key(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


def sanitize_mapping_rules(raw_rules: Any) -> list[MappingRule]:
    """Validate each raw rule independently and drop the ones that fail.

    Args:
        raw_rules: A list of dicts or :class:`MappingRule` instances.  Any
            other value yields an empty list.

    Returns:
        The valid rules in their original order.
    """
    if not isinstance(raw_rules, (list, tuple)):
        return []
    rules: list[MappingRule] = []
    for raw in raw_rules:
        if isinstance(raw, MappingRule):
            rules.append(raw)
            continue
        try:
            rules.append(MappingRule.model_validate(raw))
        except ValidationError:
            logger.debug("dropping invalid mapping rule: %r", raw)
    return rules


# ---------------------------------------------------------------------------
# Feed configuration
# ---------------------------------------------------------------------------


class FeedInput(BaseModel):
    """Operator-editable feed settings.

    Used directly as the request body for create and update; :class:`FeedConfig`
    extends it with identity and run-status fields.
    """

    name: str = ""
    source_url: str = ""
    target_collection: str = "post"
    target_visibility: Visibility = Visibility.DRAFT
    owner: str = ""
    interval: Interval = Interval.DAILY
    max_items_per_run: int = DEFAULT_MAX_ITEMS
    enabled: bool = False
    field_mappings: list[MappingRule] = Field(default_factory=list)

    @field_validator("name", "source_url", "owner", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("target_collection", mode="before")
    @classmethod
    def _sanitize_collection(cls, value: Any) -> str:
        cleaned = _COLLECTION_RE.sub("", str(value or "").strip().lower())
        return cleaned or "post"

    @field_validator("target_visibility", mode="before")
    @classmethod
    def _sanitize_visibility(cls, value: Any) -> str:
        if isinstance(value, Visibility):
            return value.value
        candidate = str(value or "").strip().lower()
        if candidate in {v.value for v in Visibility}:
            return candidate
        return Visibility.DRAFT.value

    @field_validator("interval", mode="before")
    @classmethod
    def _sanitize_interval(cls, value: Any) -> str:
        if isinstance(value, Interval):
            return value.value
        candidate = str(value or "").strip().lower()
        candidate = _INTERVAL_ALIASES.get(candidate, candidate)
        if candidate in {i.value for i in Interval}:
            return candidate
        return Interval.DAILY.value

    @field_validator("max_items_per_run", mode="before")
    @classmethod
    def _clamp_max_items(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_ITEMS
        if count <= 0:
            return DEFAULT_MAX_ITEMS
        return min(count, MAX_ITEMS_CAP)

    @field_validator("field_mappings", mode="before")
    @classmethod
    def _drop_invalid_rules(cls, value: Any) -> list[MappingRule]:
        return sanitize_mapping_rules(value)


class FeedConfig(FeedInput):
    """A stored feed configuration.

    Attributes:
        id: Opaque stable identifier; ``None`` until first saved.
        created_at: Set on first save and never changed afterwards.
        updated_at: Refreshed on every save.
        last_run_at: When the most recent run finished.
        last_run_status: Outcome of the most recent run.
        last_run_count: ``created + updated`` of the most recent run.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_run_status: RunStatus = RunStatus.NONE
    last_run_count: int = 0

    def mapping_document(self) -> list[dict[str, str]]:
        """Return the mapping rules as the JSON document stored on the row."""
        return [rule.model_dump(mode="json") for rule in self.field_mappings]
