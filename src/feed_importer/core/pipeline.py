"""Import pipeline: fetch a feed and upsert its items into the content store.

One call to :meth:`ImportPipeline.run` is one import run:

1. Admission: the feed must exist, be enabled (unless forced) and not be
   running already.  A refused run leaves no trace.
2. Fetch through the feed reader.  A fetch failure ends the run with status
   ``error`` and one history entry carrying the failure reason.
3. Take the first ``max_items_per_run`` items and import each one in
   isolation.  Every item yields an :class:`ItemOutcome`; a failure in one
   item never affects the others and never rolls back earlier items.
4. Aggregate the outcomes into a status, store it on the feed and append a
   history entry.

``run()`` never raises.  Anything unexpected past admission is recorded as an
``error`` run.

Deduplication: an item's key is its GUID, else its link.  The key is written
as the ``_feed_import_guid`` tag in the same transaction as the record itself
and looked up again on later runs, scoped to the feed's target collection,
so a re-run updates rather than duplicates.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from feed_importer.core.content_store import ContentStore, RecordPayload
from feed_importer.core.exceptions import (
    ConfigNotFoundError,
    DedupKeyMissingError,
    FeedDisabledError,
    FetchError,
    ImageMaterializationError,
    ItemImportError,
    RunRefusedError,
    UpsertError,
)
from feed_importer.core.feed_repository import Clock, FeedRepository, utc_now
from feed_importer.core.field_mapper import PUB_DATE_FORMAT, FieldMapper, extract
from feed_importer.core.run_lock import InProcessRunLocks, RunLocks
from feed_importer.core.run_logger import RunLogger
from feed_importer.core.schemas.feeds import FeedConfig, RunStatus, SourceField
from feed_importer.core.schemas.mapping import MappedValue, ResolvedRecord
from feed_importer.core.schemas.runs import FeedPreview, PreviewItem, RunResult
from feed_importer.feeds.items import FeedItem
from feed_importer.feeds.media import ImageMaterializer
from feed_importer.feeds.reader import FeedReader

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TAG_GUID = "_feed_import_guid"
TAG_FEED_ID = "_feed_import_feed_id"
TAG_LAST_UPDATED = "_feed_import_last_updated"

UNTITLED = "(No title)"
PREVIEW_ITEMS = 5
PREVIEW_WORDS = 30

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)


# ---------------------------------------------------------------------------
# Item outcomes
# ---------------------------------------------------------------------------


class OutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """What happened to one feed item.

    Attributes:
        kind: The outcome category.
        record_id: The created or updated record.
        item_key: The item's dedup key, when one was derived.
        error_kind: Machine-readable failure category for ``FAILED``.
        message: Failure message for ``FAILED``.
    """

    kind: OutcomeKind
    record_id: Optional[int] = None
    item_key: Optional[str] = None
    error_kind: Optional[str] = None
    message: str = ""

    @classmethod
    def failed(cls, exc: Exception, item_key: Optional[str] = None) -> ItemOutcome:
        if isinstance(exc, ItemImportError):
            return cls(
                OutcomeKind.FAILED,
                item_key=exc.item_key or item_key,
                error_kind=exc.kind,
                message=str(exc),
            )
        return cls(
            OutcomeKind.FAILED,
            item_key=item_key,
            error_kind="unexpected",
            message=str(exc) or exc.__class__.__name__,
        )


def aggregate_status(created: int, updated: int, errors: int) -> RunStatus:
    """Return the run status for the given counts."""
    if errors > 0:
        return RunStatus.PARTIAL if created + updated > 0 else RunStatus.ERROR
    return RunStatus.SUCCESS


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_text(value: MappedValue | None) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(v for v in value if v)
    return value


def _parse_published(value: MappedValue | None) -> Optional[datetime]:
    text = _as_text(value).strip()
    if not text:
        return None
    for parse in (
        lambda s: datetime.strptime(s, PUB_DATE_FORMAT),
        datetime.fromisoformat,
    ):
        try:
            parsed = parse(text)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    logger.debug("unparseable published_at value %r ignored", text)
    return None


def strip_html(text: str) -> str:
    """Remove tags (and script/style bodies) and collapse whitespace."""
    cleaned = _SCRIPT_STYLE_RE.sub(" ", text)
    cleaned = _HTML_TAG_RE.sub(" ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def trim_words(text: str, limit: int = PREVIEW_WORDS) -> str:
    words = text.split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]) + "…"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ImportPipeline:
    """Runs imports for configured feeds.

    Args:
        repository: Feed configuration store.
        reader: Feed reader used to fetch and parse feeds.
        mapper: Field mapper resolving items into records.
        store: Content store receiving the records.
        run_logger: Run history.
        images: Image materializer for featured images.
        locks: Per-feed run locks.  Defaults to an in-process lock table.
        clock: Wall clock for history timestamps and tracking tags.
        monotonic: Monotonic timer for run durations.
    """

    def __init__(
        self,
        repository: FeedRepository,
        reader: FeedReader,
        mapper: FieldMapper,
        store: ContentStore,
        run_logger: RunLogger,
        images: ImageMaterializer,
        locks: Optional[RunLocks] = None,
        clock: Clock = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._reader = reader
        self._mapper = mapper
        self._store = store
        self._run_logger = run_logger
        self._images = images
        self._locks = locks if locks is not None else InProcessRunLocks()
        self._clock = clock
        self._monotonic = monotonic

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run(self, feed_id: str, force: bool = False) -> RunResult:
        """Run one import for *feed_id*.

        Args:
            feed_id: The feed to import.
            force: Run even when the feed is disabled.

        Returns:
            The run summary.  Never raises.
        """
        start = self._monotonic()
        try:
            feed = self._admit(feed_id, force)
            with self._locks.hold(feed_id):
                return self._execute(feed, start)
        except RunRefusedError as exc:
            logger.info("feed %s: run refused: %s", feed_id, exc.message)
            return RunResult(success=False, message=exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("feed %s: import run crashed", feed_id)
            return self._record_crash(feed_id, start, exc)

    def _admit(self, feed_id: str, force: bool) -> FeedConfig:
        feed = self._repository.get(feed_id)
        if feed is None:
            raise ConfigNotFoundError(feed_id)
        if not feed.enabled and not force:
            raise FeedDisabledError(feed_id)
        return feed

    def _execute(self, feed: FeedConfig, start: float) -> RunResult:
        feed_id = feed.id or ""
        try:
            parsed = self._reader.fetch(feed.source_url)
        except FetchError as exc:
            message = str(exc)
            logger.warning("feed %s: %s", feed_id, message)
            self._repository.record_run_outcome(feed_id, RunStatus.ERROR, 0)
            self._append_history(feed, RunStatus.ERROR, [], [message], start)
            return RunResult(success=False, message=message, status=RunStatus.ERROR)

        items = parsed.items(0, feed.max_items_per_run)
        logger.info(
            "feed %s: fetched %d items, importing %d", feed_id, parsed.item_count, len(items)
        )
        outcomes = [self.import_item(feed, item) for item in items]

        created = sum(1 for o in outcomes if o.kind is OutcomeKind.CREATED)
        updated = sum(1 for o in outcomes if o.kind is OutcomeKind.UPDATED)
        skipped = sum(1 for o in outcomes if o.kind is OutcomeKind.SKIPPED)
        errors = sum(1 for o in outcomes if o.kind is OutcomeKind.FAILED)
        status = aggregate_status(created, updated, errors)

        self._repository.record_run_outcome(feed_id, status, created + updated)
        self._append_history(
            feed,
            status,
            outcomes,
            [o.message for o in outcomes if o.kind is OutcomeKind.FAILED],
            start,
        )

        message = (
            f"Import complete: {created} created, {updated} updated, "
            f"{skipped} skipped, {errors} errors."
        )
        logger.info("feed %s: %s", feed_id, message)
        return RunResult(
            success=True,
            created=created,
            updated=updated,
            skipped=skipped,
            errors=errors,
            message=message,
            status=status,
        )

    def _append_history(
        self,
        feed: FeedConfig,
        status: RunStatus,
        outcomes: list[ItemOutcome],
        messages: list[str],
        start: float,
    ) -> None:
        self._run_logger.append(
            feed_id=feed.id or "",
            feed_name=feed.name,
            timestamp=self._clock(),
            status=status,
            created=sum(1 for o in outcomes if o.kind is OutcomeKind.CREATED),
            updated=sum(1 for o in outcomes if o.kind is OutcomeKind.UPDATED),
            skipped=sum(1 for o in outcomes if o.kind is OutcomeKind.SKIPPED),
            errors=sum(1 for o in outcomes if o.kind is OutcomeKind.FAILED),
            error_messages=messages,
            duration_seconds=self._monotonic() - start,
        )

    def _record_crash(self, feed_id: str, start: float, exc: Exception) -> RunResult:
        message = f"Import failed: {exc}"
        try:
            feed = self._repository.get(feed_id)
            if feed is not None:
                self._repository.record_run_outcome(feed_id, RunStatus.ERROR, 0)
                self._append_history(feed, RunStatus.ERROR, [], [message], start)
        except Exception:  # noqa: BLE001
            logger.exception("feed %s: could not record crashed run", feed_id)
        return RunResult(success=False, message=message, status=RunStatus.ERROR)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def import_item(self, feed: FeedConfig, item: FeedItem) -> ItemOutcome:
        """Import one item and report its outcome.  Never raises."""
        item_key: Optional[str] = None
        try:
            item_key = item.guid or item.link
            if not item_key:
                raise DedupKeyMissingError()
            return self._upsert_item(feed, item, item_key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("feed %s: item %s failed: %s", feed.id, item_key or "?", exc)
            return ItemOutcome.failed(exc, item_key)

    def _upsert_item(self, feed: FeedConfig, item: FeedItem, item_key: str) -> ItemOutcome:
        collection = feed.target_collection
        existing_id = self._store.find_by_tag(collection, TAG_GUID, item_key)
        resolved = self._mapper.apply_mapping(item, feed.field_mappings)
        payload = self._build_payload(feed, item, resolved)
        tracking = {
            TAG_GUID: item_key,
            TAG_FEED_ID: feed.id or "",
            TAG_LAST_UPDATED: self._clock().strftime(PUB_DATE_FORMAT),
        }

        if existing_id is not None:
            try:
                record_id = self._store.update(existing_id, payload, tags=tracking)
            except (SQLAlchemyError, LookupError) as exc:
                raise UpsertError(
                    f"Update failed: {exc}", item_key=item_key, record_id=existing_id
                ) from exc
            kind = OutcomeKind.UPDATED
        else:
            try:
                record_id = self._store.insert(collection, payload, tags=tracking)
            except SQLAlchemyError as exc:
                raise UpsertError(f"Insert failed: {exc}", item_key=item_key) from exc
            kind = OutcomeKind.CREATED

        if resolved.featured_image_url:
            self._attach_featured_image(record_id, resolved.featured_image_url)

        for key, value in resolved.custom_values.items():
            self._store.set_custom_field(record_id, key, value)

        for taxonomy, names in resolved.taxonomy_terms.items():
            self._assign_terms(record_id, taxonomy, names)

        for key, value in resolved.meta_values.items():
            self._store.set_tag(record_id, key, _as_text(value))

        return ItemOutcome(kind, record_id=record_id, item_key=item_key)

    @staticmethod
    def _build_payload(
        feed: FeedConfig, item: FeedItem, resolved: ResolvedRecord
    ) -> RecordPayload:
        native = resolved.native_values
        title = _as_text(native.get("title")) or item.title or UNTITLED
        return RecordPayload(
            title=title,
            visibility=feed.target_visibility.value,
            owner=feed.owner,
            content=_as_text(native["content"]) if "content" in native else None,
            excerpt=_as_text(native["excerpt"]) if "excerpt" in native else None,
            published_at=_parse_published(native.get("published_at")),
        )

    def _attach_featured_image(self, record_id: int, url: str) -> None:
        try:
            if self._store.primary_image_source(record_id) == url:
                return
            asset_id = self._images.materialize(url, record_id)
            self._store.attach_primary_image(record_id, asset_id)
        except (ImageMaterializationError, SQLAlchemyError, LookupError) as exc:
            logger.info("record %d: featured image %s skipped: %s", record_id, url, exc)

    def _assign_terms(self, record_id: int, taxonomy: str, names: list[str]) -> None:
        if not self._store.taxonomy_exists(taxonomy):
            logger.debug("record %d: unknown taxonomy %r skipped", record_id, taxonomy)
            return
        term_ids: list[int] = []
        for raw_name in names:
            name = raw_name.strip()
            if not name:
                continue
            try:
                term_ids.append(self._store.ensure_taxonomy_term(taxonomy, name))
            except SQLAlchemyError as exc:
                logger.warning("taxonomy %s: could not create term %r: %s", taxonomy, name, exc)
        if term_ids:
            self._store.assign_terms(record_id, taxonomy, term_ids)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(self, url: str, limit: int = PREVIEW_ITEMS) -> FeedPreview:
        """Fetch *url* and summarise its first items.

        Raises:
            FetchError: If the feed cannot be fetched or parsed.
        """
        parsed = self._reader.fetch(url)
        samples = [
            PreviewItem(
                title=item.title,
                link=item.link,
                pub_date=_as_text(extract(item, SourceField.PUB_DATE)),
                description=trim_words(strip_html(_as_text(extract(item, SourceField.DESCRIPTION)))),
                has_content=bool(extract(item, SourceField.CONTENT)),
                categories=list(extract(item, SourceField.CATEGORIES)),
            )
            for item in parsed.items(0, limit)
        ]
        return FeedPreview(
            feed_title=parsed.title,
            item_count=parsed.item_count,
            sample_items=samples,
        )
