"""Application-wide exception hierarchy for the feed importer.

All custom exceptions subclass ``FeedImporterError``, enabling consistent
error handling and structured logging across the application.

Hierarchy::

    FeedImporterError
    ├── FetchError                  (url: str)
    ├── ItemImportError             (item_key: str | None)
    │   ├── DedupKeyMissingError
    │   └── UpsertError             (record_id: int | None)
    ├── RunRefusedError             (feed_id: str)
    │   ├── ConfigNotFoundError
    │   ├── FeedDisabledError
    │   └── RunLockedError
    └── ImageMaterializationError   (url: str)

Only ``FetchError`` and ``ItemImportError`` ever reach an operator, through
the ``error_messages`` of an import run.  ``RunRefusedError`` subclasses end a
run before it starts and leave no history entry.  ``ImageMaterializationError``
is swallowed by the pipeline.
"""

from __future__ import annotations


class FeedImporterError(Exception):
    """Base class for all feed importer exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Fetch exceptions
# ---------------------------------------------------------------------------


class FetchError(FeedImporterError):
    """Raised when a feed cannot be fetched or parsed.

    Aborts the whole import run.  The message is recorded verbatim as the
    run's single error message.

    Args:
        message: Human-readable description of the failure.
        url: The feed URL that failed.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


# ---------------------------------------------------------------------------
# Per-item exceptions
# ---------------------------------------------------------------------------


class ItemImportError(FeedImporterError):
    """Base class for failures scoped to a single feed item.

    Counted as one error for the run; processing continues with the next item.

    Args:
        message: Human-readable description of the failure.
        item_key: Dedup key of the item, when one could be derived.
    """

    kind: str = "item_error"

    def __init__(self, message: str, item_key: str | None = None) -> None:
        super().__init__(message)
        self.item_key = item_key


class DedupKeyMissingError(ItemImportError):
    """Raised when an item carries neither a GUID nor a link."""

    kind = "dedup_key_missing"

    def __init__(self) -> None:
        super().__init__("Item has no GUID or link for deduplication.")


class UpsertError(ItemImportError):
    """Raised when the content store rejects an insert or update.

    Args:
        message: Description prefixed with ``Insert failed:`` or ``Update failed:``.
        item_key: Dedup key of the item.
        record_id: Existing record id for failed updates, ``None`` for inserts.
    """

    kind = "upsert_failed"

    def __init__(
        self,
        message: str,
        item_key: str | None = None,
        record_id: int | None = None,
    ) -> None:
        super().__init__(message, item_key=item_key)
        self.record_id = record_id


# ---------------------------------------------------------------------------
# Run refusal exceptions
# ---------------------------------------------------------------------------


class RunRefusedError(FeedImporterError):
    """Base class for conditions that stop a run before it contacts the network.

    Args:
        feed_id: The feed the run was requested for.
    """

    message: str = "Run refused."

    def __init__(self, feed_id: str) -> None:
        super().__init__(self.message)
        self.feed_id = feed_id


class ConfigNotFoundError(RunRefusedError):
    """Raised when no feed configuration exists for the requested id."""

    message = "Feed not found."


class FeedDisabledError(RunRefusedError):
    """Raised when a disabled feed is run without ``force``."""

    message = "Feed is disabled."


class RunLockedError(RunRefusedError):
    """Raised when another run already holds the per-feed run lock."""

    message = "Import already running for this feed."


# ---------------------------------------------------------------------------
# Media exceptions
# ---------------------------------------------------------------------------


class ImageMaterializationError(FeedImporterError):
    """Raised when a featured image cannot be downloaded or stored.

    The pipeline swallows this error: a broken image never fails an item.

    Args:
        message: Human-readable description of the failure.
        url: The image URL that failed.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url
