"""Shared pytest fixtures for feed importer tests.

Fixture summary
---------------
clock           - Mutable fake wall clock, starts at 2024-06-15 10:00 UTC.
engine          - Fresh in-memory SQLite engine with every table created.
session_factory - sessionmaker bound to ``engine``.
settings        - Settings with a test collection schema.
reader          - FakeFeedReader serving canned ParsedFeed objects per URL.
images          - FakeImageMaterializer storing a tiny asset per download.
triggers        - InMemoryTriggerRegistry.
locks           - InProcessRunLocks.
services        - Services wired from all of the above.

No test needs PostgreSQL, Redis or the network.  Redis-backed classes are
tested against ``MagicMock`` clients and HTTP against ``respx``.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set env vars before any application module is imported so that the
# module-level engine in core.database points at SQLite, never at a real
# database.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite://",
    "REDIS_URL": "redis://localhost:6379/15",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "LOG_LEVEL": "WARNING",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

# ---------------------------------------------------------------------------
# Application imports (after env bootstrap)
# ---------------------------------------------------------------------------

from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from feed_importer.config.settings import Settings, get_settings  # noqa: E402
from feed_importer.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from feed_importer.core.exceptions import FetchError, ImageMaterializationError  # noqa: E402
from feed_importer.core.models import MediaAsset  # noqa: E402
from feed_importer.core.run_lock import InProcessRunLocks  # noqa: E402
from feed_importer.feeds.items import ParsedFeed  # noqa: E402
from feed_importer.services import Services, build_services  # noqa: E402
from feed_importer.workers.trigger_registry import InMemoryTriggerRegistry  # noqa: E402

# Clear the lru_cache so Settings() re-reads from the patched environment.
get_settings.cache_clear()

FIXED_NOW = datetime(2024, 6, 15, 10, 0, 0, tzinfo=timezone.utc)

TEST_COLLECTION_SCHEMAS: dict[str, Any] = {
    "post": {
        "custom_fields": [
            {"key": "source_link", "label": "Source Link", "type": "url"},
            "byline",
        ],
        "taxonomies": [
            {"key": "category", "label": "Categories"},
            {"key": "tag", "label": "Tags"},
        ],
    },
    "article": {
        "custom_fields": [],
        "taxonomies": ["topic"],
    },
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeFeedReader:
    """Feed reader returning canned feeds.

    ``feeds`` maps a URL to either a :class:`ParsedFeed` or an exception
    instance to raise.  Unknown URLs raise :class:`FetchError`.
    """

    def __init__(self) -> None:
        self.feeds: dict[str, ParsedFeed | Exception] = {}
        self.calls: list[str] = []

    def serve(self, url: str, feed: ParsedFeed | Exception) -> None:
        self.feeds[url] = feed

    def fetch(self, url: str) -> ParsedFeed:
        self.calls.append(url)
        result = self.feeds.get(url)
        if result is None:
            raise FetchError(f"Feed fetch failed: HTTP 404 from {url}", url=url)
        if isinstance(result, Exception):
            raise result
        return result


class FakeImageMaterializer:
    """Image materializer that stores a placeholder asset instead of downloading."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self.calls: list[tuple[str, int]] = []
        self.failing_urls: set[str] = set()

    def materialize(self, url: str, record_id: int) -> int:
        self.calls.append((url, record_id))
        if url in self.failing_urls:
            raise ImageMaterializationError("Image download failed: HTTP 404", url=url)
        with self._session_factory() as session, session.begin():
            asset = MediaAsset(
                source_url=url,
                mime_type="image/png",
                size_bytes=4,
                sha256="0" * 64,
                data=b"\x89PNG",
            )
            session.add(asset)
            session.flush()
            return asset.id


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    """Yield a private in-memory SQLite engine with all tables created."""
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        collection_schemas=TEST_COLLECTION_SCHEMAS,
        run_history_limit=200,
    )


@pytest.fixture
def reader() -> FakeFeedReader:
    return FakeFeedReader()


@pytest.fixture
def images(session_factory: sessionmaker[Session]) -> FakeImageMaterializer:
    return FakeImageMaterializer(session_factory)


@pytest.fixture
def triggers() -> InMemoryTriggerRegistry:
    return InMemoryTriggerRegistry()


@pytest.fixture
def locks() -> InProcessRunLocks:
    return InProcessRunLocks()


@pytest.fixture
def services(
    settings: Settings,
    session_factory: sessionmaker[Session],
    triggers: InMemoryTriggerRegistry,
    locks: InProcessRunLocks,
    reader: FakeFeedReader,
    images: FakeImageMaterializer,
    clock: FakeClock,
) -> Services:
    """Return fully wired services backed by SQLite and the fakes above."""
    return build_services(
        settings,
        session_factory,
        triggers=triggers,
        locks=locks,
        reader=reader,
        images=images,
        clock=clock,
    )
