"""Construction of the importer's collaborators from settings.

API routes and Celery tasks both obtain their collaborators through
:func:`get_services`, so a process builds one set of them, lazily, on first
use.  Tests call :func:`build_services` with their own session factory,
trigger registry and run locks instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from feed_importer.config.settings import Settings, get_settings
from feed_importer.core.content_store import SqlContentStore
from feed_importer.core.feed_repository import Clock, FeedRepository, utc_now
from feed_importer.core.field_mapper import FieldMapper
from feed_importer.core.pipeline import ImportPipeline
from feed_importer.core.run_lock import RedisRunLocks, RunLocks
from feed_importer.core.run_logger import RunLogger
from feed_importer.core.schema_discovery import ConfiguredSchemaDiscovery
from feed_importer.core.scheduler import FeedScheduler, TriggerRegistry
from feed_importer.feeds.media import HttpImageMaterializer, ImageMaterializer
from feed_importer.feeds.reader import FeedReader, HttpFeedReader
from feed_importer.workers.trigger_registry import RedisTriggerRegistry


@dataclass
class Services:
    """The wired collaborators of one process."""

    repository: FeedRepository
    run_logger: RunLogger
    schema: ConfiguredSchemaDiscovery
    mapper: FieldMapper
    store: SqlContentStore
    pipeline: ImportPipeline
    scheduler: FeedScheduler
    triggers: TriggerRegistry


def build_services(
    settings: Settings,
    session_factory: sessionmaker[Session],
    *,
    triggers: Optional[TriggerRegistry] = None,
    locks: Optional[RunLocks] = None,
    reader: Optional[FeedReader] = None,
    images: Optional[ImageMaterializer] = None,
    clock: Clock = utc_now,
) -> Services:
    """Wire every collaborator.

    Args:
        settings: Application settings.
        session_factory: Session factory for all database-backed collaborators.
        triggers: Trigger registry.  Defaults to Redis at ``settings.redis_url``.
        locks: Run locks.  Defaults to Redis locks at ``settings.redis_url``.
        reader: Feed reader.  Defaults to :class:`HttpFeedReader`.
        images: Image materializer.  Defaults to :class:`HttpImageMaterializer`.
        clock: Wall clock shared by the repository, pipeline and scheduler.

    Returns:
        The wired :class:`Services`.
    """
    schema = ConfiguredSchemaDiscovery(settings.collection_schemas)
    repository = FeedRepository(session_factory, clock=clock)
    run_logger = RunLogger(session_factory, limit=settings.run_history_limit)
    mapper = FieldMapper(schema)
    store = SqlContentStore(session_factory, schema)

    if triggers is None:
        triggers = RedisTriggerRegistry.from_url(settings.redis_url)
    if locks is None:
        locks = RedisRunLocks.from_url(settings.redis_url, settings.run_lock_timeout_seconds)
    if reader is None:
        reader = HttpFeedReader(
            timeout=settings.http_timeout_seconds,
            user_agent=settings.http_user_agent,
        )
    if images is None:
        images = HttpImageMaterializer(
            session_factory,
            timeout=settings.http_timeout_seconds,
            max_bytes=settings.image_max_bytes,
            user_agent=settings.http_user_agent,
        )

    pipeline = ImportPipeline(
        repository=repository,
        reader=reader,
        mapper=mapper,
        store=store,
        run_logger=run_logger,
        images=images,
        locks=locks,
        clock=clock,
    )
    scheduler = FeedScheduler(repository, triggers, clock=clock)
    return Services(
        repository=repository,
        run_logger=run_logger,
        schema=schema,
        mapper=mapper,
        store=store,
        pipeline=pipeline,
        scheduler=scheduler,
        triggers=triggers,
    )


@lru_cache
def get_services() -> Services:
    """Return the process-wide :class:`Services`, built on first call."""
    from feed_importer.core.database import SessionLocal  # noqa: PLC0415

    return build_services(get_settings(), SessionLocal)
