"""Unit tests for workers/tasks.py.

Tasks are called directly (no broker); ``get_services`` is patched to return
the SQLite-backed test services and ``run_feed_import.delay`` is mocked.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from feed_importer.core.scheduler import hook_id
from feed_importer.feeds.items import ParsedFeed
from feed_importer.workers import tasks
from feed_importer.workers.beat_schedule import beat_schedule
from feed_importer.workers.celery_app import celery_app
from tests.factories import FeedConfigFactory, FeedItemFactory

FEED_URL = "https://news.example.com/rss.xml"


@pytest.fixture
def patched_services(services):
    with patch("feed_importer.workers.tasks.get_services", return_value=services):
        yield services


class TestRunFeedImport:
    def test_returns_run_summary(self, patched_services, reader) -> None:
        feed_id = patched_services.repository.save(FeedConfigFactory.build(source_url=FEED_URL))
        reader.serve(FEED_URL, ParsedFeed(title="News", entries=FeedItemFactory.build_batch(3)))

        summary = tasks.run_feed_import(feed_id, force=False)

        assert summary["success"] is True
        assert summary["created"] == 3
        assert summary["status"] == "success"

    def test_disabled_feed_not_forced(self, patched_services, reader) -> None:
        feed_id = patched_services.repository.save(
            FeedConfigFactory.build(source_url=FEED_URL, enabled=False)
        )

        summary = tasks.run_feed_import(feed_id)

        assert summary == {
            "success": False,
            "created": 0,
            "updated": 0,
            "skipped": 0,
            "errors": 0,
            "message": "Feed is disabled.",
            "status": None,
        }
        assert reader.calls == []


class TestDispatchDueImports:
    def test_enqueues_due_feeds(self, patched_services, clock) -> None:
        feed_id = patched_services.repository.save(FeedConfigFactory.build())
        patched_services.scheduler.schedule(feed_id)
        patched_services.triggers.schedule_recurring("other:job", 60, clock.now)

        with (
            patch.object(tasks.run_feed_import, "delay") as delay,
            patch("feed_importer.workers.tasks.utc_now", return_value=clock.now + timedelta(seconds=1)),
        ):
            summary = tasks.dispatch_due_imports()

        delay.assert_called_once_with(feed_id, force=False)
        assert summary == {"dispatched": 1, "feed_ids": [feed_id]}

    def test_nothing_due(self, patched_services, clock) -> None:
        feed_id = patched_services.repository.save(FeedConfigFactory.build())
        patched_services.scheduler.schedule(feed_id)

        with (
            patch.object(tasks.run_feed_import, "delay") as delay,
            patch("feed_importer.workers.tasks.utc_now", return_value=clock.now - timedelta(minutes=1)),
        ):
            summary = tasks.dispatch_due_imports()

        delay.assert_not_called()
        assert summary == {"dispatched": 0, "feed_ids": []}

    def test_registry_failure_returns_error(self) -> None:
        broken = MagicMock()
        broken.triggers.claim_due.side_effect = ConnectionError("redis down")

        with patch("feed_importer.workers.tasks.get_services", return_value=broken):
            summary = tasks.dispatch_due_imports()

        assert summary == {"error": "redis down", "dispatched": 0}

    def test_enqueue_failure_skips_feed(self, patched_services, clock) -> None:
        first = patched_services.repository.save(FeedConfigFactory.build())
        second = patched_services.repository.save(FeedConfigFactory.build())
        patched_services.scheduler.schedule(first)
        clock.advance(1)
        patched_services.scheduler.schedule(second)

        with (
            patch.object(
                tasks.run_feed_import, "delay", side_effect=[ConnectionError("broker down"), None]
            ),
            patch("feed_importer.workers.tasks.utc_now", return_value=clock.now),
        ):
            summary = tasks.dispatch_due_imports()

        assert summary == {"dispatched": 1, "feed_ids": [second]}


class TestReconcileFeedSchedules:
    def test_reconciles(self, patched_services, triggers) -> None:
        feed_id = patched_services.repository.save(FeedConfigFactory.build())

        assert tasks.reconcile_feed_schedules() == {"installed": 1, "removed": 0}
        assert triggers.next_fire(hook_id(feed_id)) is not None

    def test_failure_returns_error(self) -> None:
        broken = MagicMock()
        broken.scheduler.reconcile_all.side_effect = RuntimeError("db down")

        with patch("feed_importer.workers.tasks.get_services", return_value=broken):
            summary = tasks.reconcile_feed_schedules()

        assert summary == {"error": "db down", "installed": 0, "removed": 0}


class TestCeleryConfig:
    def test_beat_schedule_targets_registered_tasks(self) -> None:
        for entry in beat_schedule.values():
            assert entry["task"] in celery_app.tasks

    def test_import_runs_routed_to_imports_queue(self) -> None:
        routes = celery_app.conf.task_routes
        assert routes["feed_importer.workers.tasks.run_feed_import"] == {"queue": "imports"}
