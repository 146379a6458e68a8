"""Unit tests for core/feed_repository.py and the FeedInput sanitizers."""

from __future__ import annotations

from datetime import timezone

import pytest

from feed_importer.core.feed_repository import FeedRepository, new_feed_id
from feed_importer.core.schemas.feeds import (
    FeedConfig,
    FeedInput,
    Interval,
    RunStatus,
    TargetKind,
    Visibility,
)
from tests.factories import FeedConfigFactory


@pytest.fixture
def repository(session_factory, clock) -> FeedRepository:
    return FeedRepository(session_factory, clock=clock)


def _aware(moment):
    # SQLite drops tzinfo on the way back out.
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


class TestFeedInputSanitization:
    def test_unknown_visibility_becomes_draft(self) -> None:
        assert FeedInput(target_visibility="private").target_visibility is Visibility.DRAFT

    def test_visibility_is_case_insensitive(self) -> None:
        assert FeedInput(target_visibility=" Published ").target_visibility is Visibility.PUBLISHED

    def test_unknown_interval_becomes_daily(self) -> None:
        assert FeedInput(interval="fortnightly").interval is Interval.DAILY

    def test_twice_daily_alias(self) -> None:
        assert FeedInput(interval="twice-daily").interval is Interval.TWICEDAILY

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(0, 20), (-5, 20), ("abc", 20), (None, 20), (7, 7), ("35", 35), (1000, 100)],
    )
    def test_max_items_clamped(self, raw, expected) -> None:
        assert FeedInput(max_items_per_run=raw).max_items_per_run == expected

    def test_collection_sanitized(self) -> None:
        assert FeedInput(target_collection=" News Item!! ").target_collection == "newsitem"
        assert FeedInput(target_collection="$$$").target_collection == "post"

    def test_text_fields_stripped(self) -> None:
        feed = FeedInput(name="  Daily News  ", source_url=" https://x.example/rss ", owner=None)
        assert feed.name == "Daily News"
        assert feed.source_url == "https://x.example/rss"
        assert feed.owner == ""

    def test_invalid_mapping_rules_dropped(self) -> None:
        feed = FeedInput(
            field_mappings=[
                {"source_field": "title", "target_kind": "native_field", "target_key": "title"},
                {"source_field": "nonsense", "target_kind": "native_field", "target_key": "title"},
                {"source_field": "link", "target_kind": "free_meta", "target_key": "   "},
                {"source_field": "link", "target_kind": "wrong_kind", "target_key": "x"},
                "not a rule",
                {"source_field": "author", "target_kind": "custom_field", "target_key": " byline "},
            ]
        )
        assert [(r.source_field.value, r.target_key) for r in feed.field_mappings] == [
            ("title", "title"),
            ("author", "byline"),
        ]
        assert feed.field_mappings[1].target_kind is TargetKind.CUSTOM_FIELD

    def test_non_list_mappings_become_empty(self) -> None:
        assert FeedInput(field_mappings="title").field_mappings == []


# ---------------------------------------------------------------------------
# Repository CRUD
# ---------------------------------------------------------------------------


class TestFeedRepository:
    def test_new_feed_id_format(self) -> None:
        feed_id = new_feed_id()
        assert feed_id.startswith("feed_")
        assert len(feed_id) == len("feed_") + 16
        assert new_feed_id() != feed_id

    def test_save_assigns_id_and_defaults(self, repository: FeedRepository, clock) -> None:
        feed_id = repository.save(FeedConfigFactory.build(name="World News"))

        stored = repository.get(feed_id)
        assert stored is not None
        assert stored.id == feed_id
        assert stored.name == "World News"
        assert _aware(stored.created_at) == clock.now
        assert stored.last_run_at is None
        assert stored.last_run_status is RunStatus.NONE
        assert stored.last_run_count == 0

    def test_save_keeps_given_id(self, repository: FeedRepository) -> None:
        feed_id = repository.save(FeedConfigFactory.build(id="feed_custom"))
        assert feed_id == "feed_custom"
        assert repository.get("feed_custom") is not None

    def test_save_resanitizes_constructed_models(self, repository: FeedRepository) -> None:
        config = FeedConfig.model_construct(
            **{**FeedConfigFactory.build().model_dump(), "max_items_per_run": 5000}
        )
        feed_id = repository.save(config)
        assert repository.get(feed_id).max_items_per_run == 100

    def test_update_preserves_created_at_and_run_fields(
        self, repository: FeedRepository, clock
    ) -> None:
        feed_id = repository.save(FeedConfigFactory.build())
        created_at = repository.get(feed_id).created_at
        repository.record_run_outcome(feed_id, RunStatus.PARTIAL, 4)

        clock.advance(3600)
        updated = repository.get(feed_id).model_copy(update={"name": "Renamed", "enabled": False})
        repository.save(updated)

        stored = repository.get(feed_id)
        assert stored.name == "Renamed"
        assert stored.enabled is False
        assert stored.created_at == created_at
        assert _aware(stored.updated_at) == clock.now
        assert stored.last_run_status is RunStatus.PARTIAL
        assert stored.last_run_count == 4

    def test_mappings_replaced_as_a_whole(self, repository: FeedRepository) -> None:
        feed_id = repository.save(FeedConfigFactory.build())
        feed = repository.get(feed_id)
        assert len(feed.field_mappings) == 3

        repository.save(
            feed.model_copy(
                update={
                    "field_mappings": FeedInput(
                        field_mappings=[
                            {"source_field": "link", "target_kind": "free_meta", "target_key": "origin"}
                        ]
                    ).field_mappings
                }
            )
        )
        rules = repository.get(feed_id).field_mappings
        assert [(r.source_field.value, r.target_key) for r in rules] == [("link", "origin")]

    def test_get_unknown_returns_none(self, repository: FeedRepository) -> None:
        assert repository.get("feed_missing") is None
        assert repository.get("") is None

    def test_list_oldest_first(self, repository: FeedRepository, clock) -> None:
        first = repository.save(FeedConfigFactory.build(enabled=False))
        clock.advance(60)
        second = repository.save(FeedConfigFactory.build(enabled=True))

        assert [f.id for f in repository.list()] == [first, second]
        assert [f.id for f in repository.list_enabled()] == [second]

    def test_delete(self, repository: FeedRepository) -> None:
        feed_id = repository.save(FeedConfigFactory.build())
        assert repository.delete(feed_id) is True
        assert repository.get(feed_id) is None
        assert repository.delete(feed_id) is False

    def test_record_run_outcome(self, repository: FeedRepository, clock) -> None:
        feed_id = repository.save(FeedConfigFactory.build())
        clock.advance(120)
        repository.record_run_outcome(feed_id, RunStatus.SUCCESS, 7)

        stored = repository.get(feed_id)
        assert stored.last_run_status is RunStatus.SUCCESS
        assert stored.last_run_count == 7
        assert _aware(stored.last_run_at) == clock.now

    def test_record_run_outcome_unknown_feed_is_noop(self, repository: FeedRepository) -> None:
        repository.record_run_outcome("feed_missing", RunStatus.ERROR, 0)
        assert repository.list() == []

    def test_set_enabled(self, repository: FeedRepository) -> None:
        feed_id = repository.save(FeedConfigFactory.build(enabled=False))

        updated = repository.set_enabled(feed_id, True)
        assert updated is not None and updated.enabled is True
        assert repository.get(feed_id).enabled is True
        assert repository.set_enabled("feed_missing", True) is None
