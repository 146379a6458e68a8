"""Unit tests for core/field_mapper.py and core/schema_discovery.py."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from feed_importer.core.field_mapper import FieldMapper, extract
from feed_importer.core.schema_discovery import (
    DEFAULT_COLLECTION_SCHEMAS,
    NATIVE_TARGET_KEYS,
    ConfiguredSchemaDiscovery,
)
from feed_importer.core.schemas.feeds import MappingRule, SourceField
from feed_importer.feeds.items import Category, Enclosure
from tests.factories import FeedItemFactory


def _rule(source: str, kind: str, key: str) -> MappingRule:
    return MappingRule(source_field=source, target_kind=kind, target_key=key)


# ---------------------------------------------------------------------------
# extract()
# ---------------------------------------------------------------------------


class TestExtract:
    def test_scalar_fields(self) -> None:
        item = FeedItemFactory.build(title="Hello", link="https://x.example/a", guid="g-1", author="Ann")
        assert extract(item, SourceField.TITLE) == "Hello"
        assert extract(item, SourceField.LINK) == "https://x.example/a"
        assert extract(item, SourceField.GUID) == "g-1"
        assert extract(item, "author") == "Ann"

    def test_description_falls_back_to_content(self) -> None:
        item = FeedItemFactory.build(description="", content="<p>Body</p>")
        assert extract(item, SourceField.DESCRIPTION) == "<p>Body</p>"

    def test_content_falls_back_to_description(self) -> None:
        item = FeedItemFactory.build(description="Summary", content="")
        assert extract(item, SourceField.CONTENT) == "Summary"

    def test_pub_date_formatted_in_utc(self) -> None:
        published = datetime(2024, 3, 1, 14, 30, 5, tzinfo=timezone(timedelta(hours=2)))
        item = FeedItemFactory.build(published=published)
        assert extract(item, SourceField.PUB_DATE) == "2024-03-01 12:30:05"

    def test_missing_pub_date_is_empty(self) -> None:
        assert extract(FeedItemFactory.build(published=None), SourceField.PUB_DATE) == ""

    def test_categories_prefer_label(self) -> None:
        item = FeedItemFactory.build(
            categories=[
                Category(term="tech", label="Technology"),
                Category(term="eu", label=""),
                Category(term="", label=""),
            ]
        )
        assert extract(item, SourceField.CATEGORIES) == ["Technology", "eu"]

    def test_categories_empty_list(self) -> None:
        assert extract(FeedItemFactory.build(), SourceField.CATEGORIES) == []

    def test_media_content_url(self) -> None:
        item = FeedItemFactory.build(media_content=["", "https://img.example/a.jpg"])
        assert extract(item, SourceField.MEDIA_CONTENT_URL) == "https://img.example/a.jpg"

    def test_media_content_falls_back_to_image_enclosure(self) -> None:
        item = FeedItemFactory.build(
            enclosures=[Enclosure(url="https://img.example/b.png", type="image/png")]
        )
        assert extract(item, SourceField.MEDIA_CONTENT_URL) == "https://img.example/b.png"

    def test_media_content_ignores_non_image_enclosure(self) -> None:
        item = FeedItemFactory.build(
            enclosures=[Enclosure(url="https://cdn.example/ep.mp3", type="audio/mpeg")]
        )
        assert extract(item, SourceField.MEDIA_CONTENT_URL) == ""
        assert extract(item, SourceField.ENCLOSURE_URL) == "https://cdn.example/ep.mp3"
        assert extract(item, SourceField.ENCLOSURE_TYPE) == "audio/mpeg"

    def test_thumbnail(self) -> None:
        item = FeedItemFactory.build(media_thumbnails=["https://img.example/t.jpg"])
        assert extract(item, SourceField.MEDIA_THUMBNAIL_URL) == "https://img.example/t.jpg"

    def test_unknown_source_field(self) -> None:
        assert extract(FeedItemFactory.build(), "not_a_field") == ""


# ---------------------------------------------------------------------------
# apply_mapping()
# ---------------------------------------------------------------------------


class TestApplyMapping:
    def test_no_rules_gives_empty_record(self) -> None:
        resolved = FieldMapper.apply_mapping(FeedItemFactory.build(), [])
        assert resolved.native_values == {}
        assert resolved.featured_image_url is None
        assert resolved.custom_values == {}
        assert resolved.taxonomy_terms == {}
        assert resolved.meta_values == {}

    def test_routes_by_target_kind(self) -> None:
        item = FeedItemFactory.build(
            title="T",
            link="https://x.example/a",
            author="Ann",
            media_content=["https://img.example/a.jpg"],
            categories=[Category(term="News")],
        )
        resolved = FieldMapper.apply_mapping(
            item,
            [
                _rule("title", "native_field", "title"),
                _rule("media_content_url", "native_field", "featured_image"),
                _rule("link", "custom_field", "source_link"),
                _rule("categories", "taxonomy_term_set", "category"),
                _rule("author", "free_meta", "origin_author"),
            ],
        )
        assert resolved.native_values == {"title": "T"}
        assert resolved.featured_image_url == "https://img.example/a.jpg"
        assert resolved.custom_values == {"source_link": "https://x.example/a"}
        assert resolved.taxonomy_terms == {"category": ["News"]}
        assert resolved.meta_values == {"origin_author": "Ann"}

    def test_empty_extractions_skipped(self) -> None:
        item = FeedItemFactory.build(author="", categories=[])
        resolved = FieldMapper.apply_mapping(
            item,
            [
                _rule("author", "free_meta", "origin_author"),
                _rule("categories", "taxonomy_term_set", "category"),
            ],
        )
        assert resolved.meta_values == {}
        assert resolved.taxonomy_terms == {}

    def test_taxonomy_last_write_wins(self) -> None:
        item = FeedItemFactory.build(
            categories=[Category(term="A"), Category(term="B")],
            author="Ann",
        )
        resolved = FieldMapper.apply_mapping(
            item,
            [
                _rule("categories", "taxonomy_term_set", "category"),
                _rule("author", "taxonomy_term_set", "category"),
            ],
        )
        assert resolved.taxonomy_terms == {"category": ["Ann"]}

    def test_scalar_taxonomy_value_wrapped(self) -> None:
        item = FeedItemFactory.build(author="Ann")
        resolved = FieldMapper.apply_mapping(item, [_rule("author", "taxonomy_term_set", "tag")])
        assert resolved.taxonomy_terms == {"tag": ["Ann"]}

    def test_later_native_rule_overwrites(self) -> None:
        item = FeedItemFactory.build(title="Title", guid="guid-1")
        resolved = FieldMapper.apply_mapping(
            item,
            [_rule("title", "native_field", "title"), _rule("guid", "native_field", "title")],
        )
        assert resolved.native_values == {"title": "guid-1"}

    def test_unknown_native_key_ignored(self) -> None:
        resolved = FieldMapper.apply_mapping(
            FeedItemFactory.build(), [_rule("title", "native_field", "headline")]
        )
        assert resolved.native_values == {}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscovery:
    def test_source_fields_cover_vocabulary(self) -> None:
        fields = FieldMapper.source_fields()
        assert list(fields) == [f.value for f in SourceField]
        assert fields["description"] == "Description / Summary"

    def test_target_fields_known_collection(self, settings) -> None:
        mapper = FieldMapper(ConfiguredSchemaDiscovery(settings.collection_schemas))
        targets = mapper.target_fields("post")

        assert {f.key for f in targets.native_fields} == NATIVE_TARGET_KEYS
        assert [f.key for f in targets.custom_fields] == ["source_link", "byline"]
        assert targets.custom_fields[1].label == "byline"
        assert [f.key for f in targets.taxonomy_like_fields] == ["category", "tag"]
        assert targets.custom_fields_available is True

    def test_target_fields_unknown_collection(self, settings) -> None:
        mapper = FieldMapper(ConfiguredSchemaDiscovery(settings.collection_schemas))
        targets = mapper.target_fields("recipe")

        assert len(targets.native_fields) == 5
        assert targets.custom_fields == []
        assert targets.taxonomy_like_fields == []
        assert targets.custom_fields_available is False


class TestConfiguredSchemaDiscovery:
    def test_empty_setting_uses_defaults(self) -> None:
        schema = ConfiguredSchemaDiscovery({})
        assert schema.has_collection("post")
        assert schema.all_taxonomies() == {
            t["key"] for t in DEFAULT_COLLECTION_SCHEMAS["post"]["taxonomies"]
        }

    def test_all_taxonomies_spans_collections(self, settings) -> None:
        schema = ConfiguredSchemaDiscovery(settings.collection_schemas)
        assert schema.all_taxonomies() == {"category", "tag", "topic"}

    @pytest.mark.parametrize("bad_entry", [42, {"label": "no key"}, {"key": "  "}])
    def test_malformed_entries_ignored(self, bad_entry) -> None:
        schema = ConfiguredSchemaDiscovery(
            {"post": {"custom_fields": [bad_entry, "kept"], "taxonomies": []}}
        )
        assert [f.key for f in schema.custom_fields("post")] == ["kept"]

    def test_non_object_schema_ignored(self) -> None:
        schema = ConfiguredSchemaDiscovery({"post": ["oops"], "page": {"custom_fields": ["a"]}})
        assert not schema.has_collection("post")
        assert schema.has_collection("page")
