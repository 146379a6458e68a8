"""Initial schema: feed configuration, run history and the content store.

Creates the feed importer tables in FK-dependency order:

1. feeds                : feed configurations with their mapping rules
2. import_runs          : append-only run history (no FK to feeds)
3. media_assets         : downloaded featured images
4. content_records      : imported records (FK → media_assets)
5. record_tags          : key/value tags, incl. dedup tracking (FK → content_records)
6. record_custom_fields : schema-declared custom fields (FK → content_records)
7. taxonomy_terms       : named terms per taxonomy
8. record_terms         : term assignments (FK → content_records, taxonomy_terms)

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # feeds
    # ------------------------------------------------------------------
    op.create_table(
        "feeds",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, server_default=""),
        sa.Column("source_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("target_collection", sa.String(64), nullable=False, server_default="post"),
        sa.Column("target_visibility", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("owner", sa.String(100), nullable=False, server_default=""),
        sa.Column("interval", sa.String(20), nullable=False, server_default="daily"),
        sa.Column("max_items_per_run", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("field_mappings", _JSON, nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_status", sa.String(10), nullable=False, server_default="none"),
        sa.Column("last_run_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_feeds_enabled", "feeds", ["enabled"])

    # ------------------------------------------------------------------
    # import_runs
    # ------------------------------------------------------------------
    op.create_table(
        "import_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("feed_id", sa.String(64), nullable=False),
        sa.Column("feed_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("created_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_messages", _JSON, nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index("ix_import_runs_feed_id", "import_runs", ["feed_id"])

    # ------------------------------------------------------------------
    # media_assets
    # ------------------------------------------------------------------
    op.create_table(
        "media_assets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False, server_default=""),
        sa.Column("size_bytes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_media_assets_sha256", "media_assets", ["sha256"])

    # ------------------------------------------------------------------
    # content_records
    # ------------------------------------------------------------------
    op.create_table(
        "content_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("collection", sa.String(64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("owner", sa.String(100), nullable=False, server_default=""),
        sa.Column(
            "primary_image_id",
            sa.Integer(),
            sa.ForeignKey("media_assets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("ix_content_records_collection", "content_records", ["collection"])

    # ------------------------------------------------------------------
    # record_tags
    # ------------------------------------------------------------------
    op.create_table(
        "record_tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey("content_records.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(191), nullable=False),
        sa.Column("value", sa.Text(), nullable=False, server_default=""),
        sa.Column("value_hash", sa.String(64), nullable=False),
        sa.UniqueConstraint("record_id", "key", name="uq_record_tags_record_key"),
    )
    op.create_index("ix_record_tags_key_value_hash", "record_tags", ["key", "value_hash"])

    # ------------------------------------------------------------------
    # record_custom_fields
    # ------------------------------------------------------------------
    op.create_table(
        "record_custom_fields",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey("content_records.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(191), nullable=False),
        sa.Column("value", _JSON, nullable=True),
        sa.UniqueConstraint("record_id", "key", name="uq_record_custom_fields_record_key"),
    )
    op.create_index("ix_record_custom_fields_record_id", "record_custom_fields", ["record_id"])

    # ------------------------------------------------------------------
    # taxonomy_terms / record_terms
    # ------------------------------------------------------------------
    op.create_table(
        "taxonomy_terms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("taxonomy", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.UniqueConstraint("taxonomy", "name", name="uq_taxonomy_terms_taxonomy_name"),
    )
    op.create_index("ix_taxonomy_terms_taxonomy", "taxonomy_terms", ["taxonomy"])

    op.create_table(
        "record_terms",
        sa.Column(
            "record_id",
            sa.Integer(),
            sa.ForeignKey("content_records.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "term_id",
            sa.Integer(),
            sa.ForeignKey("taxonomy_terms.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("taxonomy", sa.String(64), nullable=False),
    )
    op.create_index("ix_record_terms_taxonomy", "record_terms", ["taxonomy"])


def downgrade() -> None:
    op.drop_table("record_terms")
    op.drop_table("taxonomy_terms")
    op.drop_table("record_custom_fields")
    op.drop_table("record_tags")
    op.drop_table("content_records")
    op.drop_table("media_assets")
    op.drop_table("import_runs")
    op.drop_table("feeds")
