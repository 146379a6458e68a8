"""Factory Boy factories for test data generation.

Available factories
-------------------
FeedConfigFactory   - FeedConfig with sensible defaults (enabled, hourly)
MappingRuleFactory  - MappingRule dict (title -> native title)
FeedItemFactory     - parsed FeedItem with guid, link and a publication date
CategoryFactory     - item Category
"""

from __future__ import annotations

from tests.factories.feeds import (
    CategoryFactory,
    FeedConfigFactory,
    FeedItemFactory,
    MappingRuleFactory,
)

__all__ = [
    "CategoryFactory",
    "FeedConfigFactory",
    "FeedItemFactory",
    "MappingRuleFactory",
]
