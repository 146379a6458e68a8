"""Configuration package for the feed importer.

Re-exports the settings symbols so that callers can write::

    from feed_importer.config import get_settings
"""

from __future__ import annotations

from feed_importer.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
