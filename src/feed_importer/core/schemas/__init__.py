"""Pydantic schemas for validation and transport.

Sub-modules:
    feeds   - FeedInput/FeedConfig, MappingRule and the vocabulary enums
    runs    - RunResult, ImportRunRecord, FeedPreview
    mapping - ResolvedRecord, TargetFields
"""

from __future__ import annotations
