"""Fixtures for route tests: a TestClient wired to the test services."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from feed_importer.api.dependencies import get_feed_services, get_import_dispatcher
from feed_importer.api.main import app


class RecordingDispatcher:
    """Stands in for the Celery queue; records ``(feed_id, force)`` calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []

    def __call__(self, feed_id: str, force: bool) -> None:
        self.calls.append((feed_id, force))


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def client(services, dispatcher) -> Iterator[TestClient]:
    app.dependency_overrides[get_feed_services] = lambda: services
    app.dependency_overrides[get_import_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
