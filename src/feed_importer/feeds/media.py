"""Featured image download.

:class:`HttpImageMaterializer` downloads an image URL with ``httpx`` and
stores it as a :class:`~feed_importer.core.models.MediaAsset`.  Any failure
is raised as :class:`~feed_importer.core.exceptions.ImageMaterializationError`,
which the pipeline logs and swallows.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from feed_importer.core.exceptions import ImageMaterializationError
from feed_importer.core.models import MediaAsset
from feed_importer.feeds.reader import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class ImageMaterializer(Protocol):
    def materialize(self, url: str, record_id: int) -> int: ...


class HttpImageMaterializer:
    """Download images and store them as media assets.

    Args:
        session_factory: Factory producing sessions bound to the content database.
        timeout: Request timeout in seconds.
        max_bytes: Largest accepted image body.
        user_agent: ``User-Agent`` header value.
        http_client: Optional injected :class:`httpx.Client`.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        timeout: float = 30.0,
        max_bytes: int = 10 * 1024 * 1024,
        user_agent: str = DEFAULT_USER_AGENT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout
        self._max_bytes = max_bytes
        self._user_agent = user_agent
        self._http_client = http_client

    @contextmanager
    def _client(self) -> Iterator[httpx.Client]:
        if self._http_client is not None:
            yield self._http_client
            return
        with httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent},
        ) as client:
            yield client

    def _download(self, url: str) -> tuple[str, bytes]:
        """Stream *url* and return ``(mime_type, body)``.

        The body is read in chunks and the download is abandoned as soon as
        it passes ``max_bytes``.
        """
        with self._client() as client, client.stream("GET", url) as response:
            if response.status_code >= 400:
                raise ImageMaterializationError(
                    f"Image download failed: HTTP {response.status_code}", url=url
                )

            mime_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if not mime_type.startswith("image/"):
                raise ImageMaterializationError(
                    f"Image download failed: unexpected content type {mime_type or 'unknown'!r}",
                    url=url,
                )

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self._max_bytes:
                raise ImageMaterializationError(
                    f"Image download failed: {declared} bytes exceeds limit of {self._max_bytes}",
                    url=url,
                )

            chunks: list[bytes] = []
            received = 0
            for chunk in response.iter_bytes():
                received += len(chunk)
                if received > self._max_bytes:
                    raise ImageMaterializationError(
                        f"Image download failed: body exceeds limit of {self._max_bytes}",
                        url=url,
                    )
                chunks.append(chunk)
        return mime_type, b"".join(chunks)

    def materialize(self, url: str, record_id: int) -> int:
        """Download *url* and return the new asset id.

        Args:
            url: Image URL.
            record_id: The record the image is for (used for logging only;
                attaching is the content store's job).

        Raises:
            ImageMaterializationError: On network errors, error statuses,
                non-image responses, oversize bodies or storage failures.
        """
        try:
            mime_type, data = self._download(url)
        except httpx.HTTPError as exc:
            raise ImageMaterializationError(f"Image download failed: {exc}", url=url) from exc

        if not data:
            raise ImageMaterializationError("Image download failed: empty body", url=url)

        try:
            with self._session_factory() as session, session.begin():
                asset = MediaAsset(
                    source_url=url,
                    mime_type=mime_type,
                    size_bytes=len(data),
                    sha256=hashlib.sha256(data).hexdigest(),
                    data=data,
                )
                session.add(asset)
                session.flush()
                asset_id = asset.id
        except SQLAlchemyError as exc:
            raise ImageMaterializationError(f"Image storage failed: {exc}", url=url) from exc

        logger.debug("record %d: stored image %s as asset %d", record_id, url, asset_id)
        return asset_id
