"""
Reference resolver - turn any audio reference into a local artifact.

Remote content is streamed chunk by chunk into the store; nothing is
buffered whole in memory. There is no deduplication here: resolving the
same URL twice downloads it twice. Stage-level caching sits above this.
"""

import base64
from pathlib import PurePosixPath
from typing import Iterable, Optional
from urllib.parse import urlsplit

import httpx
import structlog

from ..errors import NotFoundError, UpstreamError
from ..persist.artifact_store import ArtifactStore
from .references import (
    CONTENT_TYPES,
    AudioReference,
    LocalRef,
    RemoteRef,
    content_type_for,
)

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def _remote_ext(url: str) -> str:
    suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
    return suffix if suffix in CONTENT_TYPES else ".wav"


class Resolver:
    """
    Materializes audio references as local artifacts.

    Usage:
        >>> resolver = Resolver(store)
        >>> await resolver.resolve(LocalRef("ab12.wav"))
        'ab12.wav'
        >>> await resolver.resolve(RemoteRef("https://cdn.example/out.wav"))
        'remote-1700000000000-9f8e7d6c.wav'
    """

    def __init__(
        self,
        store: ArtifactStore,
        client: Optional[httpx.AsyncClient] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """
        Initialize resolver.

        Args:
            store: Artifact store to resolve into
            client: Shared HTTP client; a short-lived one is created per fetch if None
            chunk_size: Download chunk size in bytes
        """
        self.store = store
        self.client = client
        self.chunk_size = chunk_size

    async def resolve(
        self,
        ref: AudioReference,
        *,
        purpose: str = "remote",
        original_name: Optional[str] = None,
    ) -> str:
        """
        Resolve a reference to a local artifact filename.

        Args:
            ref: LocalRef or RemoteRef
            purpose: Name prefix for artifacts created by downloads
            original_name: Source name carried into the download filename

        Returns:
            Filename in the store

        Raises:
            NotFoundError: LocalRef whose artifact is gone
            UpstreamError: Remote fetch failed or returned non-2xx
            StoreError: Download could not be written
        """
        if isinstance(ref, LocalRef):
            if not self.store.exists(ref.filename):
                raise NotFoundError(f"File not found: {ref.filename}")
            return ref.filename

        if isinstance(ref, RemoteRef):
            return await self._download(ref.url, purpose, original_name)

        raise TypeError(f"Cannot resolve {ref!r}")

    async def resolve_many(self, refs: Iterable[AudioReference], *, purpose: str = "remote") -> list[str]:
        """Resolve references sequentially, preserving order."""
        return [await self.resolve(ref, purpose=purpose) for ref in refs]

    async def _download(self, url: str, purpose: str, original_name: Optional[str]) -> str:
        if self.client is not None:
            return await self._stream_into_store(self.client, url, purpose, original_name)

        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._stream_into_store(client, url, purpose, original_name)

    async def _stream_into_store(
        self,
        client: httpx.AsyncClient,
        url: str,
        purpose: str,
        original_name: Optional[str],
    ) -> str:
        logger.info("remote_fetch_start", url=url)

        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise UpstreamError(
                        f"Failed to fetch {url}: HTTP {response.status_code}"
                    )
                with self.store.open_writer(
                    purpose=purpose, ext=_remote_ext(url), original_name=original_name
                ) as writer:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        writer.write(chunk)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch {url}: {e}") from e

        logger.info("remote_fetch_done", url=url, filename=writer.filename, size=writer.size)
        return writer.filename

    def to_data_uri(self, filename: str) -> str:
        """
        Encode a local artifact as a self-describing data URI.

        Raises:
            NotFoundError: If the artifact is missing
        """
        data = self.store.get(filename)
        mime = content_type_for(filename)
        if not mime.startswith("audio/"):
            mime = "audio/wav"
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{mime};base64,{encoded}"
