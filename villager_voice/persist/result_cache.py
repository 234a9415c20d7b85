"""
Result cache - stage fingerprint -> cached payload.

An entry is valid only while every artifact it depends on still exists.
Every successful lookup touches those artifacts, which keeps them out
of reach of the reclamation sweep for another retention window.
"""

import time
from typing import Any, Iterable, Optional

import structlog

from ..errors import NotFoundError
from .artifact_store import ArtifactStore
from .backend import CacheBackend, CacheEntry

logger = structlog.get_logger(__name__)


class ResultCache:
    """
    Fingerprint-keyed cache whose validity follows its artifacts.

    Usage:
        >>> cache = ResultCache(JsonDocumentBackend(Path("data/cache.json")), store)
        >>> cache.store("ingest:ab12", {"filename": "ab12.wav"}, ["ab12.wav"])
        >>> cache.lookup("ingest:ab12")
        {'filename': 'ab12.wav'}
    """

    def __init__(self, backend: CacheBackend, store: ArtifactStore, prune_stale: bool = False):
        """
        Initialize result cache.

        Args:
            backend: Where entries are persisted
            store: Artifact store used to verify and touch dependencies
            prune_stale: Delete entries found stale during lookup
        """
        self.backend = backend
        self.artifacts = store
        self.prune_stale = prune_stale

        self.hits = 0
        self.misses = 0

    def lookup(self, fingerprint: str) -> Optional[Any]:
        """
        Get the cached payload for a fingerprint.

        Touches every dependent artifact; if any of them is gone the
        entry is stale and the lookup is a miss.

        Args:
            fingerprint: Stage fingerprint

        Returns:
            Cached payload, or None on miss
        """
        entry = self.backend.read(fingerprint)
        if entry is None:
            self.misses += 1
            logger.debug("cache_miss", key=fingerprint)
            return None

        for filename in entry.files:
            try:
                self.artifacts.touch(filename)
            except NotFoundError:
                self.misses += 1
                logger.info("cache_stale", key=fingerprint, missing=filename)
                if self.prune_stale:
                    self.backend.delete(fingerprint)
                return None

        self.hits += 1
        logger.debug("cache_hit", key=fingerprint)
        return entry.data

    def store(self, fingerprint: str, payload: Any, files: Iterable[str] = ()) -> None:
        """
        Insert or overwrite an entry.

        Args:
            fingerprint: Stage fingerprint
            payload: JSON-serializable stage result
            files: Artifact filenames the payload depends on

        Raises:
            StoreError: If the backend cannot persist the entry
        """
        entry = CacheEntry(
            timestamp=int(time.time() * 1000),
            data=payload,
            files=list(files),
        )
        self.backend.write(fingerprint, entry)
        logger.debug("cache_store", key=fingerprint, files=entry.files)

    def invalidate(self, fingerprint: str) -> None:
        self.backend.delete(fingerprint)

    def prune(self) -> int:
        """
        Drop every entry with a missing dependency.

        Does not touch surviving artifacts.

        Returns:
            Number of entries removed
        """
        removed = 0
        for key in self.backend.keys():
            entry = self.backend.read(key)
            if entry is None:
                continue
            if any(not self.artifacts.exists(f) for f in entry.files):
                self.backend.delete(key)
                removed += 1
        return removed

    def get_stats(self) -> dict:
        """Backend statistics plus hit/miss counters."""
        total = self.hits + self.misses
        stats = dict(self.backend.stats())
        stats.update({
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total > 0 else 0.0,
        })
        return stats

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
