"""
Persistence and caching layer.

Provides:
- Stable hashing and stage fingerprints
- Artifact store with TTL reclamation
- Result cache with dependency-tracked validity
- JSON document and SQLite cache backends
"""

from .hashing import stable_hash, content_hash, fingerprint
from .paths import StorePaths, ensure_dirs, safe_name
from .artifact_store import ArtifactStore, LocalArtifactStore, ArtifactInfo, SweepReport
from .backend import CacheBackend, CacheEntry
from .document_store import JsonDocumentBackend
from .sqlite_store import SqliteBackend
from .result_cache import ResultCache

__all__ = [
    "stable_hash",
    "content_hash",
    "fingerprint",
    "StorePaths",
    "ensure_dirs",
    "safe_name",
    "ArtifactStore",
    "LocalArtifactStore",
    "ArtifactInfo",
    "SweepReport",
    "CacheBackend",
    "CacheEntry",
    "JsonDocumentBackend",
    "SqliteBackend",
    "ResultCache",
]
